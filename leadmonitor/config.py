"""
Centralized configuration — all env vars and constants.
"""
import os


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis (circuit breaker state) ─────────────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── Database ──────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///reddit_leads.db')

# ── OpenAI ────────────────────────────────────────────────────────────────────
OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')
OPENAI_KEY_PLACEHOLDER = 'your_openai_api_key_here'

# ── Reddit (public JSON endpoints, no auth) ──────────────────────────────────
REDDIT_BASE_URL = os.getenv('REDDIT_BASE_URL', 'https://www.reddit.com')
REDDIT_USER_AGENT = os.getenv(
    'REDDIT_USER_AGENT',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36',
)
REDDIT_TIMEOUT = float(os.getenv('REDDIT_TIMEOUT', '15'))

# ── Monitoring ────────────────────────────────────────────────────────────────
MONITORING_CONFIG = os.getenv(
    'MONITORING_CONFIG',
    os.path.join(os.path.dirname(os.path.dirname(__file__)), 'monitoring.yaml'),
)
MONITOR_AUTOSTART = os.getenv('MONITOR_AUTOSTART', '1').lower() not in ('0', 'false', 'no', '')

# Courtesy throttles against Reddit (seconds)
KEYWORD_DELAY = 1.0
PARTITION_DELAY = 2.0

# 30 calls/minute ceiling on the scoring model
SCORING_MIN_INTERVAL = 2.1

# ── Lead workflow ─────────────────────────────────────────────────────────────
LEAD_STATUSES = [
    'new',
    'contacted',
    'interested',
    'not_interested',
    'converted',
]
