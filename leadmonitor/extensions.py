"""
Shared client instances — Redis, OpenAI.

Importing this module never opens a connection: redis.from_url is lazy and
the OpenAI client is only built when a real key is configured.
"""
import logging
import redis

from leadmonitor.config import REDIS_URL, OPENAI_API_KEY, OPENAI_KEY_PLACEHOLDER

logger = logging.getLogger('leadmonitor.extensions')

# ── Redis ─────────────────────────────────────────────────────────────────────
redis_client = redis.from_url(REDIS_URL, decode_responses=True, socket_connect_timeout=1)

# ── OpenAI ────────────────────────────────────────────────────────────────────
openai_client = None
if OPENAI_API_KEY and OPENAI_API_KEY != OPENAI_KEY_PLACEHOLDER:
    try:
        from openai import OpenAI
        openai_client = OpenAI(api_key=OPENAI_API_KEY)
        logger.info("OpenAI client initialized successfully")
    except Exception as e:
        logger.error("Error initializing OpenAI client: %s", e)
else:
    logger.warning("OPENAI_API_KEY not set — AI lead scoring disabled")
