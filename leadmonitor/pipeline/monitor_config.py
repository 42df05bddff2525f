"""
Monitoring config loader — keywords, subreddits, schedule, thresholds.

Loaded once at startup in two explicit stages: read the YAML file, and on any
load failure fall back to DEFAULT_MONITORING_CONFIG. The log line says which
path was taken. Runtime updates are merged in memory only; a restart reverts
to the file.
"""
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import yaml

from leadmonitor.errors import InvalidArgument

logger = logging.getLogger('pipeline.monitor_config')


@dataclass(frozen=True)
class MonitoringConfig:
    keywords: List[str] = field(default_factory=list)
    partitions: List[str] = field(default_factory=list)
    interval: str = '*/30 * * * *'
    limit: int = 25
    min_score: int = 60
    source: str = 'default'

    def to_dict(self):
        return {
            'keywords': list(self.keywords),
            'partitions': list(self.partitions),
            'interval': self.interval,
            'limit': self.limit,
            'min_score': self.min_score,
            'source': self.source,
        }

    def merged(self, keywords=None, partitions=None, interval=None, limit=None, min_score=None):
        """Return a copy with every non-None change applied. Empty values are rejected."""
        changes = {}
        if keywords is not None:
            changes['keywords'] = _non_empty_list('keywords', keywords)
        if partitions is not None:
            changes['partitions'] = _non_empty_list('partitions', partitions)
        if interval is not None:
            if not isinstance(interval, str) or not interval.strip():
                raise InvalidArgument("interval must be a non-empty cron expression")
            changes['interval'] = interval.strip()
        if limit is not None:
            changes['limit'] = _bounded_int('limit', limit, 1, 100)
        if min_score is not None:
            changes['min_score'] = _bounded_int('min_score', min_score, 0, 100)
        return dataclasses.replace(self, **changes)


def _non_empty_list(name, value):
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise InvalidArgument(f"{name} must be a list of strings")
    cleaned = [str(v).strip() for v in value if v is not None and str(v).strip()]
    if not cleaned:
        raise InvalidArgument(f"{name} must not be empty")
    return cleaned


def _bounded_int(name, value, low, high):
    if isinstance(value, bool):
        raise InvalidArgument(f"{name} must be an integer")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"{name} must be an integer")
    if not low <= number <= high:
        raise InvalidArgument(f"{name} must be between {low} and {high}")
    return number


DEFAULT_MONITORING_CONFIG = MonitoringConfig(
    keywords=['interview preparation', 'mock interview', 'coding interview'],
    partitions=['cscareerquestions', 'jobs', 'careerguidance', 'recruitinghell'],
    interval='*/30 * * * *',
    limit=25,
    min_score=60,
    source='default',
)


def _from_mapping(data: dict, source: str) -> MonitoringConfig:
    """Build a config from parsed YAML; missing keys keep the defaults."""
    config = DEFAULT_MONITORING_CONFIG.merged(
        keywords=data.get('keywords'),
        partitions=data.get('partitions', data.get('subreddits')),
        interval=data.get('interval'),
        limit=data.get('limit'),
        min_score=data.get('min_score'),
    )
    return dataclasses.replace(config, source=source)


def load_monitoring_config(path: Optional[str]) -> MonitoringConfig:
    """Load the YAML monitoring config, falling back to the defaults on failure."""
    if not path:
        logger.info("No monitoring config path set, using defaults")
        return DEFAULT_MONITORING_CONFIG

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        section = data.get('monitoring', data) if isinstance(data, dict) else None
        if not isinstance(section, dict):
            raise InvalidArgument(f"monitoring section of {path} must be a mapping")
        config = _from_mapping(section, source=path)
    except (OSError, yaml.YAMLError, InvalidArgument) as e:
        logger.warning("Monitoring config not loaded from %s (%s), using defaults", path, e)
        return DEFAULT_MONITORING_CONFIG

    logger.info(
        "Monitoring config loaded from %s (%d keywords, %d subreddits, interval=%s)",
        path, len(config.keywords), len(config.partitions), config.interval,
    )
    return config
