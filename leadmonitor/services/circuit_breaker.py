"""
Circuit breakers for the two upstreams (Reddit search, OpenAI scoring).

State lives in one Redis hash per breaker so it survives worker restarts:

    cb:{name}  → state, failures, opened_at, success, failure, last_error

  - CLOSED    → calls pass through
  - OPEN      → calls short-circuit with CircuitOpenError until reset_timeout
  - HALF_OPEN → one probe call is let through; success closes, failure re-opens

If Redis is unreachable the breaker fails open (acts as CLOSED) and stops
counting; the upstream call itself is never blocked by a Redis outage.
"""
import logging
import time

import redis

logger = logging.getLogger('services.circuit_breaker')

CLOSED = 'closed'
OPEN = 'open'
HALF_OPEN = 'half_open'

_REDIS_ERRORS = (redis.RedisError, OSError)


class CircuitOpenError(Exception):
    """Raised when calling through an open circuit breaker."""

    def __init__(self, name, retry_after=None):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{name}' is OPEN — service unavailable")


class CircuitBreaker:
    """
    Redis-backed circuit breaker.

    Usage:
        cb = CircuitBreaker('reddit', redis_client, failure_threshold=5, reset_timeout=120)
        page = cb.call(session.get, url, params=params)
    """

    def __init__(self, name, redis_client, failure_threshold=5, reset_timeout=60, clock=time.time):
        self.name = name
        self.redis = redis_client
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self._clock = clock

    @property
    def key(self):
        return f'cb:{self.name}'

    def _read(self):
        try:
            return self.redis.hgetall(self.key) or {}
        except _REDIS_ERRORS:
            return {}

    def _write(self, **fields):
        try:
            self.redis.hset(self.key, mapping={k: str(v) for k, v in fields.items()})
        except _REDIS_ERRORS:
            logger.debug("Redis unavailable, breaker '%s' not persisted", self.name)

    def _incr(self, field):
        try:
            return int(self.redis.hincrby(self.key, field, 1))
        except _REDIS_ERRORS:
            return 0

    # ── State ─────────────────────────────────────────────────────────

    def _state_from(self, data):
        state = data.get('state') or CLOSED
        if state == OPEN:
            opened_at = float(data.get('opened_at') or 0)
            if self._clock() - opened_at >= self.reset_timeout:
                return HALF_OPEN
        return state

    @property
    def state(self):
        return self._state_from(self._read())

    def call(self, func, *args, **kwargs):
        """Execute func through the breaker."""
        data = self._read()
        state = self._state_from(data)
        if state == OPEN:
            opened_at = float(data.get('opened_at') or 0)
            retry_after = max(0.0, self.reset_timeout - (self._clock() - opened_at))
            raise CircuitOpenError(self.name, retry_after=retry_after)
        if state == HALF_OPEN:
            logger.info("Circuit '%s' HALF_OPEN — sending probe request", self.name)

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._on_failure(e, probing=state == HALF_OPEN)
            raise
        self._on_success()
        return result

    def _on_success(self):
        self._incr('success')
        self._write(state=CLOSED, failures=0, last_success=self._clock())

    def _on_failure(self, error, probing=False):
        self._incr('failure')
        failures = self._incr('failures')
        self._write(last_failure=self._clock(), last_error=str(error)[:200])
        if probing or failures >= self.failure_threshold:
            self._write(state=OPEN, opened_at=self._clock())
            logger.warning(
                "Circuit '%s' OPENED after %d failures (threshold=%d): %s",
                self.name, failures, self.failure_threshold, error,
            )
        else:
            logger.info("Circuit '%s' failure %d/%d: %s", self.name, failures, self.failure_threshold, error)

    def reset(self):
        """Manually close the breaker and clear its counters."""
        try:
            self.redis.delete(self.key)
            logger.info("Circuit '%s' manually reset to CLOSED", self.name)
        except _REDIS_ERRORS as e:
            logger.error("Failed to reset circuit '%s': %s", self.name, e)

    def get_health(self):
        """Return health metrics for the /api/health endpoint."""
        data = self._read()
        return {
            'name': self.name,
            'state': self._state_from(data),
            'failure_count': int(data.get('failures') or 0),
            'failure_threshold': self.failure_threshold,
            'reset_timeout': self.reset_timeout,
            'total_success': int(data.get('success') or 0),
            'total_failure': int(data.get('failure') or 0),
            'last_success': float(data['last_success']) if data.get('last_success') else None,
            'last_failure': float(data['last_failure']) if data.get('last_failure') else None,
            'last_error': data.get('last_error', ''),
        }


def build_breakers(redis_client):
    """Standard breakers for every upstream the monitor talks to."""
    return {
        'reddit': CircuitBreaker('reddit', redis_client, failure_threshold=5, reset_timeout=120),
        'openai': CircuitBreaker('openai', redis_client, failure_threshold=5, reset_timeout=60),
    }
