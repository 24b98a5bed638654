import json
import logging
import random
from typing import Any, Optional

import redis

from wandernest.core.config import REDIS_URL, settings

from .json_utils import dumps

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None

MATCH_KEY_PREFIX = "match"
STUDENT_KEY_PREFIX = "student"


class _NullRedis:
    """No-op Redis client used when Redis is disabled or unavailable.

    Methods mirror the minimal surface used in this codebase so callers can
    proceed without needing try/except around get_redis_client().
    """

    def get(self, key: str):
        return None

    def setex(self, key: str, expire: int, value: str):
        return None

    def delete(self, *keys: str):
        return 0

    def close(self):
        return None


def get_redis_client() -> redis.Redis:
    global _redis_client
    if _redis_client is None:
        url = (REDIS_URL or "").strip()
        # Allow disabling via empty/none/disabled/false
        if not url or url.lower() in {"none", "disabled", "false", "0"}:
            _redis_client = _NullRedis()  # type: ignore[assignment]
            return _redis_client
        try:
            # Conservative socket timeouts so a slow Redis never stalls a
            # match lookup; the cache is never authoritative.
            _redis_client = redis.from_url(
                url,
                decode_responses=True,
                socket_connect_timeout=0.5,
                socket_timeout=0.5,
            )
        except (redis.exceptions.RedisError, ValueError) as exc:
            logger.warning("Redis disabled, could not create client: %s", exc)
            _redis_client = _NullRedis()  # type: ignore[assignment]
    return _redis_client


def _apply_jitter(expire: int) -> int:
    """Return a TTL with a small random jitter to prevent cache stampedes."""
    return expire + random.randint(0, max(1, expire // 10))


class _JsonCache:
    """JSON values in Redis under ``<prefix>:<id>[:<suffix>]`` keys.

    Every Redis failure is logged and treated as a miss; callers can always
    recompute from the database.
    """

    prefix = ""
    suffix = ""
    default_ttl = 300

    def __init__(self, client: Any = None, ttl: Optional[int] = None) -> None:
        self.client = client if client is not None else get_redis_client()
        self.ttl = ttl or self.default_ttl

    def key(self, entity_id: str) -> str:
        key = f"{self.prefix}:{entity_id}"
        return f"{key}:{self.suffix}" if self.suffix else key

    def get(self, entity_id: str) -> Any | None:
        key = self.key(entity_id)
        try:
            data = self.client.get(key)
        except redis.exceptions.RedisError as exc:
            logger.warning("Redis unavailable: %s", exc)
            return None
        if not data:
            return None
        try:
            return json.loads(data)
        except (TypeError, ValueError) as exc:
            # Treat malformed payloads as cache misses instead of 500s.
            logger.warning("Could not decode cache entry %s: %s", key, exc)
            return None

    def set(self, entity_id: str, value: Any) -> None:
        try:
            self.client.setex(self.key(entity_id), _apply_jitter(self.ttl), dumps(value))
        except redis.exceptions.RedisError as exc:
            logger.warning("Could not cache %s: %s", self.key(entity_id), exc)

    def invalidate(self, entity_id: str) -> None:
        try:
            self.client.delete(self.key(entity_id))
        except redis.exceptions.RedisError as exc:
            logger.warning("Could not clear %s: %s", self.key(entity_id), exc)


class MatchCache(_JsonCache):
    """Short-lived ranked match lists per tourist request."""

    prefix = MATCH_KEY_PREFIX
    default_ttl = settings.MATCH_CACHE_TTL


class StudentMetricsCache(_JsonCache):
    """Per-guide rating/reliability summary shown on match cards."""

    prefix = STUDENT_KEY_PREFIX
    suffix = "metrics"
    default_ttl = settings.STUDENT_METRICS_CACHE_TTL
