"""Short-lived cooldown keys, used for the OTP resend interval."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from threading import Lock

import redis

from yogic_ledger.core.settings import settings

logger = logging.getLogger(__name__)

_CACHE_LOCK = Lock()
_COOLDOWN_CACHE: dict[str, float] = {}


class CooldownService:
    """Claims cooldown keys in Redis, or in process memory without a Redis URL."""

    def __init__(
        self,
        redis_url: str | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        url = settings.redis_url if redis_url is None else redis_url
        self._redis: redis.Redis | None = redis.from_url(url) if url else None
        self._clock = clock

    def claim(self, key: str, ttl_seconds: int) -> bool:
        """Start a cooldown on ``key``; return False if one is already running."""
        if ttl_seconds <= 0:
            return True
        if self._redis is not None:
            try:
                return bool(self._redis.set(key, "1", ex=int(ttl_seconds), nx=True))
            except redis.RedisError as err:
                logger.warning("Redis unavailable for cooldowns, using process cache: %s", err)
                self._redis = None
        now = self._clock()
        with _CACHE_LOCK:
            for expired in [k for k, until in _COOLDOWN_CACHE.items() if until <= now]:
                del _COOLDOWN_CACHE[expired]
            if key in _COOLDOWN_CACHE:
                return False
            _COOLDOWN_CACHE[key] = now + ttl_seconds
            return True

    def remaining(self, key: str) -> int:
        """Return the seconds left on ``key``'s cooldown, 0 when inactive."""
        if self._redis is not None:
            try:
                ttl = self._redis.ttl(key)
                return max(0, int(ttl))
            except redis.RedisError as err:
                logger.warning("Redis unavailable for cooldowns, using process cache: %s", err)
                self._redis = None
        with _CACHE_LOCK:
            expiry = _COOLDOWN_CACHE.get(key)
        if expiry is None:
            return 0
        return max(0, int(expiry - self._clock() + 0.999))

    def clear(self, key: str) -> None:
        if self._redis is not None:
            try:
                self._redis.delete(key)
                return
            except redis.RedisError as err:
                logger.warning("Redis unavailable for cooldowns, using process cache: %s", err)
                self._redis = None
        with _CACHE_LOCK:
            _COOLDOWN_CACHE.pop(key, None)


def reset_cooldown_cache() -> None:
    """Forget every in-process cooldown."""
    with _CACHE_LOCK:
        _COOLDOWN_CACHE.clear()
