"""
Cache strategies (Strategy Pattern).

The dashboard caches two lookups that sit on hot paths: organization API
keys (every org request) and tracking links (every attributed redirect).
Values are JSON strings; callers own the serialization.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class CacheStrategy(ABC):
    """
    Interface shared by all cache backends.

    Methods are async because the production backend does network I/O;
    a cache failure must never fail the request, so implementations
    return None/False instead of raising.
    """

    name = "base"

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the cached value or None on a miss."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl: int = 3600) -> bool:
        """Store ``value`` for ``ttl`` seconds."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``; True if something was removed."""

    @abstractmethod
    async def clear(self) -> bool:
        """Drop every entry."""


class RedisCache(CacheStrategy):
    """
    Redis-backed cache shared by every API process.

    Uses SETEX so expiry is enforced server side.
    """

    name = "redis"

    def __init__(self, redis_client):
        self.redis = redis_client

    async def get(self, key: str) -> Optional[str]:
        try:
            value = self.redis.get(key)
            return value.decode("utf-8") if value else None
        except Exception as e:
            logger.warning("[Cache] Redis get failed for %s: %s", key, e)
            return None

    async def set(self, key: str, value: str, ttl: int = 3600) -> bool:
        try:
            return bool(self.redis.setex(key, ttl, value))
        except Exception as e:
            logger.warning("[Cache] Redis set failed for %s: %s", key, e)
            return False

    async def delete(self, key: str) -> bool:
        try:
            return bool(self.redis.delete(key))
        except Exception as e:
            logger.warning("[Cache] Redis delete failed for %s: %s", key, e)
            return False

    async def clear(self) -> bool:
        try:
            self.redis.flushdb()
            return True
        except Exception as e:
            logger.warning("[Cache] Redis clear failed: %s", e)
            return False


class InMemoryCache(CacheStrategy):
    """
    Per-process dict cache with lazy expiry.

    Good for development and tests. Entries past their TTL are dropped
    when read.
    """

    name = "memory"

    def __init__(self):
        self._cache: Dict[str, Tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= time.monotonic():
            del self._cache[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl: int = 3600) -> bool:
        self._cache[key] = (value, time.monotonic() + ttl)
        return True

    async def delete(self, key: str) -> bool:
        return self._cache.pop(key, None) is not None

    async def clear(self) -> bool:
        self._cache.clear()
        return True


class NullCache(CacheStrategy):
    """Null Object: every read misses, every write succeeds."""

    name = "null"

    async def get(self, key: str) -> Optional[str]:
        return None

    async def set(self, key: str, value: str, ttl: int = 3600) -> bool:
        return True

    async def delete(self, key: str) -> bool:
        return True

    async def clear(self) -> bool:
        return True
