"""
Factory for the process-wide cache instance.
"""

import logging
from enum import Enum

from dashboard_app.config import settings
from .strategies import CacheStrategy, InMemoryCache, NullCache, RedisCache

logger = logging.getLogger(__name__)


class CacheBackend(Enum):
    """Available cache backends"""
    REDIS = "redis"
    MEMORY = "memory"
    NULL = "null"


class CacheFactory:
    """
    Builds the cache once and hands out the same instance afterwards.

    A Redis backend that cannot be reached at startup degrades to the
    in-memory cache so the API still serves requests.
    """

    _instance: CacheStrategy = None

    @classmethod
    def create(cls, backend: CacheBackend) -> CacheStrategy:
        if cls._instance is not None:
            return cls._instance

        if backend == CacheBackend.REDIS:
            import redis

            try:
                redis_client = redis.from_url(
                    settings.redis_url,
                    decode_responses=False,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                )
                redis_client.ping()
                cls._instance = RedisCache(redis_client)
                logger.info("[Cache] Redis cache initialized")
            except Exception as e:
                logger.warning("[Cache] Redis unavailable (%s), using in-memory cache", e)
                cls._instance = InMemoryCache()

        elif backend == CacheBackend.MEMORY:
            cls._instance = InMemoryCache()
            logger.info("[Cache] In-memory cache initialized")

        elif backend == CacheBackend.NULL:
            cls._instance = NullCache()
            logger.info("[Cache] Caching disabled")

        else:
            raise ValueError(f"Unknown cache backend: {backend}")

        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Forget the cached instance (tests)."""
        cls._instance = None
