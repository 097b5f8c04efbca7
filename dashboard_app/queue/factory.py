"""
Factory for the process-wide event queue.
"""

import logging
from enum import Enum

from dashboard_app.config import settings
from .strategies import InMemoryQueue, QueueStrategy, RedisStreamQueue

logger = logging.getLogger(__name__)


class QueueBackend(Enum):
    """Available queue backends"""
    REDIS_STREAMS = "redis_streams"
    MEMORY = "memory"


class QueueFactory:
    """Builds the queue once; falls back to in-memory if Redis is down."""

    _instance: QueueStrategy = None

    @classmethod
    def create(cls, backend: QueueBackend) -> QueueStrategy:
        if cls._instance is not None:
            return cls._instance

        if backend == QueueBackend.REDIS_STREAMS:
            import redis

            try:
                redis_client = redis.from_url(
                    settings.redis_url,
                    decode_responses=False,
                    socket_connect_timeout=2,
                    socket_timeout=2,
                )
                redis_client.ping()
                cls._instance = RedisStreamQueue(
                    redis_client,
                    consumer_group=settings.queue_consumer_group,
                    claim_idle_ms=settings.queue_claim_idle_ms,
                    max_deliveries=settings.queue_max_deliveries,
                )
                logger.info("[Queue] Redis stream queue initialized")
            except Exception as e:
                logger.warning("[Queue] Redis unavailable (%s), using in-memory queue", e)
                cls._instance = InMemoryQueue(max_deliveries=settings.queue_max_deliveries)

        elif backend == QueueBackend.MEMORY:
            cls._instance = InMemoryQueue(max_deliveries=settings.queue_max_deliveries)
            logger.info("[Queue] In-memory queue initialized")

        else:
            raise ValueError(f"Unknown queue backend: {backend}")

        return cls._instance

    @classmethod
    def clear_instance(cls):
        """Forget the cached instance (tests)."""
        cls._instance = None
