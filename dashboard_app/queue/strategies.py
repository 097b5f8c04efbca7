"""
Queue strategies (Strategy Pattern).

Analytics events are written off the request path: handlers publish an
AnalyticsEventMessage and return, the event worker consumes in batches.
"""

import itertools
import json
import logging
import os
import socket
from abc import ABC, abstractmethod
from collections import deque
from typing import Deque, Dict, List

from .models import AnalyticsEventMessage

logger = logging.getLogger(__name__)


class QueueStrategy(ABC):
    """
    Interface shared by all queue backends.

    Consumed messages stay pending until acknowledged; unacknowledged
    messages are delivered again until they exceed the delivery limit.
    """

    name = "base"

    @abstractmethod
    async def publish(self, queue_name: str, message: AnalyticsEventMessage) -> bool:
        """Append a message; False if the backend rejected it."""

    @abstractmethod
    async def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: int = 1000
    ) -> List[AnalyticsEventMessage]:
        """
        Read up to ``batch_size`` messages, redelivered ones first.

        Args:
            queue_name: Name of the queue
            batch_size: Maximum number of messages to retrieve
            block_time: Time to wait for messages (milliseconds)
        """

    @abstractmethod
    async def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        """Mark messages as processed."""

    @abstractmethod
    async def get_queue_length(self, queue_name: str) -> int:
        """Number of messages not yet consumed."""


class RedisStreamQueue(QueueStrategy):
    """
    Redis Streams backend.

    XADD to publish, XREADGROUP with a consumer group to read and XACK
    once the batch is committed. Several workers may share the group.

    Entries left pending longer than ``claim_idle_ms`` (a failed batch, or
    a worker that died mid-batch) are taken over with XAUTOCLAIM before new
    entries are read. An entry delivered more than ``max_deliveries`` times
    is copied to ``<queue>:dead-letter`` and acknowledged.
    """

    name = "redis_streams"

    def __init__(
        self,
        redis_client,
        consumer_group: str = "analytics_workers",
        claim_idle_ms: int = 60000,
        max_deliveries: int = 5,
    ):
        self.redis = redis_client
        self.consumer_group = consumer_group
        self.consumer_name = f"worker-{socket.gethostname()}-{os.getpid()}"
        self.claim_idle_ms = claim_idle_ms
        self.max_deliveries = max_deliveries
        self._initialized_streams = set()

    async def _ensure_stream_exists(self, queue_name: str):
        if queue_name in self._initialized_streams:
            return

        try:
            self.redis.xgroup_create(
                name=queue_name,
                groupname=self.consumer_group,
                id="0",
                mkstream=True
            )
            logger.info("[Queue] Created Redis stream %s", queue_name)
        except Exception as e:
            # BUSYGROUP means the group already exists
            if "BUSYGROUP" not in str(e):
                logger.warning("[Queue] Stream creation warning: %s", e)

        self._initialized_streams.add(queue_name)

    async def publish(self, queue_name: str, message: AnalyticsEventMessage) -> bool:
        try:
            await self._ensure_stream_exists(queue_name)
            self.redis.xadd(queue_name, {"data": message.model_dump_json()})
            return True
        except Exception as e:
            logger.error("[Queue] Redis publish failed: %s", e)
            return False

    def _claim_stale(self, queue_name: str, count: int) -> list:
        """Take over entries pending longer than claim_idle_ms."""
        claimed = self.redis.xautoclaim(
            queue_name,
            self.consumer_group,
            self.consumer_name,
            min_idle_time=self.claim_idle_ms,
            start_id="0-0",
            count=count,
        )
        # [next_start_id, entries] or [next_start_id, entries, deleted_ids]
        return [entry for entry in claimed[1] if entry[1]]

    def _delivery_counts(self, queue_name: str, entries: list) -> Dict[bytes, int]:
        if not entries:
            return {}
        pending = self.redis.xpending_range(
            queue_name,
            self.consumer_group,
            min=entries[0][0],
            max=entries[-1][0],
            count=len(entries),
            consumername=self.consumer_name,
        )
        return {item["message_id"]: item["times_delivered"] for item in pending}

    def _dead_letter(self, queue_name: str, message_id, fields, reason: str):
        logger.warning("[Queue] Moving %s to dead-letter (%s)", message_id, reason)
        self.redis.xadd(
            f"{queue_name}:dead-letter",
            {"data": fields.get(b"data", b""), "reason": reason, "source_id": message_id},
        )
        self.redis.xack(queue_name, self.consumer_group, message_id)

    async def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: int = 1000
    ) -> List[AnalyticsEventMessage]:
        try:
            await self._ensure_stream_exists(queue_name)

            entries = self._claim_stale(queue_name, batch_size)
            delivered = self._delivery_counts(queue_name, entries)

            if len(entries) < batch_size:
                # '>' = messages never delivered to this group; BLOCK 0 would wait forever
                messages = self.redis.xreadgroup(
                    groupname=self.consumer_group,
                    consumername=self.consumer_name,
                    streams={queue_name: ">"},
                    count=batch_size - len(entries),
                    block=(block_time or None) if not entries else None,
                )
                for _stream_name, stream_messages in messages or []:
                    entries.extend(stream_messages)

            events = []
            for message_id, message_data in entries:
                deliveries = delivered.get(message_id, 1)
                if deliveries > self.max_deliveries:
                    self._dead_letter(
                        queue_name, message_id, message_data, f"delivered {deliveries} times"
                    )
                    continue
                try:
                    data = json.loads(message_data[b"data"].decode("utf-8"))
                    event = AnalyticsEventMessage(**data)
                except Exception as e:
                    self._dead_letter(queue_name, message_id, message_data, f"unparseable: {e}")
                    continue
                event.message_id = message_id.decode("utf-8")
                event.delivery_count = deliveries
                events.append(event)
            return events

        except Exception as e:
            logger.error("[Queue] Redis consume failed: %s", e)
            return []

    async def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        if not message_ids:
            return True
        try:
            self.redis.xack(queue_name, self.consumer_group, *message_ids)
            return True
        except Exception as e:
            logger.error("[Queue] Redis ack failed: %s", e)
            return False

    async def get_queue_length(self, queue_name: str) -> int:
        try:
            info = self.redis.xinfo_stream(queue_name)
            return info["length"]
        except Exception:
            return 0


class InMemoryQueue(QueueStrategy):
    """
    Per-process deque backend for development and tests.

    Consumed messages move to a pending map until acked. The next consume
    hands unacked messages out again before new ones, and a message that
    has already been delivered ``max_deliveries`` times goes to the
    dead-letter list instead.
    """

    name = "memory"

    def __init__(self, max_deliveries: int = 5):
        self.max_deliveries = max_deliveries
        self._queues: Dict[str, Deque[AnalyticsEventMessage]] = {}
        self._pending: Dict[str, Dict[str, AnalyticsEventMessage]] = {}
        self._dead_letters: Dict[str, List[AnalyticsEventMessage]] = {}
        self._ids = itertools.count(1)

    def _get_queue(self, queue_name: str) -> Deque[AnalyticsEventMessage]:
        if queue_name not in self._queues:
            self._queues[queue_name] = deque()
            self._pending[queue_name] = {}
            self._dead_letters[queue_name] = []
        return self._queues[queue_name]

    async def publish(self, queue_name: str, message: AnalyticsEventMessage) -> bool:
        stored = message.model_copy(update={"message_id": str(next(self._ids))})
        self._get_queue(queue_name).append(stored)
        return True

    async def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: int = 1000
    ) -> List[AnalyticsEventMessage]:
        # block_time is ignored; an empty queue returns immediately
        queue = self._get_queue(queue_name)
        pending = self._pending[queue_name]
        messages = []

        for message_id, message in list(pending.items()):
            if len(messages) >= batch_size:
                break
            if message.delivery_count >= self.max_deliveries:
                logger.warning(
                    "[Queue] Moving %s to dead-letter after %d deliveries",
                    message_id, message.delivery_count,
                )
                self._dead_letters[queue_name].append(pending.pop(message_id))
                continue
            message.delivery_count += 1
            messages.append(message)

        while queue and len(messages) < batch_size:
            message = queue.popleft()
            message.delivery_count = 1
            pending[message.message_id] = message
            messages.append(message)
        return messages

    async def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        self._get_queue(queue_name)
        pending = self._pending[queue_name]
        for message_id in message_ids:
            pending.pop(message_id, None)
        return True

    async def get_queue_length(self, queue_name: str) -> int:
        return len(self._get_queue(queue_name))

    def pending_count(self, queue_name: str) -> int:
        self._get_queue(queue_name)
        return len(self._pending[queue_name])

    def dead_letters(self, queue_name: str) -> List[AnalyticsEventMessage]:
        self._get_queue(queue_name)
        return list(self._dead_letters[queue_name])
