"""
Analytics Event Worker

Consumes analytics events from the queue and writes them to the
``analytics_events`` table, then keeps the daily / hourly aggregate tables
fresh.

Architecture:
- Consumes messages in batches
- Inserts events and bumps tracking link click counters in one transaction
- Acknowledges events only after they are committed; unacknowledged events
  are redelivered by the queue, and a failed batch is retried one event at
  a time so a single bad event cannot hold back the rest
- Rebuilds the aggregate tables every ``analytics_refresh_interval`` seconds
"""

import asyncio
import logging
import signal
import sys
import time
from typing import List, Optional

from dashboard_app.config import settings
from dashboard_app.database.connection import SessionLocal
from dashboard_app.logging_config import configure_logging
from dashboard_app.queue.models import AnalyticsEventMessage
from dashboard_app.queue.strategies import QueueStrategy
from dashboard_app.services.analytics_views import AnalyticsViewService
from dashboard_app.services.event_service import EventService

logger = logging.getLogger(__name__)


class AnalyticsEventWorker:
    def __init__(
        self,
        queue: QueueStrategy,
        db_session_factory=SessionLocal,
        batch_size: Optional[int] = None,
        refresh_interval: Optional[int] = None,
    ):
        """
        Args:
            queue: Queue strategy to consume from
            db_session_factory: Factory for database sessions
            batch_size: Messages per batch (defaults to settings)
            refresh_interval: Seconds between aggregate rebuilds; 0 disables
        """
        self.queue = queue
        self.db_session_factory = db_session_factory
        self.batch_size = batch_size or settings.queue_batch_size
        self.refresh_interval = (
            settings.analytics_refresh_interval if refresh_interval is None else refresh_interval
        )
        self.running = False
        self.processed_count = 0
        self.last_refresh = time.monotonic()

    async def start(self):
        """Run until stopped by a signal or stop()."""
        self.running = True
        logger.info(
            "[Worker] Started (batch size %d, refresh every %ss)",
            self.batch_size, self.refresh_interval,
        )

        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

        while self.running:
            try:
                await self.run_once(block_time=1000)
                self.refresh_if_due()
            except asyncio.CancelledError:
                logger.info("[Worker] Task cancelled")
                break
            except Exception:
                logger.exception("[Worker] Unexpected error in worker loop")
                await asyncio.sleep(1)

        logger.info("[Worker] Stopped after %d events", self.processed_count)

    async def run_once(self, block_time: int = 0) -> int:
        """
        Process one batch. Returns the number of events stored; events
        that fail to persist are left unacknowledged for redelivery.
        """
        messages = await self.queue.consume(
            queue_name=settings.queue_name,
            batch_size=self.batch_size,
            block_time=block_time,
        )
        if not messages:
            return 0

        try:
            self._persist(messages)
            stored_messages = messages
        except Exception:
            logger.exception("[Worker] Failed to store batch of %d events", len(messages))
            stored_messages = self._persist_each(messages)

        message_ids = [message.message_id for message in stored_messages if message.message_id]
        if message_ids:
            await self.queue.ack(settings.queue_name, message_ids)

        stored = len(stored_messages)
        self.processed_count += stored
        logger.debug("[Worker] Stored %d events (total %d)", stored, self.processed_count)
        return stored

    async def drain(self) -> int:
        """Process batches until the queue is empty."""
        total = 0
        while True:
            stored = await self.run_once()
            if not stored:
                return total
            total += stored

    def _persist(self, messages: List[AnalyticsEventMessage]) -> int:
        db = self.db_session_factory()
        try:
            return EventService.persist_batch(db, messages)
        finally:
            db.close()

    def _persist_each(self, messages: List[AnalyticsEventMessage]) -> List[AnalyticsEventMessage]:
        stored = []
        for message in messages:
            try:
                self._persist([message])
            except Exception as e:
                logger.warning(
                    "[Worker] Event %s not stored (delivery %d): %s",
                    message.message_id, message.delivery_count, e,
                )
                continue
            stored.append(message)
        return stored

    def refresh_if_due(self) -> bool:
        if not self.refresh_interval:
            return False
        if time.monotonic() - self.last_refresh < self.refresh_interval:
            return False
        self.refresh_views()
        return True

    def refresh_views(self):
        db = self.db_session_factory()
        try:
            return AnalyticsViewService(db).refresh()
        except Exception:
            logger.exception("[Worker] Aggregate refresh failed")
            return None
        finally:
            self.last_refresh = time.monotonic()
            db.close()

    def _signal_handler(self, signum, frame):
        logger.info("[Worker] Received signal %s, shutting down", signum)
        self.stop()

    def stop(self):
        self.running = False


async def main():
    """
    Entry point.

    Usage:
        python -m dashboard_app.event_processor.event_worker
    """
    configure_logging()
    logger.info(
        "[Worker] Environment: %s, queue backend: %s",
        settings.environment, settings.queue_backend,
    )

    from dashboard_app.queue.factory import QueueBackend, QueueFactory
    queue = QueueFactory.create(QueueBackend(settings.queue_backend))

    worker = AnalyticsEventWorker(queue=queue)
    try:
        await worker.start()
    except KeyboardInterrupt:
        logger.info("[Worker] Interrupted")
    except Exception:
        logger.exception("[Worker] Fatal error")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
