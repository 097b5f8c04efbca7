import logging
from collections import Counter
from typing import List, Optional
from urllib.parse import urlparse

from fastapi import Request
from sqlalchemy.orm import Session

from dashboard_app.config import settings
from dashboard_app.errors import BadRequestError
from dashboard_app.models.analytics import AnalyticsEvent
from dashboard_app.models.tracking import TrackingLink
from dashboard_app.queue.models import AnalyticsEventMessage
from dashboard_app.queue.strategies import QueueStrategy
from dashboard_app.schemas.analytics import EventCreate
from dashboard_app.schemas.tracking import CachedTrackingLink
from dashboard_app.services import request_metadata
from dashboard_app.services.bot_detection import is_bot
from dashboard_app.utils import to_naive_utc

logger = logging.getLogger(__name__)

EVENT_TYPES = ("page_view", "link_click", "story_view", "bridge_view", "conversion")


class EventService:
    """
    Produces analytics events and persists them.

    Request handlers only publish to the queue and return; the event
    worker calls ``persist_batch`` to write rows and bump link click
    counters in one transaction.
    """

    def __init__(self, queue: Optional[QueueStrategy] = None):
        self.queue = queue

    async def publish(self, message: AnalyticsEventMessage) -> bool:
        if not self.queue:
            return False
        published = await self.queue.publish(settings.queue_name, message)
        if not published:
            logger.warning("[Events] Dropped %s event, queue unavailable", message.event_type)
        return published

    @staticmethod
    def message_from_request(request: Request, event_type: str, **fields) -> AnalyticsEventMessage:
        return AnalyticsEventMessage(
            event_type=event_type,
            country=request_metadata.get_country(request),
            city=request_metadata.get_city(request),
            referrer=request_metadata.get_referrer(request),
            user_agent=request_metadata.get_user_agent(request),
            **fields,
        )

    async def ingest(self, request: Request, body: EventCreate) -> AnalyticsEventMessage:
        """Public ingestion endpoint: validate and enqueue one event."""
        if not body.event_type:
            raise BadRequestError("eventType is required")
        if body.event_type not in EVENT_TYPES:
            raise BadRequestError(f"eventType must be one of: {', '.join(EVENT_TYPES)}")

        page_path = body.page_path
        if not page_path:
            referrer = request.headers.get("referer")
            page_path = urlparse(referrer).path if referrer else request.url.path

        message = self.message_from_request(
            request,
            body.event_type,
            model_id=body.model_id,
            model_slug=body.model_slug,
            tracking_link_id=body.tracking_link_id,
            page_path=page_path,
        )
        await self.publish(message)
        return message

    async def track_visit(self, request: Request, link: CachedTrackingLink) -> bool:
        """Attributed page view from ``/model/<slug>/<tracking_slug>``."""
        if is_bot(request.headers.get("user-agent")):
            return False
        message = self.message_from_request(
            request,
            "page_view",
            model_id=link.model_id,
            model_slug=link.model_slug,
            tracking_link_id=link.id,
            source_id=link.source_id,
            subtag_id=link.subtag_id,
            is_tracking_visit=True,
            increment_link_clicks=True,
            page_path=f"/model/{link.model_slug}",
        )
        return await self.publish(message)

    async def track_click(self, request: Request, link: TrackingLink) -> bool:
        """Click on a shareable ``/go/<slug>`` or ``/api/track/<id>`` link."""
        if is_bot(request.headers.get("user-agent")):
            return False
        message = self.message_from_request(
            request,
            "link_click",
            model_id=link.model_id,
            model_slug=link.model_slug,
            tracking_link_id=link.id,
            source_id=link.source_id,
            subtag_id=link.subtag_id,
            is_tracking_visit=True,
            increment_link_clicks=True,
            page_path=request.url.path,
        )
        return await self.publish(message)

    @staticmethod
    def persist_batch(db: Session, messages: List[AnalyticsEventMessage]) -> int:
        """Insert events and increment click counters; all or nothing."""
        click_counts = Counter(
            message.tracking_link_id
            for message in messages
            if message.increment_link_clicks and message.tracking_link_id
        )
        try:
            db.add_all(
                AnalyticsEvent(
                    event_type=message.event_type,
                    model_id=message.model_id,
                    model_slug=message.model_slug,
                    tracking_link_id=message.tracking_link_id,
                    source_id=message.source_id,
                    subtag_id=message.subtag_id,
                    is_tracking_visit=message.is_tracking_visit,
                    page_path=message.page_path,
                    country=message.country,
                    city=message.city,
                    referrer=message.referrer,
                    user_agent=message.user_agent,
                    created_at=to_naive_utc(message.timestamp),
                )
                for message in messages
            )
            for link_id, count in click_counts.items():
                db.query(TrackingLink).filter(TrackingLink.id == link_id).update(
                    {TrackingLink.click_count: TrackingLink.click_count + count},
                    synchronize_session=False,
                )
            db.commit()
        except Exception:
            db.rollback()
            raise
        return len(messages)
