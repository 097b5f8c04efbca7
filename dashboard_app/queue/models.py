"""
Data models for queue messages.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from dashboard_app.utils import utcnow


class AnalyticsEventMessage(BaseModel):
    """
    One analytics event on its way to the ``analytics_events`` table.

    Published by the tracking redirects and the public ingestion endpoint;
    the event worker persists it. ``increment_link_clicks`` asks the worker
    to bump the tracking link's ``click_count`` in the same transaction.
    """

    event_type: str = Field(..., description="page_view, link_click, story_view, ...")
    timestamp: datetime = Field(default_factory=utcnow, description="When the event happened (UTC)")

    # Attribution
    model_id: Optional[str] = None
    model_slug: Optional[str] = None
    tracking_link_id: Optional[str] = None
    source_id: Optional[str] = None
    subtag_id: Optional[str] = None
    is_tracking_visit: bool = False
    increment_link_clicks: bool = False

    # Request metadata
    page_path: Optional[str] = None
    country: Optional[str] = Field(None, description="ISO 3166-1 alpha-2 code")
    city: Optional[str] = None
    referrer: Optional[str] = None
    user_agent: Optional[str] = None

    # Set by the queue backend on consume, never serialized
    message_id: Optional[str] = Field(None, exclude=True)
    delivery_count: int = Field(0, exclude=True)

    model_config = ConfigDict(
        protected_namespaces=(),
        json_schema_extra={
            "example": {
                "event_type": "page_view",
                "timestamp": "2025-03-02T10:30:00",
                "model_slug": "luna",
                "tracking_link_id": "7f0c2a9e-8d7b-4c43-9a8e-3f3f9a4c1b2d",
                "is_tracking_visit": True,
                "country": "US",
                "city": "Austin",
                "referrer": "https://instagram.com/",
                "user_agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)",
            }
        }
    )
