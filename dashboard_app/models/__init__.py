"""
Database models for the content dashboard.

Raw analytics events and their daily / hourly aggregates live in the same
database as the content tables; the aggregates are rebuilt by the event
worker so dashboards never scan the raw table.
"""

from .organization import Organization
from .model import Model
from .tracking import TrafficSource, TrackingSubtag, TrackingLink
from .media import GalleryItem, StoryGroup, Story
from .analytics import AnalyticsEvent, DailyStat, HourlyStat, SystemConfig

__all__ = [
    "Organization",
    "Model",
    "TrafficSource",
    "TrackingSubtag",
    "TrackingLink",
    "GalleryItem",
    "StoryGroup",
    "Story",
    "AnalyticsEvent",
    "DailyStat",
    "HourlyStat",
    "SystemConfig",
]
