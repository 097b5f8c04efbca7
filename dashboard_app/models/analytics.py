from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Integer,
    String,
    Text,
)

from dashboard_app.database.connection import Base
from dashboard_app.utils import new_uuid, utcnow


class AnalyticsEvent(Base):
    """
    Raw analytics event.

    Written only by the event worker. Dashboards never scan this table
    directly except for small windows (live pulse, per-link fallback);
    they read the aggregate tables below.
    """
    __tablename__ = "analytics_events"

    id = Column(String(36), primary_key=True, default=new_uuid)
    event_type = Column(String(32), nullable=False, index=True)
    model_id = Column(String(36), nullable=True, index=True)
    model_slug = Column(String(200), nullable=True, index=True)
    tracking_link_id = Column(String(36), nullable=True, index=True)
    source_id = Column(String(36), nullable=True)
    subtag_id = Column(String(36), nullable=True)
    is_tracking_visit = Column(Boolean, default=False, nullable=False)
    page_path = Column(Text, nullable=True)
    country = Column(String(2), nullable=True)
    city = Column(String(200), nullable=True)
    referrer = Column(Text, nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)


class DailyStat(Base):
    """
    Pre-aggregated daily counters, rebuilt by AnalyticsViewService.refresh().

    ``traffic_source`` is the tracking link id, or "organic" for visits
    without one.
    """
    __tablename__ = "analytics_daily_stats"

    date = Column(Date, primary_key=True)
    model_slug = Column(String(200), primary_key=True)
    country = Column(String(16), primary_key=True)
    traffic_source = Column(String(36), primary_key=True)
    views = Column(Integer, default=0, nullable=False)
    clicks = Column(Integer, default=0, nullable=False)
    total_events = Column(Integer, default=0, nullable=False)


class HourlyStat(Base):
    __tablename__ = "analytics_hourly_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    hour = Column(DateTime, nullable=False, index=True)
    model_slug = Column(String(200), nullable=False)
    tracking_link_id = Column(String(36), nullable=True)
    country = Column(String(16), nullable=False)
    views = Column(Integer, default=0, nullable=False)
    clicks = Column(Integer, default=0, nullable=False)


class SystemConfig(Base):
    """Key/value settings written at runtime (e.g. last aggregate refresh)."""
    __tablename__ = "system_config"

    key = Column(String(100), primary_key=True)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
