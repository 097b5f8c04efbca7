"""
Pre-aggregated analytics tables.

``analytics_daily_stats`` and ``analytics_hourly_stats`` are rebuilt from
``analytics_events`` by ``refresh()`` (called by the event worker on an
interval and on demand from the dashboard). Dashboards only read these
tables, paging through them in fixed-size chunks.
"""

import logging
import time
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence, Union

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from dashboard_app.config import settings
from dashboard_app.errors import ApiError
from dashboard_app.models.analytics import AnalyticsEvent, DailyStat, HourlyStat, SystemConfig
from dashboard_app.schemas.analytics import RefreshStatus, StatRow
from dashboard_app.services.analytics_aggregation import ORGANIC
from dashboard_app.utils import utcnow

logger = logging.getLogger(__name__)

REFRESH_STATUS_KEY = "analytics_last_refresh"
UNKNOWN_COUNTRY = "Unknown"
UNKNOWN_MODEL = "unknown"
VIEW_EVENT = "page_view"
CLICK_EVENT = "link_click"


def paginate(query: Query, page_size: int) -> List:
    """Read a stably ordered query page by page until a short page."""
    rows = []
    offset = 0
    while True:
        page = query.offset(offset).limit(page_size).all()
        rows.extend(page)
        if len(page) < page_size:
            return rows
        offset += page_size


class AnalyticsViewService:
    def __init__(self, db: Session, page_size: Optional[int] = None):
        self.db = db
        self.page_size = page_size or settings.analytics_page_size

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self) -> RefreshStatus:
        """
        Rebuild both aggregate tables from the raw events.

        Views count ``page_view`` events and clicks count ``link_click``
        events; ``total_events`` counts every event type. Visits without a
        tracking link are bucketed as ``organic``.
        """
        started = time.monotonic()
        try:
            daily = defaultdict(lambda: [0, 0, 0])
            hourly = defaultdict(lambda: [0, 0])

            events = self.db.query(
                AnalyticsEvent.created_at,
                AnalyticsEvent.event_type,
                AnalyticsEvent.model_slug,
                AnalyticsEvent.tracking_link_id,
                AnalyticsEvent.country,
            ).yield_per(5000)

            for created_at, event_type, model_slug, link_id, country in events:
                model_slug = model_slug or UNKNOWN_MODEL
                country = country or UNKNOWN_COUNTRY
                is_view = int(event_type == VIEW_EVENT)
                is_click = int(event_type == CLICK_EVENT)

                day_counts = daily[(created_at.date(), model_slug, country, link_id or ORGANIC)]
                day_counts[0] += is_view
                day_counts[1] += is_click
                day_counts[2] += 1

                hour = created_at.replace(minute=0, second=0, microsecond=0)
                hour_counts = hourly[(hour, model_slug, link_id, country)]
                hour_counts[0] += is_view
                hour_counts[1] += is_click

            self.db.query(DailyStat).delete(synchronize_session=False)
            self.db.query(HourlyStat).delete(synchronize_session=False)
            self.db.add_all(
                DailyStat(
                    date=day, model_slug=slug, country=country, traffic_source=source,
                    views=views, clicks=clicks, total_events=total,
                )
                for (day, slug, country, source), (views, clicks, total) in daily.items()
            )
            self.db.add_all(
                HourlyStat(
                    hour=hour, model_slug=slug, tracking_link_id=link_id, country=country,
                    views=views, clicks=clicks,
                )
                for (hour, slug, link_id, country), (views, clicks) in hourly.items()
            )

            status = RefreshStatus(
                timestamp=utcnow(),
                duration_ms=int((time.monotonic() - started) * 1000),
                status="success",
                rows=len(daily) + len(hourly),
            )
            self._save_status(status)
            self.db.commit()
            logger.info(
                "[Analytics] Refreshed %d daily and %d hourly rows in %dms",
                len(daily), len(hourly), status.duration_ms,
            )
            return status

        except Exception as e:
            self.db.rollback()
            logger.exception("[Analytics] View refresh failed")
            self._save_status(RefreshStatus(
                timestamp=utcnow(),
                duration_ms=int((time.monotonic() - started) * 1000),
                status="error",
                error_message=str(e),
            ))
            self.db.commit()
            raise ApiError(f"Failed to refresh views: {e}")

    def _save_status(self, status: RefreshStatus) -> None:
        value = status.model_dump(mode="json", exclude_none=True)
        row = self.db.query(SystemConfig).filter(SystemConfig.key == REFRESH_STATUS_KEY).first()
        if row:
            row.value = value
            row.updated_at = utcnow()
        else:
            self.db.add(SystemConfig(key=REFRESH_STATUS_KEY, value=value))

    def get_refresh_status(self) -> RefreshStatus:
        row = self.db.query(SystemConfig).filter(SystemConfig.key == REFRESH_STATUS_KEY).first()
        if not row or not row.value:
            return RefreshStatus()
        return RefreshStatus.model_validate(row.value)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch_daily_stats(
        self,
        start: date,
        end: date,
        models: Sequence[str] = (),
        sources: Optional[Sequence[str]] = None,
        countries: Sequence[str] = (),
    ) -> List[StatRow]:
        """
        ``sources=None`` means no source filter; an empty list means the
        filter resolved to nothing and no rows can match.
        """
        if sources is not None and not sources:
            return []

        query = self.db.query(DailyStat).filter(DailyStat.date >= start, DailyStat.date <= end)
        if models:
            query = query.filter(DailyStat.model_slug.in_(models))
        if sources:
            query = query.filter(DailyStat.traffic_source.in_(sources))
        if countries:
            query = query.filter(DailyStat.country.in_(countries))
        query = query.order_by(
            DailyStat.date, DailyStat.model_slug, DailyStat.traffic_source, DailyStat.country
        )

        return [
            StatRow(
                date=row.date.isoformat(),
                model_slug=row.model_slug,
                country=row.country,
                traffic_source=row.traffic_source,
                views=row.views,
                clicks=row.clicks,
                total_events=row.total_events,
            )
            for row in paginate(query, self.page_size)
        ]

    def fetch_hourly_stats(
        self,
        start: datetime,
        end: datetime,
        models: Sequence[str] = (),
        sources: Optional[Sequence[str]] = None,
        countries: Sequence[str] = (),
    ) -> List[StatRow]:
        """Hourly rows mapped onto the daily shape; ``date`` is the ISO hour."""
        if sources is not None and not sources:
            return []

        query = self.db.query(HourlyStat).filter(HourlyStat.hour >= start, HourlyStat.hour <= end)
        if models:
            query = query.filter(HourlyStat.model_slug.in_(models))
        if sources:
            link_ids = [source for source in sources if source != ORGANIC]
            conditions = [HourlyStat.tracking_link_id.in_(link_ids)] if link_ids else []
            if ORGANIC in sources:
                conditions.append(HourlyStat.tracking_link_id.is_(None))
            query = query.filter(or_(*conditions))
        if countries:
            query = query.filter(HourlyStat.country.in_(countries))
        query = query.order_by(
            HourlyStat.hour, HourlyStat.model_slug, HourlyStat.tracking_link_id,
            HourlyStat.country, HourlyStat.id,
        )

        return [
            StatRow(
                date=row.hour.isoformat(),
                model_slug=row.model_slug,
                country=row.country,
                traffic_source=row.tracking_link_id or ORGANIC,
                views=row.views,
                clicks=row.clicks,
                total_events=row.views + row.clicks,
            )
            for row in paginate(query, self.page_size)
        ]

    def fetch_stats(
        self,
        hourly: bool,
        start: Union[date, datetime],
        end: Union[date, datetime],
        models: Sequence[str] = (),
        sources: Optional[Sequence[str]] = None,
        countries: Sequence[str] = (),
    ) -> List[StatRow]:
        if hourly:
            return self.fetch_hourly_stats(start, end, models, sources, countries)
        return self.fetch_daily_stats(start, end, models, sources, countries)

    def fetch_link_daily(self, link_id: str, start: date, end: date) -> List[StatRow]:
        query = (
            self.db.query(DailyStat)
            .filter(
                DailyStat.traffic_source == link_id,
                DailyStat.date >= start,
                DailyStat.date <= end,
            )
            .order_by(DailyStat.date, DailyStat.model_slug, DailyStat.country)
        )
        return [
            StatRow(
                date=row.date.isoformat(),
                model_slug=row.model_slug,
                country=row.country,
                traffic_source=row.traffic_source,
                views=row.views,
                clicks=row.clicks,
                total_events=row.total_events,
            )
            for row in paginate(query, self.page_size)
        ]

    def fetch_link_events(self, link_id: str, start: date, end: date) -> List[AnalyticsEvent]:
        """Raw events for one link, used when the aggregates have nothing yet."""
        window_start = datetime.combine(start, datetime.min.time())
        window_end = datetime.combine(end + timedelta(days=1), datetime.min.time())
        query = (
            self.db.query(AnalyticsEvent)
            .filter(
                AnalyticsEvent.tracking_link_id == link_id,
                AnalyticsEvent.created_at >= window_start,
                AnalyticsEvent.created_at < window_end,
            )
            .order_by(AnalyticsEvent.created_at, AnalyticsEvent.id)
        )
        return paginate(query, self.page_size)
