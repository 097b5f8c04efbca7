import logging
import time
from collections import Counter, defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from dashboard_app.config import settings
from dashboard_app.errors import BadRequestError
from dashboard_app.models.analytics import AnalyticsEvent
from dashboard_app.models.model import Model
from dashboard_app.models.tracking import TrackingLink, TrackingSubtag, TrafficSource
from dashboard_app.schemas.analytics import (
    AnalyticsSummaryRow,
    CountedValue,
    DashboardEnvelope,
    DashboardResponse,
    DashboardStats,
    LinkAnalytics,
    LinkAnalyticsSummary,
    LinkDailyPoint,
    LivePulse,
    ModelOption,
    RefreshStatus,
    SourceOption,
    SubtagOption,
)
from dashboard_app.services import analytics_aggregation as agg
from dashboard_app.services.analytics_views import CLICK_EVENT, VIEW_EVENT, AnalyticsViewService
from dashboard_app.utils import utcnow

logger = logging.getLogger(__name__)

# Shown in the source filter even before any link uses them
STATIC_SOURCES = [
    ("Organic", "organic"),
    ("Instagram", "instagram"),
    ("X", "x"),
    ("Reddit", "reddit"),
    ("Model Directory", "model-directory"),
    ("OnlyFans", "onlyfans"),
    ("Fansly", "fansly"),
]

SUMMARY_GROUPINGS = ("day", "week", "month")
MAX_EVENT_LIST = 5000


class DashboardQuery(BaseModel):
    """Raw dashboard query parameters as received."""
    period: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    models: Optional[str] = None
    sources: Optional[str] = None
    countries: Optional[str] = None


class AnalyticsService:
    """
    Builds the analytics dashboards from the aggregate tables.

    The admin dashboard sees every model; the organization dashboard is the
    same computation with the model list and tracking links narrowed to the
    organization's models.
    """

    def __init__(self, db: Session, views: Optional[AnalyticsViewService] = None):
        self.db = db
        self.views = views or AnalyticsViewService(db)

    # ------------------------------------------------------------------
    # Dashboards
    # ------------------------------------------------------------------

    async def admin_dashboard(self, query: DashboardQuery) -> DashboardEnvelope:
        return self._build_dashboard(query, allowed_models=None)

    async def organization_dashboard(
        self, organization_id: str, query: DashboardQuery
    ) -> DashboardEnvelope:
        org_models = [
            slug for (slug,) in self.db.query(Model.slug).filter(
                Model.organization_id == organization_id
            ).all()
        ]
        if not org_models:
            return DashboardEnvelope(data=DashboardResponse(
                stats=DashboardStats(),
                last_refresh=self.views.get_refresh_status(),
            ))
        return self._build_dashboard(query, allowed_models=org_models)

    def _build_dashboard(
        self, query: DashboardQuery, allowed_models: Optional[List[str]]
    ) -> DashboardEnvelope:
        started = time.monotonic()
        now = utcnow()
        period = agg.resolve_period(
            query.period, now, query.start_date, query.end_date, settings.analytics_data_start
        )

        selected_models = agg.parse_list_param(query.models)
        countries = agg.parse_list_param(query.countries)
        source_names, subtag_filters = agg.parse_source_filters(query.sources)

        models = selected_models
        if allowed_models is not None:
            selected_models = [slug for slug in selected_models if slug in allowed_models]
            models = selected_models or list(allowed_models)

        links = self._links(allowed_models)
        sources = self.db.query(TrafficSource).all()
        subtags = self.db.query(TrackingSubtag).all()

        source_filter = None
        if source_names:
            source_filter = agg.resolve_source_filter(
                source_names, subtag_filters, links, sources, subtags
            )
            if not source_filter:
                logger.warning(
                    "[Dashboard] No tracking links found for sources: %s", ", ".join(source_names)
                )

        current = self.views.fetch_stats(
            period.hourly, period.start, period.end, models, source_filter, countries
        )
        previous = []
        if period.has_previous:
            previous = self.views.fetch_stats(
                period.hourly, period.prev_start, period.prev_end, models, source_filter, countries
            )
        metric_models = allowed_models or ()
        all_model_rows = self.views.fetch_stats(
            period.hourly, period.start, period.end, metric_models, source_filter, countries
        )

        stats, _ = agg.calculate_overall_stats(
            current, previous, agg.link_source_names(links, sources), period.has_previous
        )
        chart_data = agg.aggregate_chart_data(current, previous, period.hourly)

        comparison_views = comparison_clicks = None
        if len(selected_models) > 1:
            comparison_views = agg.aggregate_model_comparison(current, selected_models, "views")
            comparison_clicks = agg.aggregate_model_comparison(current, selected_models, "clicks")

        last_refresh = self.views.get_refresh_status()
        debug = None
        if source_names and not source_filter:
            debug = {
                "message": "No tracking links found for selected sources",
                "requestedSources": source_names,
                "availableSources": sorted({source.name for source in sources}),
            }

        response = DashboardResponse(
            stats=stats,
            chart_data=chart_data,
            model_comparison_views=comparison_views,
            model_comparison_clicks=comparison_clicks,
            all_model_metrics=agg.summarize_models(all_model_rows),
            last_refresh=last_refresh,
            query_time=int((time.monotonic() - started) * 1000),
            available_countries=self._available_countries(allowed_models),
            available_sources=self._available_sources(sources, subtags),
            available_models=self._available_models(allowed_models),
            debug=debug,
        )
        return DashboardEnvelope(data=response, warning=self._staleness_warning(last_refresh, now))

    def _links(self, allowed_models: Optional[List[str]]) -> List[TrackingLink]:
        query = self.db.query(TrackingLink)
        if allowed_models is not None:
            query = query.join(Model, TrackingLink.model_id == Model.id).filter(
                Model.slug.in_(allowed_models)
            )
        return query.all()

    def _available_countries(self, allowed_models: Optional[List[str]]) -> List[str]:
        query = self.db.query(AnalyticsEvent.country).filter(AnalyticsEvent.country.isnot(None))
        if allowed_models is not None:
            query = query.filter(AnalyticsEvent.model_slug.in_(allowed_models))
        rows = (
            query.order_by(AnalyticsEvent.created_at.desc())
            .limit(settings.available_countries_sample)
            .all()
        )
        return sorted({country for (country,) in rows if country})

    @staticmethod
    def _available_sources(sources, subtags) -> List[SourceOption]:
        subtags_by_source = defaultdict(list)
        for subtag in subtags:
            subtags_by_source[subtag.source_id].append(
                SubtagOption(id=subtag.id, name=subtag.name, slug=subtag.slug)
            )
        source_by_name = {source.name.lower(): source for source in sources}

        options = []
        for name, value in STATIC_SOURCES:
            source = source_by_name.get(name.lower())
            options.append(SourceOption(
                name=name,
                value=value,
                subtags=subtags_by_source[source.id] if source else [],
            ))

        static_names = {name.lower() for name, _value in STATIC_SOURCES}
        for source in sorted(sources, key=lambda s: s.name.lower()):
            if source.name.lower() not in static_names:
                options.append(SourceOption(
                    name=source.name, value=source.slug, subtags=subtags_by_source[source.id]
                ))
        return options

    def _available_models(self, allowed_models: Optional[List[str]]) -> List[ModelOption]:
        query = self.db.query(Model)
        if allowed_models is not None:
            query = query.filter(Model.slug.in_(allowed_models))
        return [
            ModelOption(id=model.id, name=model.name, slug=model.slug, image_url=model.image_url)
            for model in query.order_by(Model.name).all()
        ]

    @staticmethod
    def _staleness_warning(status: RefreshStatus, now: datetime) -> Optional[str]:
        if status.timestamp is None:
            return "Analytics views have never been refreshed"
        if status.status == "error":
            return f"Last analytics refresh failed: {status.error_message or 'unknown error'}"
        age_minutes = int((now - status.timestamp.replace(tzinfo=None)).total_seconds() // 60)
        if age_minutes > settings.analytics_stale_after_minutes:
            return f"Data may be stale (last refresh: {age_minutes} minutes ago)"
        return None

    # ------------------------------------------------------------------
    # Per-link analytics
    # ------------------------------------------------------------------

    async def link_analytics(
        self, link: TrackingLink, start_date: Optional[str], end_date: Optional[str]
    ) -> LinkAnalytics:
        if not start_date or not end_date:
            raise BadRequestError("startDate and endDate are required")
        start = agg.parse_date(start_date, "startDate")
        end = agg.parse_date(end_date, "endDate")
        if start > end:
            raise BadRequestError("startDate must not be after endDate")

        per_day: Dict[str, List[int]] = defaultdict(lambda: [0, 0])
        rows = self.views.fetch_link_daily(link.id, start, end)
        source = "aggregated"
        if rows:
            for row in rows:
                per_day[row.date][0] += row.views
                per_day[row.date][1] += row.clicks
        else:
            # Aggregates lag behind by up to one refresh interval
            source = "events"
            for event in self.views.fetch_link_events(link.id, start, end):
                bucket = event.created_at.date().isoformat()
                if event.event_type == CLICK_EVENT:
                    per_day[bucket][1] += 1
                else:
                    per_day[bucket][0] += 1

        daily = [
            LinkDailyPoint(date=bucket, views=views, clicks=clicks)
            for bucket, (views, clicks) in sorted(per_day.items())
        ]
        total_views = sum(point.views for point in daily)
        total_clicks = sum(point.clicks for point in daily)
        days_in_range = max(1, (end - start).days + 1)

        return LinkAnalytics(
            link_id=link.id,
            source=source,
            daily=daily,
            summary=LinkAnalyticsSummary(
                total_clicks=total_clicks,
                total_views=total_views,
                avg_clicks_per_day=round(total_clicks / days_in_range, 2),
                days_in_range=days_in_range,
            ),
        )

    # ------------------------------------------------------------------
    # Raw event reads
    # ------------------------------------------------------------------

    async def live_pulse(self, seconds: Optional[int] = None) -> LivePulse:
        if not seconds or seconds < settings.live_pulse_min_seconds:
            seconds = settings.live_pulse_default_seconds
        seconds = min(seconds, settings.live_pulse_max_seconds)
        since = utcnow() - timedelta(seconds=seconds)
        count = self.db.query(func.count(AnalyticsEvent.id)).filter(
            AnalyticsEvent.created_at >= since
        ).scalar()
        return LivePulse(count=count or 0, since=since)

    async def list_events(self, limit: int = 1000) -> List[AnalyticsEvent]:
        limit = min(max(limit, 1), MAX_EVENT_LIST)
        return (
            self.db.query(AnalyticsEvent)
            .order_by(AnalyticsEvent.created_at.desc())
            .limit(limit)
            .all()
        )

    async def events_since(self, since: datetime) -> int:
        return self.db.query(func.count(AnalyticsEvent.id)).filter(
            AnalyticsEvent.created_at >= since
        ).scalar() or 0

    async def summary_report(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        model_slug: Optional[str] = None,
        group_by: str = "day",
    ) -> List[AnalyticsSummaryRow]:
        """
        Period-by-period totals straight from the raw events.

        Unique visitors are approximated by distinct User-Agent strings;
        no visitor identifiers are stored.
        """
        if group_by not in SUMMARY_GROUPINGS:
            raise BadRequestError(f"groupBy must be one of: {', '.join(SUMMARY_GROUPINGS)}")

        today = utcnow().date()
        end = agg.parse_date(end_date, "endDate") if end_date else today
        start = agg.parse_date(start_date, "startDate") if start_date else end - timedelta(days=30)
        if start > end:
            raise BadRequestError("startDate must not be after endDate")

        query = self.db.query(AnalyticsEvent).filter(
            AnalyticsEvent.created_at >= datetime.combine(start, datetime.min.time()),
            AnalyticsEvent.created_at < datetime.combine(end + timedelta(days=1), datetime.min.time()),
        )
        if model_slug:
            query = query.filter(AnalyticsEvent.model_slug == model_slug)

        buckets = defaultdict(lambda: {
            "views": 0, "clicks": 0, "visitors": set(),
            "countries": Counter(), "referrers": Counter(),
        })
        for event in query.yield_per(1000):
            bucket = buckets[_period_key(event.created_at.date(), group_by)]
            if event.event_type == VIEW_EVENT:
                bucket["views"] += 1
            elif event.event_type == CLICK_EVENT:
                bucket["clicks"] += 1
            if event.user_agent:
                bucket["visitors"].add(event.user_agent)
            if event.country:
                bucket["countries"][event.country] += 1
            if event.referrer:
                bucket["referrers"][event.referrer] += 1

        return [
            AnalyticsSummaryRow(
                period=period,
                total_views=bucket["views"],
                total_clicks=bucket["clicks"],
                unique_visitors=len(bucket["visitors"]),
                conversion_rate=agg.ctr_percentage(bucket["views"], bucket["clicks"]),
                top_countries=_top(bucket["countries"]),
                top_referrers=_top(bucket["referrers"]),
            )
            for period, bucket in sorted(buckets.items())
        ]


def _period_key(day: date, group_by: str) -> str:
    if group_by == "week":
        return (day - timedelta(days=day.weekday())).isoformat()
    if group_by == "month":
        return f"{day:%Y-%m}"
    return day.isoformat()


def _top(counter: Counter, limit: int = 5) -> List[CountedValue]:
    return [CountedValue(value=value, count=count) for value, count in counter.most_common(limit)]

