"""
Pure aggregation helpers for the analytics dashboards.

Everything here works on already-fetched rows (``StatRow``) or on plain
request values, so it is easy to test without a database. The data access
side lives in ``analytics_views``; the orchestration in
``analytics_service``.
"""

import json
from collections import OrderedDict, defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel

from dashboard_app.errors import BadRequestError
from dashboard_app.schemas.analytics import (
    ChartDataPoint,
    CountrySummary,
    DashboardStats,
    ModelSummary,
    SourceSummary,
    StatRow,
)

ORGANIC = "organic"
ORGANIC_LABEL = "Organic"
DEFAULT_PERIOD = "30days"
ROLLING_PERIODS = {"7days": 7, "30days": 30, "90days": 90}
TOP_MODELS_LIMIT = 10


class PeriodRange(BaseModel):
    """
    Current and previous window for a dashboard period.

    Daily periods carry ``date`` bounds, the ``hour`` period carries
    ``datetime`` bounds and reads the hourly table. Bounds are inclusive.
    ``prev_start``/``prev_end`` are None when there is nothing to compare to.
    """
    period: str
    hourly: bool = False
    start: Union[datetime, date]
    end: Union[datetime, date]
    prev_start: Optional[Union[datetime, date]] = None
    prev_end: Optional[Union[datetime, date]] = None

    @property
    def has_previous(self) -> bool:
        return self.prev_start is not None


def parse_date(value: str, field: str = "date") -> date:
    """Accept ``YYYY-MM-DD`` or a full ISO timestamp."""
    try:
        return date.fromisoformat(value[:10])
    except (TypeError, ValueError):
        raise BadRequestError(f"Invalid {field}: {value!r}")


def resolve_period(
    period: Optional[str],
    now: datetime,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    data_start: str = "2024-01-01",
) -> PeriodRange:
    period = period or DEFAULT_PERIOD
    today = now.date()

    if period == "hour":
        hour_start = now.replace(minute=0, second=0, microsecond=0)
        start = hour_start - timedelta(hours=1)
        return PeriodRange(
            period=period,
            hourly=True,
            start=start,
            end=now,
            prev_start=hour_start - timedelta(hours=2),
            prev_end=start - timedelta(seconds=1),
        )

    if period == "today":
        yesterday = today - timedelta(days=1)
        return PeriodRange(
            period=period, start=today, end=today, prev_start=yesterday, prev_end=yesterday
        )

    if period == "all":
        return PeriodRange(period=period, start=parse_date(data_start), end=today)

    if period == "custom":
        start = parse_date(start_date, "startDate") if start_date else today - timedelta(days=30)
        end = parse_date(end_date, "endDate") if end_date else today
        if start > end:
            raise BadRequestError("startDate must not be after endDate")
        length = end - start
        prev_end = start - timedelta(days=1)
        return PeriodRange(
            period=period, start=start, end=end, prev_start=prev_end - length, prev_end=prev_end
        )

    # Unknown periods fall back to the default window
    days = ROLLING_PERIODS.get(period, ROLLING_PERIODS[DEFAULT_PERIOD])
    return PeriodRange(
        period=period if period in ROLLING_PERIODS else DEFAULT_PERIOD,
        start=today - timedelta(days=days),
        end=today,
        prev_start=today - timedelta(days=2 * days),
        prev_end=today - timedelta(days=days + 1),
    )


def parse_list_param(raw: Optional[str]) -> List[str]:
    """``'["a","b"]'`` or ``'a,b'`` -> ``['a', 'b']``."""
    if not raw:
        return []
    if raw.startswith("[") and raw.endswith("]"):
        try:
            parsed = json.loads(raw)
        except ValueError:
            return [value for value in raw.split(",") if value]
        return [str(value) for value in parsed if value]
    return [value for value in raw.split(",") if value]


def parse_source_filters(raw: Optional[str]) -> Tuple[List[str], Dict[str, List[str]]]:
    """
    Source filters may be plain names or ``{"source": ..., "subtags": [...]}``
    objects. Returns the names and a lower-cased name -> subtag names map.
    """
    if not raw:
        return [], {}
    if raw.startswith("[") and raw.endswith("]"):
        try:
            parsed = json.loads(raw)
        except ValueError:
            return [value for value in raw.split(",") if value], {}

        names, subtag_filters = [], {}
        for entry in parsed:
            if isinstance(entry, str):
                names.append(entry)
            elif isinstance(entry, dict) and entry.get("source"):
                names.append(entry["source"])
                if entry.get("subtags"):
                    subtag_filters[entry["source"].lower()] = list(entry["subtags"])
        return names, subtag_filters
    return [value for value in raw.split(",") if value], {}


def resolve_source_filter(
    requested: Sequence[str],
    subtag_filters: Dict[str, List[str]],
    links: Iterable,
    sources: Iterable,
    subtags: Iterable,
) -> List[str]:
    """
    Turn source names into the ``traffic_source`` values to filter on.

    "organic"/"direct" map to organic traffic. Other names are matched to
    sources by name, then slug, then partial name, and expanded to the ids
    of their tracking links (narrowed by subtag when requested).
    ``links``/``sources``/``subtags`` are ORM rows or anything with the
    same attributes.
    """
    links = list(links)
    sources = list(sources)

    source_name_by_id = {source.id: source.name for source in sources}
    source_id_by_name = {source.name.lower(): source.id for source in sources}
    source_id_by_slug = {source.slug.lower(): source.id for source in sources if source.slug}

    link_ids_by_source_id = defaultdict(list)
    link_ids_by_name = OrderedDict()
    for link in links:
        name = source_name_by_id.get(link.source_id, "Unknown").lower()
        link_ids_by_source_id[link.source_id].append(link.id)
        link_ids_by_name.setdefault(name, []).append(link.id)

    subtag_id_by_key = {
        f"{subtag.source_id}:{subtag.name.lower()}": subtag.id for subtag in subtags
    }

    resolved: List[str] = []
    for name in requested:
        name_lower = name.lower()
        if name_lower in (ORGANIC, "direct"):
            resolved.append(ORGANIC)
            continue

        link_ids = link_ids_by_name.get(name_lower)
        if not link_ids:
            source_id = source_id_by_slug.get(name_lower)
            if source_id:
                link_ids = link_ids_by_source_id.get(source_id)
        if not link_ids:
            for mapped_name, ids in link_ids_by_name.items():
                if mapped_name in name_lower or name_lower in mapped_name:
                    link_ids = ids
                    break

        wanted_subtags = subtag_filters.get(name_lower)
        if wanted_subtags and link_ids:
            source_id = source_id_by_name.get(name_lower) or source_id_by_slug.get(name_lower)
            if source_id:
                subtag_ids = {
                    subtag_id_by_key.get(f"{source_id}:{subtag_name.lower()}")
                    for subtag_name in wanted_subtags
                }
                subtag_ids.discard(None)
                if subtag_ids:
                    resolved.extend(
                        link.id for link in links
                        if link.source_id == source_id and link.subtag_id in subtag_ids
                    )
                    continue

        if link_ids:
            resolved.extend(link_ids)

    # Keep first occurrence order
    return list(OrderedDict.fromkeys(resolved))


def link_source_names(links: Iterable, sources: Iterable) -> Dict[str, str]:
    """traffic_source value -> display name of its source."""
    source_name_by_id = {source.id: source.name for source in sources}
    names = {link.id: source_name_by_id.get(link.source_id, "Unknown") for link in links}
    names[ORGANIC] = ORGANIC_LABEL
    return names


def ctr_percentage(views: int, clicks: int) -> float:
    return round(clicks / views * 10000) / 100 if views > 0 else 0


def calculate_change(current: int, previous: int) -> int:
    if previous == 0:
        return 100 if current > 0 else 0
    return round((current - previous) / previous * 100)


def chart_label(bucket: str, hourly: bool) -> str:
    if hourly:
        return f"{datetime.fromisoformat(bucket):%H}:00"
    day = date.fromisoformat(bucket)
    return f"{day:%b} {day.day}"


def _totals_by_date(rows: Iterable[StatRow]) -> Dict[str, List[int]]:
    totals = defaultdict(lambda: [0, 0])
    for row in rows:
        totals[row.date][0] += row.views
        totals[row.date][1] += row.clicks
    return totals


def aggregate_chart_data(
    current: Iterable[StatRow], previous: Iterable[StatRow], hourly: bool = False
) -> List[ChartDataPoint]:
    """
    One point per bucket of the current window. The previous window is
    lined up by position (first bucket with first bucket), not by date.
    """
    current_totals = _totals_by_date(current)
    previous_totals = _totals_by_date(previous)
    previous_dates = sorted(previous_totals)

    points = []
    for index, bucket in enumerate(sorted(current_totals)):
        views, clicks = current_totals[bucket]
        prev_views, prev_clicks = (
            previous_totals[previous_dates[index]] if index < len(previous_dates) else (0, 0)
        )
        points.append(ChartDataPoint(
            date=bucket,
            label=chart_label(bucket, hourly),
            views=views,
            clicks=clicks,
            visits_prev=prev_views,
            clicks_prev=prev_clicks,
        ))
    return points


def summarize_models(rows: Iterable[StatRow]) -> List[ModelSummary]:
    """Per-model totals, most viewed first."""
    totals = defaultdict(lambda: [0, 0])
    for row in rows:
        totals[row.model_slug][0] += row.views
        totals[row.model_slug][1] += row.clicks

    summaries = [
        ModelSummary(
            model_slug=slug,
            total_views=views,
            total_clicks=clicks,
            ctr_percentage=ctr_percentage(views, clicks),
        )
        for slug, (views, clicks) in totals.items()
    ]
    return sorted(summaries, key=lambda summary: summary.total_views, reverse=True)


def calculate_overall_stats(
    current: Sequence[StatRow],
    previous: Sequence[StatRow],
    source_names: Dict[str, str],
    has_previous: bool = True,
) -> Tuple[DashboardStats, List[ModelSummary]]:
    """
    Headline numbers and breakdowns for the current window.

    Returns the stats plus the full per-model list (``topModels`` keeps
    only the first ten).
    """
    total_views = total_clicks = organic_views = tracked_views = 0
    by_country = defaultdict(lambda: [0, 0])
    by_source = defaultdict(lambda: [0, 0])

    for row in current:
        total_views += row.views
        total_clicks += row.clicks
        if row.traffic_source == ORGANIC:
            organic_views += row.views
        else:
            tracked_views += row.views

        by_country[row.country][0] += row.views
        by_country[row.country][1] += row.clicks

        source_name = source_names.get(row.traffic_source, row.traffic_source)
        by_source[source_name][0] += row.views
        by_source[source_name][1] += row.clicks

    prev_views = sum(row.views for row in previous)
    prev_clicks = sum(row.clicks for row in previous)

    top_sources = sorted(
        (
            SourceSummary(
                source_name=name, total_views=views, total_clicks=clicks,
                total_events=views + clicks,
            )
            for name, (views, clicks) in by_source.items()
        ),
        key=lambda summary: summary.total_views,
        reverse=True,
    )
    top_countries = sorted(
        (
            CountrySummary(
                country=country, total_views=views, total_clicks=clicks,
                total_events=views + clicks,
            )
            for country, (views, clicks) in by_country.items()
        ),
        key=lambda summary: summary.total_views,
        reverse=True,
    )
    model_metrics = summarize_models(current)

    stats = DashboardStats(
        total_views=total_views,
        total_clicks=total_clicks,
        ctr=ctr_percentage(total_views, total_clicks),
        unique_countries=len(by_country),
        visits_change=calculate_change(total_views, prev_views) if has_previous else 0,
        clicks_change=calculate_change(total_clicks, prev_clicks) if has_previous else 0,
        main_layout_visits=organic_views,
        tracking_link_visits=tracked_views,
        top_sources=top_sources,
        top_countries=top_countries,
        top_models=model_metrics[:TOP_MODELS_LIMIT],
    )
    return stats, model_metrics


def aggregate_model_comparison(
    rows: Iterable[StatRow], models: Sequence[str], metric: str = "views"
) -> List[Dict[str, object]]:
    """``[{"date": ..., "<slug>": n, ...}]`` with a zero for models missing on a date."""
    by_date = defaultdict(lambda: defaultdict(int))
    for row in rows:
        by_date[row.date][row.model_slug] += getattr(row, metric)

    points = []
    for bucket in sorted(by_date):
        point = {"date": bucket}
        for model in models:
            point[model] = by_date[bucket].get(model, 0)
        points.append(point)
    return points
