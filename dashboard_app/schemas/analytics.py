"""
Analytics payloads.

Dashboard responses are camelCase on the wire (``totalViews``,
``chartData``); per-row summaries keep the snake_case column names of the
aggregate tables (``model_slug``, ``total_views``).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, protected_namespaces=()
    )


class StatRow(BaseModel):
    """One aggregate row in the daily shape; hourly rows are mapped onto it."""
    date: str
    model_slug: str
    country: str
    traffic_source: str
    views: int = 0
    clicks: int = 0
    total_events: int = 0

    model_config = ConfigDict(protected_namespaces=())


class ModelSummary(BaseModel):
    model_slug: str
    total_views: int
    total_clicks: int
    ctr_percentage: float

    model_config = ConfigDict(protected_namespaces=())


class SourceSummary(BaseModel):
    source_name: str
    total_views: int
    total_clicks: int
    total_events: int


class CountrySummary(BaseModel):
    country: str
    total_views: int
    total_clicks: int
    total_events: int


class DashboardStats(CamelModel):
    total_views: int = 0
    total_clicks: int = 0
    ctr: float = 0
    unique_countries: int = 0
    visits_change: int = 0
    clicks_change: int = 0
    main_layout_visits: int = 0
    tracking_link_visits: int = 0
    top_sources: List[SourceSummary] = []
    top_countries: List[CountrySummary] = []
    top_models: List[ModelSummary] = []


class ChartDataPoint(CamelModel):
    date: str
    label: str
    views: int
    clicks: int
    visits_prev: int = 0
    clicks_prev: int = 0


class RefreshStatus(CamelModel):
    """Stored under system_config["analytics_last_refresh"] in snake_case."""
    timestamp: Optional[datetime] = None
    duration_ms: Optional[int] = None
    status: str = "never"  # success | error | never | in_progress
    rows: Optional[int] = None
    error_message: Optional[str] = None


class SubtagOption(BaseModel):
    id: str
    name: str
    slug: str


class SourceOption(BaseModel):
    name: str
    value: str
    subtags: List[SubtagOption] = []


class ModelOption(CamelModel):
    id: str
    name: str
    slug: str
    image_url: Optional[str] = None


class DashboardResponse(CamelModel):
    stats: DashboardStats
    chart_data: List[ChartDataPoint] = []
    model_comparison_views: Optional[List[Dict[str, Any]]] = None
    model_comparison_clicks: Optional[List[Dict[str, Any]]] = None
    all_model_metrics: List[ModelSummary] = []
    last_refresh: RefreshStatus
    query_time: int = 0
    available_countries: List[str] = []
    available_sources: List[SourceOption] = []
    available_models: List[ModelOption] = []
    debug: Optional[Dict[str, Any]] = None


class DashboardEnvelope(BaseModel):
    success: bool = True
    data: DashboardResponse
    warning: Optional[str] = None


class EventCreate(CamelModel):
    """Body of the public ingestion endpoint."""
    event_type: Optional[str] = None
    model_id: Optional[str] = None
    model_slug: Optional[str] = None
    page_path: Optional[str] = None
    tracking_link_id: Optional[str] = None


class EventResponse(BaseModel):
    id: str
    event_type: str
    model_id: Optional[str] = None
    model_slug: Optional[str] = None
    tracking_link_id: Optional[str] = None
    source_id: Optional[str] = None
    subtag_id: Optional[str] = None
    is_tracking_visit: bool
    page_path: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    referrer: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())


class LivePulse(BaseModel):
    count: int
    since: datetime


class LinkDailyPoint(BaseModel):
    date: str
    views: int = 0
    clicks: int = 0


class LinkAnalyticsSummary(CamelModel):
    total_clicks: int
    total_views: int
    avg_clicks_per_day: float
    days_in_range: int


class LinkAnalytics(CamelModel):
    link_id: str
    source: str  # "aggregated" | "events"
    daily: List[LinkDailyPoint]
    summary: LinkAnalyticsSummary


class CountedValue(BaseModel):
    value: str
    count: int


class AnalyticsSummaryRow(BaseModel):
    period: str
    total_views: int
    total_clicks: int
    unique_visitors: int
    conversion_rate: float
    top_countries: List[CountedValue] = Field(default_factory=list)
    top_referrers: List[CountedValue] = Field(default_factory=list)
