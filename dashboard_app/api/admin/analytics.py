from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from dashboard_app.dependencies import (
    get_analytics_service,
    get_analytics_view_service,
    get_dashboard_query,
    require_admin,
)
from dashboard_app.schemas.analytics import (
    AnalyticsSummaryRow,
    DashboardEnvelope,
    LivePulse,
    RefreshStatus,
)
from dashboard_app.schemas.common import ApiResponse
from dashboard_app.services.analytics_service import AnalyticsService, DashboardQuery
from dashboard_app.services.analytics_views import AnalyticsViewService

router = APIRouter(tags=["analytics"], dependencies=[Depends(require_admin)])


@router.get("/dashboard", response_model=DashboardEnvelope)
async def get_dashboard(
    query: DashboardQuery = Depends(get_dashboard_query),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """
    Aggregated dashboard for every model.

    Reads only the pre-aggregated tables; ``warning`` is set when they have
    not been refreshed recently.
    """
    return await service.admin_dashboard(query)


@router.post("/dashboard", response_model=ApiResponse[RefreshStatus])
@router.post("/refresh-views", response_model=ApiResponse[RefreshStatus])
async def refresh_views(views: AnalyticsViewService = Depends(get_analytics_view_service)):
    """Rebuild the daily and hourly aggregate tables now."""
    status = views.refresh()
    return {"success": True, "data": status, "message": "Analytics views refreshed"}


@router.get("/refresh-views", response_model=ApiResponse[RefreshStatus])
async def refresh_status(views: AnalyticsViewService = Depends(get_analytics_view_service)):
    return {"success": True, "data": views.get_refresh_status()}


@router.get("/live-pulse", response_model=ApiResponse[LivePulse])
async def live_pulse(
    seconds: Optional[str] = None,
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Events recorded in the last ``seconds`` (default 60, minimum 10)."""
    window = int(seconds) if seconds and seconds.isdigit() else None
    return {"success": True, "data": await service.live_pulse(window)}


@router.get("/analytics", response_model=ApiResponse[List[AnalyticsSummaryRow]])
async def analytics_summary(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    model_slug: Optional[str] = Query(None, alias="modelSlug"),
    group_by: str = Query("day", alias="groupBy"),
    service: AnalyticsService = Depends(get_analytics_service),
):
    rows = await service.summary_report(start_date, end_date, model_slug, group_by)
    return {"success": True, "data": rows}
