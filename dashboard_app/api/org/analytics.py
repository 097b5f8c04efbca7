from fastapi import APIRouter, Depends

from dashboard_app.dependencies import (
    get_analytics_service,
    get_dashboard_organization_id,
    get_dashboard_query,
)
from dashboard_app.schemas.analytics import DashboardEnvelope
from dashboard_app.services.analytics_service import AnalyticsService, DashboardQuery

router = APIRouter(tags=["organization analytics"])


@router.get("/analytics", response_model=DashboardEnvelope)
async def get_org_dashboard(
    organization_id: str = Depends(get_dashboard_organization_id),
    query: DashboardQuery = Depends(get_dashboard_query),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """The analytics dashboard restricted to one organization's models and links."""
    return await service.organization_dashboard(organization_id, query)
