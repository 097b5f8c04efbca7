from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from dashboard_app.dependencies import (
    get_analytics_service,
    get_auth_context,
    get_tracking_service,
    require_admin,
)
from dashboard_app.schemas.analytics import LinkAnalytics
from dashboard_app.schemas.auth import AuthContext
from dashboard_app.schemas.common import ApiResponse, DeleteResult
from dashboard_app.schemas.tracking import (
    SourceCreate,
    SourceWithSubtags,
    SubtagCreate,
    SubtagResponse,
    TrackingLinkCreate,
    TrackingLinkListing,
    TrackingLinkResponse,
    TrackingLinkUpdate,
)
from dashboard_app.services.analytics_service import AnalyticsService
from dashboard_app.services.permissions import check_model_access
from dashboard_app.services.tracking_service import TrackingService

router = APIRouter(tags=["tracking"])


# ----------------------------------------------------------------------
# Links
# ----------------------------------------------------------------------

@router.get(
    "/tracking-links",
    response_model=ApiResponse[TrackingLinkListing],
    dependencies=[Depends(require_admin)],
)
async def list_tracking_links(
    model_id: Optional[str] = Query(None, alias="modelId"),
    service: TrackingService = Depends(get_tracking_service),
):
    """Live links of one model plus every source and subtag for the editor."""
    return {"success": True, "data": await service.list_links_for_model(model_id)}


@router.post(
    "/tracking-links",
    response_model=ApiResponse[TrackingLinkResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_tracking_link(
    body: TrackingLinkCreate,
    service: TrackingService = Depends(get_tracking_service),
):
    """Create a link with the model's next ``c<N>`` slug."""
    return {"success": True, "data": await service.create_link(body)}


@router.put(
    "/tracking-links/{link_id}",
    response_model=ApiResponse[TrackingLinkResponse],
    dependencies=[Depends(require_admin)],
)
async def update_tracking_link(
    link_id: str,
    body: TrackingLinkUpdate,
    service: TrackingService = Depends(get_tracking_service),
):
    return {"success": True, "data": await service.update_link(link_id, body)}


@router.delete(
    "/tracking-links/{link_id}",
    response_model=ApiResponse[TrackingLinkResponse],
    dependencies=[Depends(require_admin)],
)
async def archive_tracking_link(
    link_id: str,
    service: TrackingService = Depends(get_tracking_service),
):
    """Soft delete: the link is archived and stops resolving."""
    link = await service.archive_link(link_id)
    return {"success": True, "data": link, "message": "Tracking link archived"}


@router.get("/tracking-links/{link_id}/analytics", response_model=ApiResponse[LinkAnalytics])
async def tracking_link_analytics(
    link_id: str,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    ctx: AuthContext = Depends(get_auth_context),
    tracking: TrackingService = Depends(get_tracking_service),
    analytics: AnalyticsService = Depends(get_analytics_service),
):
    link = tracking.get_link(link_id)
    owner_id = link.model.organization_id if link.model else link.organization_id
    check_model_access(ctx, owner_id)
    return {
        "success": True,
        "data": await analytics.link_analytics(link, start_date, end_date),
    }


# ----------------------------------------------------------------------
# Sources and subtags
# ----------------------------------------------------------------------

@router.get(
    "/tracking-sources",
    response_model=ApiResponse[List[SourceWithSubtags]],
    dependencies=[Depends(require_admin)],
)
async def list_tracking_sources(service: TrackingService = Depends(get_tracking_service)):
    return {"success": True, "data": await service.list_sources()}


@router.post(
    "/tracking-sources",
    response_model=ApiResponse[SourceWithSubtags],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_tracking_source(
    body: SourceCreate,
    service: TrackingService = Depends(get_tracking_service),
):
    return {"success": True, "data": await service.create_source(body.name)}


@router.delete(
    "/tracking-sources/{source_id}",
    response_model=ApiResponse[DeleteResult],
    dependencies=[Depends(require_admin)],
)
async def delete_tracking_source(
    source_id: str,
    service: TrackingService = Depends(get_tracking_service),
):
    await service.delete_source(source_id)
    return {"success": True, "data": {"id": source_id}, "message": "Source deleted"}


@router.get(
    "/tracking-subtags",
    response_model=ApiResponse[List[SubtagResponse]],
    dependencies=[Depends(require_admin)],
)
async def list_tracking_subtags(
    source_id: Optional[str] = Query(None, alias="sourceId"),
    service: TrackingService = Depends(get_tracking_service),
):
    return {"success": True, "data": await service.list_subtags(source_id)}


@router.post(
    "/tracking-subtags",
    response_model=ApiResponse[SubtagResponse],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_tracking_subtag(
    body: SubtagCreate,
    service: TrackingService = Depends(get_tracking_service),
):
    return {"success": True, "data": await service.create_subtag(body.name, body.source_id)}
