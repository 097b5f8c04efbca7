from typing import List

from fastapi import APIRouter, Depends, status

from dashboard_app.dependencies import get_org_context, get_tracking_service
from dashboard_app.schemas.common import ApiResponse
from dashboard_app.schemas.tracking import (
    OrgTrackingLinkCreate,
    OrgTrackingLinkUpdate,
    TrackingLinkResponse,
)
from dashboard_app.services.tracking_service import TrackingService

router = APIRouter(
    prefix="/{org_id}/tracking",
    tags=["organization tracking"],
    dependencies=[Depends(get_org_context)],
)


@router.get("", response_model=ApiResponse[List[TrackingLinkResponse]])
async def list_org_links(
    org_id: str,
    service: TrackingService = Depends(get_tracking_service),
):
    """Live links owned by the organization or attached to its models."""
    return {"success": True, "data": await service.list_org_links(org_id)}


@router.post(
    "",
    response_model=ApiResponse[TrackingLinkResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_org_link(
    org_id: str,
    body: OrgTrackingLinkCreate,
    service: TrackingService = Depends(get_tracking_service),
):
    return {"success": True, "data": await service.create_org_link(org_id, body)}


@router.patch("/{link_id}", response_model=ApiResponse[TrackingLinkResponse])
async def update_org_link(
    org_id: str,
    link_id: str,
    body: OrgTrackingLinkUpdate,
    service: TrackingService = Depends(get_tracking_service),
):
    return {"success": True, "data": await service.update_org_link(org_id, link_id, body)}


@router.delete("/{link_id}", response_model=ApiResponse[TrackingLinkResponse])
async def archive_org_link(
    org_id: str,
    link_id: str,
    service: TrackingService = Depends(get_tracking_service),
):
    link = await service.archive_org_link(org_id, link_id)
    return {"success": True, "data": link, "message": "Tracking link archived"}
