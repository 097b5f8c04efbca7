from typing import List

from fastapi import APIRouter, Depends, status

from dashboard_app.dependencies import get_organization_service, require_admin
from dashboard_app.schemas.common import ApiResponse, DeleteResult
from dashboard_app.schemas.organization import (
    OrganizationCreate,
    OrganizationResponse,
    OrganizationUpdate,
    OrganizationWithCount,
)
from dashboard_app.services.organization_service import OrganizationService

router = APIRouter(
    prefix="/organizations",
    tags=["organizations"],
    dependencies=[Depends(require_admin)],
)


@router.get("", response_model=ApiResponse[List[OrganizationWithCount]])
async def list_organizations(
    service: OrganizationService = Depends(get_organization_service),
):
    """All organizations, newest first, with their model counts."""
    return {"success": True, "data": await service.list_organizations()}


@router.post(
    "",
    response_model=ApiResponse[OrganizationResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_organization(
    body: OrganizationCreate,
    service: OrganizationService = Depends(get_organization_service),
):
    organization = await service.create_organization(body.name)
    return {"success": True, "data": organization}


@router.get("/{organization_id}", response_model=ApiResponse[OrganizationResponse])
async def get_organization(
    organization_id: str,
    service: OrganizationService = Depends(get_organization_service),
):
    return {"success": True, "data": service.get(organization_id)}


@router.put("/{organization_id}", response_model=ApiResponse[OrganizationResponse])
async def update_organization(
    organization_id: str,
    body: OrganizationUpdate,
    service: OrganizationService = Depends(get_organization_service),
):
    """Rename and/or regenerate the API key."""
    organization = await service.update_organization(
        organization_id, name=body.name, regenerate_key=body.regenerate_key
    )
    message = "API key regenerated" if body.regenerate_key else None
    return {"success": True, "data": organization, "message": message}


@router.delete("/{organization_id}", response_model=ApiResponse[DeleteResult])
async def delete_organization(
    organization_id: str,
    service: OrganizationService = Depends(get_organization_service),
):
    await service.delete_organization(organization_id)
    return {
        "success": True,
        "data": {"id": organization_id},
        "message": "Organization deleted",
    }
