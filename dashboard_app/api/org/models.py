from typing import List

from fastapi import APIRouter, Depends, status

from dashboard_app.dependencies import get_model_service, get_org_context
from dashboard_app.errors import NotFoundError
from dashboard_app.models.model import Model
from dashboard_app.schemas.auth import AuthContext
from dashboard_app.schemas.common import ApiResponse
from dashboard_app.schemas.model import BASIC_INFO_FIELDS, ModelCreate, ModelResponse, ModelUpdate
from dashboard_app.services.model_service import ModelService

router = APIRouter(prefix="/{org_id}/models", tags=["organization models"])


def _get_org_model(service: ModelService, ctx: AuthContext, org_id: str, model_id: str) -> Model:
    model = service.get_accessible(ctx, model_id)
    if model.organization_id != org_id:
        raise NotFoundError("Model not found in this organization")
    return model


@router.get("", response_model=ApiResponse[List[ModelResponse]])
async def list_org_models(
    org_id: str,
    ctx: AuthContext = Depends(get_org_context),
    service: ModelService = Depends(get_model_service),
):
    """Verified models first, then by most recent story activity."""
    return {"success": True, "data": await service.list_organization_models(org_id)}


@router.post(
    "",
    response_model=ApiResponse[ModelResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_org_model(
    org_id: str,
    body: ModelCreate,
    ctx: AuthContext = Depends(get_org_context),
    service: ModelService = Depends(get_model_service),
):
    data = body.model_copy(update={"organization_id": org_id})
    return {"success": True, "data": await service.create_model(ctx, data)}


@router.get("/{model_id}", response_model=ApiResponse[ModelResponse])
async def get_org_model(
    org_id: str,
    model_id: str,
    ctx: AuthContext = Depends(get_org_context),
    service: ModelService = Depends(get_model_service),
):
    return {"success": True, "data": _get_org_model(service, ctx, org_id, model_id)}


@router.patch("/{model_id}", response_model=ApiResponse[ModelResponse])
async def update_org_model(
    org_id: str,
    model_id: str,
    body: ModelUpdate,
    ctx: AuthContext = Depends(get_org_context),
    service: ModelService = Depends(get_model_service),
):
    """Only basic info can be changed through the organization scope."""
    _get_org_model(service, ctx, org_id, model_id)
    basic_info = body.model_dump(exclude_unset=True, include=set(BASIC_INFO_FIELDS))
    model = await service.update_model(ctx, model_id, ModelUpdate(**basic_info))
    return {"success": True, "data": model}


@router.delete("/{model_id}", response_model=ApiResponse[ModelResponse])
async def remove_org_model(
    org_id: str,
    model_id: str,
    ctx: AuthContext = Depends(get_org_context),
    service: ModelService = Depends(get_model_service),
):
    """Removes the model from the organization; the model itself is kept."""
    model = await service.unassign_from_organization(org_id, model_id)
    return {"success": True, "data": model, "message": "Model removed from organization"}
