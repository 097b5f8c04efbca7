from typing import List, Optional

from fastapi import APIRouter, Depends, status

from dashboard_app.dependencies import get_auth_context, get_model_service, require_admin
from dashboard_app.schemas.auth import AuthContext, AuthInfo
from dashboard_app.schemas.common import ApiResponse, DeleteResult
from dashboard_app.schemas.model import (
    ModelAssign,
    ModelCreate,
    ModelListItem,
    ModelResponse,
    ModelUpdate,
)
from dashboard_app.services.model_service import ModelService
from dashboard_app.services.permissions import get_permissions

router = APIRouter(tags=["models"])


@router.get("/me", response_model=ApiResponse[AuthInfo])
async def who_am_i(ctx: AuthContext = Depends(get_auth_context)):
    """Auth context and dashboard permissions for the presented key."""
    return {
        "success": True,
        "data": {"context": ctx, "permissions": get_permissions(ctx.user_role)},
    }


@router.get("/models", response_model=ApiResponse[List[ModelListItem]])
async def list_models(
    search: Optional[str] = None,
    organization_id: Optional[str] = None,
    ctx: AuthContext = Depends(get_auth_context),
    service: ModelService = Depends(get_model_service),
):
    """
    Models visible to the caller, newest first.

    Organization keys only ever see their own models; ``organization_id``
    narrows the list for admins.
    """
    models = await service.list_models(ctx, search=search, organization_id=organization_id)
    return {"success": True, "data": models}


@router.post(
    "/models",
    response_model=ApiResponse[ModelResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_model(
    body: ModelCreate,
    ctx: AuthContext = Depends(get_auth_context),
    service: ModelService = Depends(get_model_service),
):
    return {"success": True, "data": await service.create_model(ctx, body)}


@router.post("/models/assign", response_model=ApiResponse[ModelResponse])
async def assign_model(
    body: ModelAssign,
    ctx: AuthContext = Depends(require_admin),
    service: ModelService = Depends(get_model_service),
):
    """Assign a model to an organization, or unassign it with ``organization_id: null``."""
    model = await service.assign_model(body.model_id, body.organization_id)
    message = (
        "Model assigned to organization"
        if body.organization_id
        else "Model unassigned from organization"
    )
    return {"success": True, "data": model, "message": message}


@router.get("/models/{model_id}", response_model=ApiResponse[ModelResponse])
async def get_model(
    model_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    service: ModelService = Depends(get_model_service),
):
    return {"success": True, "data": service.get_accessible(ctx, model_id)}


@router.put("/models/{model_id}", response_model=ApiResponse[ModelResponse])
@router.patch("/models/{model_id}", response_model=ApiResponse[ModelResponse])
async def update_model(
    model_id: str,
    body: ModelUpdate,
    ctx: AuthContext = Depends(get_auth_context),
    service: ModelService = Depends(get_model_service),
):
    return {"success": True, "data": await service.update_model(ctx, model_id, body)}


@router.delete("/models/{model_id}", response_model=ApiResponse[DeleteResult])
async def delete_model(
    model_id: str,
    ctx: AuthContext = Depends(get_auth_context),
    service: ModelService = Depends(get_model_service),
):
    await service.delete_model(ctx, model_id)
    return {"success": True, "data": {"id": model_id}, "message": "Model deleted"}
