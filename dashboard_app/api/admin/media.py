from typing import List, Optional

from fastapi import APIRouter, Depends, status

from dashboard_app.dependencies import get_media_service, require_content_manager
from dashboard_app.errors import BadRequestError
from dashboard_app.schemas.common import ApiResponse, DeleteResult, ReorderRequest, ReorderResult
from dashboard_app.schemas.media import (
    GalleryItemCreate,
    GalleryItemResponse,
    StoryCreate,
    StoryCreated,
    StoryGroupResponse,
    StoryGroupUpdate,
)
from dashboard_app.services.media_service import MediaService

router = APIRouter(tags=["media"], dependencies=[Depends(require_content_manager)])


def _require_model_id(model_id: Optional[str]) -> str:
    if not model_id:
        raise BadRequestError("model_id is required")
    return model_id


# Gallery

@router.get("/gallery", response_model=ApiResponse[List[GalleryItemResponse]])
async def list_gallery(
    model_id: Optional[str] = None,
    service: MediaService = Depends(get_media_service),
):
    items = await service.list_gallery(_require_model_id(model_id))
    return {"success": True, "data": items}


@router.post(
    "/gallery",
    response_model=ApiResponse[GalleryItemResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_gallery_item(
    body: GalleryItemCreate,
    service: MediaService = Depends(get_media_service),
):
    return {"success": True, "data": await service.add_gallery_item(body)}


@router.post("/gallery/reorder", response_model=ApiResponse[ReorderResult])
async def reorder_gallery(
    body: ReorderRequest,
    service: MediaService = Depends(get_media_service),
):
    """Persist the submitted order as-is; the last write wins."""
    updated = await service.reorder_gallery(body.items)
    return {"success": True, "data": {"updated": updated}}


@router.delete("/gallery/{item_id}", response_model=ApiResponse[DeleteResult])
async def delete_gallery_item(
    item_id: str,
    service: MediaService = Depends(get_media_service),
):
    await service.delete_gallery_item(item_id)
    return {"success": True, "data": {"id": item_id}}


# Stories

@router.post(
    "/stories",
    response_model=ApiResponse[StoryCreated],
    status_code=status.HTTP_201_CREATED,
)
async def add_story(
    body: StoryCreate,
    service: MediaService = Depends(get_media_service),
):
    """Add a story, reusing or creating its story group."""
    story = await service.add_story(body)
    return {
        "success": True,
        "data": {"group_id": story.group_id, "story_id": story.id, "story": story},
    }


@router.post("/stories/reorder", response_model=ApiResponse[ReorderResult])
async def reorder_stories(
    body: ReorderRequest,
    service: MediaService = Depends(get_media_service),
):
    updated = await service.reorder_stories(body.items)
    return {"success": True, "data": {"updated": updated}}


@router.delete("/stories/{story_id}", response_model=ApiResponse[DeleteResult])
async def delete_story(
    story_id: str,
    service: MediaService = Depends(get_media_service),
):
    await service.delete_story(story_id)
    return {"success": True, "data": {"id": story_id}}


# Story groups

@router.get("/story-groups", response_model=ApiResponse[List[StoryGroupResponse]])
async def list_story_groups(
    model_id: Optional[str] = None,
    service: MediaService = Depends(get_media_service),
):
    groups = await service.list_story_groups(_require_model_id(model_id))
    return {"success": True, "data": groups}


@router.post("/story-groups/reorder", response_model=ApiResponse[ReorderResult])
async def reorder_story_groups(
    body: ReorderRequest,
    service: MediaService = Depends(get_media_service),
):
    updated = await service.reorder_story_groups(body.items)
    return {"success": True, "data": {"updated": updated}}


@router.put("/story-groups/{group_id}", response_model=ApiResponse[StoryGroupResponse])
@router.patch("/story-groups/{group_id}", response_model=ApiResponse[StoryGroupResponse])
async def update_story_group(
    group_id: str,
    body: StoryGroupUpdate,
    service: MediaService = Depends(get_media_service),
):
    return {"success": True, "data": await service.update_story_group(group_id, body)}


@router.delete("/story-groups/{group_id}", response_model=ApiResponse[DeleteResult])
async def delete_story_group(
    group_id: str,
    service: MediaService = Depends(get_media_service),
):
    """Deletes the group together with its stories."""
    await service.delete_story_group(group_id)
    return {"success": True, "data": {"id": group_id}}
