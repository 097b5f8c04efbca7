from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class GalleryItemCreate(BaseModel):
    model_id: Optional[str] = None
    media_url: Optional[str] = None
    media_type: Optional[str] = None
    poster_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None

    model_config = ConfigDict(protected_namespaces=())


class GalleryItemResponse(BaseModel):
    id: str
    model_id: str
    media_url: str
    media_type: str
    poster_url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    sort_order: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())


class StoryCreate(BaseModel):
    model_id: Optional[str] = None
    media_url: Optional[str] = None
    media_type: str = "image"
    poster_url: Optional[str] = None
    duration: int = 5
    group_id: Optional[str] = None
    is_pinned: bool = False
    title: Optional[str] = None
    cover_url: Optional[str] = None

    model_config = ConfigDict(protected_namespaces=())


class StoryResponse(BaseModel):
    id: str
    group_id: str
    media_url: str
    media_type: str
    poster_url: Optional[str] = None
    duration: int
    posted_date: datetime
    sort_order: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StoryCreated(BaseModel):
    group_id: str
    story_id: str
    story: StoryResponse


class StoryGroupUpdate(BaseModel):
    title: Optional[str] = None
    cover_url: Optional[str] = None
    is_pinned: Optional[bool] = None


class StoryGroupResponse(BaseModel):
    id: str
    model_id: str
    title: Optional[str] = None
    cover_url: Optional[str] = None
    is_pinned: bool
    sort_order: int
    created_at: datetime
    stories: List[StoryResponse] = []

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())
