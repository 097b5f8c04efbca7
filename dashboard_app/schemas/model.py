from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


# Fields an organization key may change on its own models
BASIC_INFO_FIELDS = ("name", "bio", "bio_es", "social_link", "image_url", "tags")


class ModelCreate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    image_url: Optional[str] = None
    bio: Optional[str] = None
    bio_es: Optional[str] = None
    tags: Optional[List[str]] = None
    social_link: Optional[str] = None
    is_verified: bool = False
    is_new: bool = True
    is_pinned: bool = False
    organization_id: Optional[str] = None


class ModelUpdate(BaseModel):
    """Partial update; only fields present in the request body are applied."""
    name: Optional[str] = None
    slug: Optional[str] = None
    image_url: Optional[str] = None
    bio: Optional[str] = None
    bio_es: Optional[str] = None
    tags: Optional[List[str]] = None
    social_link: Optional[str] = None
    is_verified: Optional[bool] = None
    is_new: Optional[bool] = None
    is_pinned: Optional[bool] = None
    organization_id: Optional[str] = None


class ModelAssign(BaseModel):
    model_id: Optional[str] = None
    organization_id: Optional[str] = None

    model_config = ConfigDict(protected_namespaces=())


class ModelResponse(BaseModel):
    id: str
    name: str
    slug: str
    image_url: Optional[str] = None
    bio: Optional[str] = None
    bio_es: Optional[str] = None
    tags: Optional[List[str]] = None
    social_link: Optional[str] = None
    is_verified: bool
    is_new: bool
    is_pinned: bool
    organization_id: Optional[str] = None
    last_story_added_at: Optional[datetime] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ModelListItem(ModelResponse):
    gallery_count: int = 0
    story_count: int = 0
