from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Request bodies of the admin tracking routes use camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SubtagResponse(BaseModel):
    id: str
    source_id: str
    name: str
    slug: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SourceResponse(BaseModel):
    id: str
    name: str
    slug: str
    is_custom: bool
    sort_order: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SourceWithSubtags(SourceResponse):
    subtags: List[SubtagResponse] = []


class SourceCreate(BaseModel):
    name: Optional[str] = None


class SubtagCreate(CamelModel):
    name: Optional[str] = None
    source_id: Optional[str] = None


class TrackingLinkCreate(CamelModel):
    model_id: Optional[str] = None
    source_id: Optional[str] = None
    subtag_id: Optional[str] = None
    preview_url: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, protected_namespaces=()
    )


class TrackingLinkUpdate(CamelModel):
    source_id: Optional[str] = None
    subtag_id: Optional[str] = None
    preview_url: Optional[str] = None


class OrgTrackingLinkCreate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    destination_url: Optional[str] = None
    model_id: Optional[str] = None
    source_id: Optional[str] = None
    subtag_id: Optional[str] = None

    model_config = ConfigDict(protected_namespaces=())


class OrgTrackingLinkUpdate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    destination_url: Optional[str] = None
    source_id: Optional[str] = None
    subtag_id: Optional[str] = None
    is_active: Optional[bool] = None


class TrackingLinkResponse(BaseModel):
    id: str
    model_id: Optional[str] = None
    organization_id: Optional[str] = None
    source_id: Optional[str] = None
    subtag_id: Optional[str] = None
    source_name: Optional[str] = None
    subtag_name: Optional[str] = None
    model_name: Optional[str] = None
    model_slug: Optional[str] = None
    name: Optional[str] = None
    slug: str
    destination_url: Optional[str] = None
    preview_url: Optional[str] = None
    is_active: bool
    is_archived: bool
    archived_at: Optional[datetime] = None
    click_count: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())


class TrackingLinkListing(BaseModel):
    links: List[TrackingLinkResponse]
    sources: List[SourceResponse]
    subtags: List[SubtagResponse]


class CachedTrackingLink(BaseModel):
    """What the redirect path keeps in cache for one link."""
    id: str
    model_id: Optional[str] = None
    model_slug: str
    slug: str
    source_id: Optional[str] = None
    subtag_id: Optional[str] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True, protected_namespaces=())


class TrackingLookup(BaseModel):
    found: bool
    data: Optional[CachedTrackingLink] = None
    redirect_url: str
