import logging
from collections import defaultdict
from typing import Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dashboard_app.cache.strategies import CacheStrategy
from dashboard_app.errors import BadRequestError, ConflictError, NotFoundError
from dashboard_app.models.media import Story, StoryGroup, GalleryItem
from dashboard_app.models.model import Model
from dashboard_app.models.organization import Organization
from dashboard_app.schemas.auth import AuthContext
from dashboard_app.schemas.model import (
    BASIC_INFO_FIELDS,
    ModelCreate,
    ModelListItem,
    ModelResponse,
    ModelUpdate,
)
from dashboard_app.services.permissions import check_model_access, require_model_management
from dashboard_app.services.tracking_service import TrackingService
from dashboard_app.utils import slugify_model_name

logger = logging.getLogger(__name__)


class ModelService:
    """
    Model (creator profile) management.

    Every method takes the caller's AuthContext: organizations are pinned
    to their own models and may only touch basic profile fields.
    """

    def __init__(self, db: Session, cache: Optional[CacheStrategy] = None):
        self.db = db
        self.cache = cache

    def get(self, model_id: str) -> Model:
        model = self.db.query(Model).filter(Model.id == model_id).first()
        if not model:
            raise NotFoundError("Model not found")
        return model

    def get_accessible(self, ctx: AuthContext, model_id: str) -> Model:
        model = self.get(model_id)
        check_model_access(ctx, model.organization_id)
        return model

    def _media_counts(self, model_ids: List[str]) -> Dict[str, Dict[str, int]]:
        counts = defaultdict(lambda: {"gallery_count": 0, "story_count": 0})
        if not model_ids:
            return counts

        gallery_rows = (
            self.db.query(GalleryItem.model_id, func.count(GalleryItem.id))
            .filter(GalleryItem.model_id.in_(model_ids))
            .group_by(GalleryItem.model_id)
            .all()
        )
        for model_id, count in gallery_rows:
            counts[model_id]["gallery_count"] = count

        story_rows = (
            self.db.query(StoryGroup.model_id, func.count(Story.id))
            .join(Story, Story.group_id == StoryGroup.id)
            .filter(StoryGroup.model_id.in_(model_ids))
            .group_by(StoryGroup.model_id)
            .all()
        )
        for model_id, count in story_rows:
            counts[model_id]["story_count"] = count
        return counts

    async def list_models(
        self,
        ctx: AuthContext,
        search: Optional[str] = None,
        organization_id: Optional[str] = None,
    ) -> List[ModelListItem]:
        query = self.db.query(Model)

        if not ctx.is_admin:
            query = query.filter(Model.organization_id == ctx.organization_id)
        elif organization_id:
            query = query.filter(Model.organization_id == organization_id)

        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Model.name.ilike(pattern), Model.slug.ilike(pattern)))

        models = query.order_by(Model.created_at.desc()).all()
        counts = self._media_counts([model.id for model in models])
        return [
            ModelListItem(**ModelResponse.model_validate(model).model_dump(), **counts[model.id])
            for model in models
        ]

    async def list_organization_models(self, organization_id: str) -> List[Model]:
        """Verified first, then most recent story activity."""
        return (
            self.db.query(Model)
            .filter(Model.organization_id == organization_id)
            .order_by(
                Model.is_verified.desc(),
                Model.last_story_added_at.is_(None),
                Model.last_story_added_at.desc(),
            )
            .all()
        )

    async def create_model(self, ctx: AuthContext, data: ModelCreate) -> Model:
        require_model_management(ctx)

        name = (data.name or "").strip()
        if not name:
            raise BadRequestError("Name is required")
        slug = (data.slug or "").strip() or slugify_model_name(name)
        if not slug:
            raise BadRequestError("Could not derive a slug from the model name")

        organization_id = data.organization_id if ctx.is_admin else ctx.organization_id
        if organization_id and not self.db.query(Organization).filter(
            Organization.id == organization_id
        ).first():
            raise NotFoundError("Organization not found")

        model = Model(
            name=name,
            slug=slug,
            image_url=data.image_url,
            bio=data.bio,
            bio_es=data.bio_es,
            tags=data.tags,
            social_link=data.social_link,
            is_verified=data.is_verified,
            is_new=data.is_new,
            is_pinned=data.is_pinned,
            organization_id=organization_id,
        )
        self.db.add(model)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(f"A model with slug '{slug}' already exists")
        self.db.refresh(model)
        logger.info("[Models] Created %s", model.slug)
        return model

    async def update_model(self, ctx: AuthContext, model_id: str, data: ModelUpdate) -> Model:
        model = self.get_accessible(ctx, model_id)
        changes = data.model_dump(exclude_unset=True)

        if not ctx.is_admin:
            changes = {field: value for field, value in changes.items() if field in BASIC_INFO_FIELDS}
        if not changes:
            raise BadRequestError("No fields to update")

        if "name" in changes and not (changes["name"] or "").strip():
            raise BadRequestError("Name cannot be empty")
        if "slug" in changes and not (changes["slug"] or "").strip():
            raise BadRequestError("Slug cannot be empty")

        old_slug = model.slug
        link_slugs = [link.slug for link in model.tracking_links]
        for field, value in changes.items():
            setattr(model, field, value)

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("A model with this slug already exists")
        self.db.refresh(model)
        if model.slug != old_slug:
            await self._invalidate_links(old_slug, link_slugs)
        return model

    async def delete_model(self, ctx: AuthContext, model_id: str) -> None:
        require_model_management(ctx)
        model = self.get(model_id)
        model_slug = model.slug
        link_slugs = [link.slug for link in model.tracking_links]
        self.db.delete(model)
        self.db.commit()
        await self._invalidate_links(model_slug, link_slugs)
        logger.info("[Models] Deleted %s", model_slug)

    async def _invalidate_links(self, model_slug: str, link_slugs: List[str]) -> None:
        """Drop cached redirect lookups for a model's tracking links."""
        tracking = TrackingService(self.db, self.cache)
        for slug in link_slugs:
            await tracking.invalidate(model_slug, slug)

    async def assign_model(self, model_id: Optional[str], organization_id: Optional[str]) -> Model:
        """Move a model into an organization, or out of any when organization_id is None."""
        if not model_id or not isinstance(model_id, str):
            raise BadRequestError("model_id is required")

        if organization_id is not None:
            organization = self.db.query(Organization).filter(
                Organization.id == organization_id
            ).first()
            if not organization:
                raise NotFoundError("Organization not found")

        model = self.get(model_id)
        model.organization_id = organization_id
        self.db.commit()
        self.db.refresh(model)
        return model

    async def unassign_from_organization(self, organization_id: str, model_id: str) -> Model:
        model = self.get(model_id)
        if model.organization_id != organization_id:
            raise NotFoundError("Model not found in this organization")
        model.organization_id = None
        self.db.commit()
        self.db.refresh(model)
        return model
