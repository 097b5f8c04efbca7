import logging
import re
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from dashboard_app.cache.strategies import CacheStrategy
from dashboard_app.config import settings
from dashboard_app.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from dashboard_app.models.model import Model
from dashboard_app.models.tracking import TrackingLink, TrackingSubtag, TrafficSource
from dashboard_app.schemas.tracking import (
    CachedTrackingLink,
    OrgTrackingLinkCreate,
    OrgTrackingLinkUpdate,
    TrackingLinkCreate,
    TrackingLinkListing,
    TrackingLinkUpdate,
    TrackingLookup,
)
from dashboard_app.utils import slugify, utcnow

logger = logging.getLogger(__name__)

# Seeded on startup; "Organic" is implicit and has no row
DEFAULT_SOURCES = ["Instagram", "X", "Reddit", "Model Directory", "OnlyFans", "Fansly"]

SEQUENTIAL_SLUG_RE = re.compile(r"^c(\d+)$")


def next_sequential_slug(existing_slugs: List[str]) -> str:
    """
    c1, c2, ... per model. Gaps are never reused: archived links keep
    their slug, so the next number is always max + 1.
    """
    numbers = [
        int(match.group(1))
        for match in (SEQUENTIAL_SLUG_RE.match(slug or "") for slug in existing_slugs)
        if match
    ]
    return f"c{max(numbers) + 1 if numbers else 1}"


class TrackingService:
    """
    Traffic sources, subtags and tracking links.

    Redirect lookups go through the cache (Cache-Aside): the key is
    ``tracking-link:<model_slug>:<tracking_slug>`` and is dropped whenever
    the link changes, so admins see edits take effect immediately.
    """

    def __init__(self, db: Session, cache: Optional[CacheStrategy] = None):
        self.db = db
        self.cache = cache

    # ------------------------------------------------------------------
    # Sources and subtags
    # ------------------------------------------------------------------

    def seed_default_sources(self) -> int:
        existing = {
            name.lower() for (name,) in self.db.query(TrafficSource.name).all()
        }
        created = 0
        for index, name in enumerate(DEFAULT_SOURCES):
            if name.lower() in existing:
                continue
            self.db.add(TrafficSource(
                name=name, slug=slugify(name), is_custom=False, sort_order=index
            ))
            created += 1
        if created:
            self.db.commit()
            logger.info("[Tracking] Seeded %d default sources", created)
        return created

    async def list_sources(self) -> List[TrafficSource]:
        return (
            self.db.query(TrafficSource)
            .order_by(TrafficSource.is_custom, TrafficSource.sort_order, TrafficSource.name)
            .all()
        )

    def get_source(self, source_id: str) -> TrafficSource:
        source = self.db.query(TrafficSource).filter(TrafficSource.id == source_id).first()
        if not source:
            raise NotFoundError("Source not found")
        return source

    async def create_source(self, name: Optional[str]) -> TrafficSource:
        name = (name or "").strip()
        if not name:
            raise BadRequestError("Source name is required")

        duplicate = self.db.query(TrafficSource).filter(
            func.lower(TrafficSource.name) == name.lower()
        ).first()
        if duplicate:
            raise ConflictError("A source with this name already exists")

        max_order = self.db.query(func.max(TrafficSource.sort_order)).scalar()
        source = TrafficSource(
            name=name,
            slug=slugify(name),
            is_custom=True,
            sort_order=(max_order or 0) + 1,
        )
        self.db.add(source)
        self.db.commit()
        self.db.refresh(source)
        return source

    async def delete_source(self, source_id: str) -> None:
        source = self.get_source(source_id)
        if not source.is_custom:
            raise ForbiddenError("Cannot delete default sources")

        in_use = self.db.query(func.count(TrackingLink.id)).filter(
            TrackingLink.source_id == source.id
        ).scalar()
        if in_use:
            raise ConflictError(
                f"Source is used by {in_use} tracking link(s) and cannot be deleted"
            )

        self.db.delete(source)
        self.db.commit()

    async def list_subtags(self, source_id: Optional[str] = None) -> List[TrackingSubtag]:
        query = self.db.query(TrackingSubtag)
        if source_id:
            query = query.filter(TrackingSubtag.source_id == source_id)
        return query.order_by(TrackingSubtag.name).all()

    async def create_subtag(self, name: Optional[str], source_id: Optional[str]) -> TrackingSubtag:
        name = (name or "").strip()
        if not name or not source_id:
            raise BadRequestError("Name and sourceId are required")
        self.get_source(source_id)

        duplicate = self.db.query(TrackingSubtag).filter(
            TrackingSubtag.source_id == source_id,
            func.lower(TrackingSubtag.name) == name.lower(),
        ).first()
        if duplicate:
            raise ConflictError("A subtag with this name already exists for this source")

        subtag = TrackingSubtag(source_id=source_id, name=name, slug=slugify(name))
        self.db.add(subtag)
        self.db.commit()
        self.db.refresh(subtag)
        return subtag

    def _check_subtag(self, subtag_id: Optional[str], source_id: Optional[str]) -> None:
        if not subtag_id:
            return
        subtag = self.db.query(TrackingSubtag).filter(TrackingSubtag.id == subtag_id).first()
        if not subtag:
            raise NotFoundError("Subtag not found")
        if source_id and subtag.source_id != source_id:
            raise BadRequestError("Subtag does not belong to the selected source")

    # ------------------------------------------------------------------
    # Links (admin)
    # ------------------------------------------------------------------

    def get_link(self, link_id: str) -> TrackingLink:
        link = self.db.query(TrackingLink).filter(TrackingLink.id == link_id).first()
        if not link:
            raise NotFoundError("Tracking link not found")
        return link

    def next_slug_for_model(self, model_id: str) -> str:
        slugs = [
            slug for (slug,) in self.db.query(TrackingLink.slug).filter(
                TrackingLink.model_id == model_id
            ).all()
        ]
        return next_sequential_slug(slugs)

    async def list_links_for_model(self, model_id: Optional[str]) -> TrackingLinkListing:
        if not model_id:
            raise BadRequestError("modelId is required")

        links = (
            self.db.query(TrackingLink)
            .filter(TrackingLink.model_id == model_id, TrackingLink.is_archived.is_(False))
            .order_by(TrackingLink.created_at.asc())
            .all()
        )
        return TrackingLinkListing(
            links=links,
            sources=await self.list_sources(),
            subtags=await self.list_subtags(),
        )

    async def create_link(self, data: TrackingLinkCreate) -> TrackingLink:
        if not data.model_id or not data.source_id:
            raise BadRequestError("modelId and sourceId are required")

        model = self.db.query(Model).filter(Model.id == data.model_id).first()
        if not model:
            raise NotFoundError("Model not found")
        self.get_source(data.source_id)
        self._check_subtag(data.subtag_id, data.source_id)

        link = TrackingLink(
            model_id=model.id,
            organization_id=model.organization_id,
            source_id=data.source_id,
            subtag_id=data.subtag_id,
            slug=self.next_slug_for_model(model.id),
            preview_url=data.preview_url,
        )
        self.db.add(link)
        self.db.commit()
        self.db.refresh(link)

        await self.invalidate(model.slug, link.slug)
        logger.info("[Tracking] Created link %s/%s", model.slug, link.slug)
        return link

    async def update_link(self, link_id: str, data: TrackingLinkUpdate) -> TrackingLink:
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise BadRequestError("No fields to update")

        link = self.get_link(link_id)
        if "source_id" in changes:
            if not changes["source_id"]:
                raise BadRequestError("sourceId cannot be empty")
            self.get_source(changes["source_id"])
        self._check_subtag(changes.get("subtag_id"), changes.get("source_id", link.source_id))

        for field, value in changes.items():
            setattr(link, field, value)
        self.db.commit()
        self.db.refresh(link)

        await self.invalidate(link.model_slug, link.slug)
        return link

    async def archive_link(self, link_id: str) -> TrackingLink:
        link = self.get_link(link_id)
        link.is_archived = True
        link.archived_at = utcnow()
        self.db.commit()
        self.db.refresh(link)

        await self.invalidate(link.model_slug, link.slug)
        logger.info("[Tracking] Archived link %s", link.id)
        return link

    # ------------------------------------------------------------------
    # Links (organization scope)
    # ------------------------------------------------------------------

    def _org_links_query(self, organization_id: str):
        org_model_ids = self.db.query(Model.id).filter(Model.organization_id == organization_id)
        return self.db.query(TrackingLink).filter(
            or_(
                TrackingLink.organization_id == organization_id,
                TrackingLink.model_id.in_(org_model_ids),
            )
        )

    def _get_org_link(self, organization_id: str, link_id: str) -> TrackingLink:
        link = self._org_links_query(organization_id).filter(TrackingLink.id == link_id).first()
        if not link:
            raise NotFoundError("Tracking link not found")
        return link

    def _get_org_model(self, organization_id: str, model_id: str) -> Model:
        model = self.db.query(Model).filter(
            Model.id == model_id, Model.organization_id == organization_id
        ).first()
        if not model:
            raise NotFoundError("Model not found in this organization")
        return model

    def _check_slug_free(self, slug: str, model_id: Optional[str], organization_id: str,
                         exclude_id: Optional[str] = None) -> None:
        query = self.db.query(TrackingLink).filter(
            TrackingLink.slug == slug, TrackingLink.is_archived.is_(False)
        )
        if model_id:
            query = query.filter(TrackingLink.model_id == model_id)
        else:
            query = query.filter(
                TrackingLink.model_id.is_(None), TrackingLink.organization_id == organization_id
            )
        if exclude_id:
            query = query.filter(TrackingLink.id != exclude_id)
        if query.first():
            raise ConflictError(f"A tracking link with slug '{slug}' already exists")

    async def list_org_links(self, organization_id: str) -> List[TrackingLink]:
        return (
            self._org_links_query(organization_id)
            .filter(TrackingLink.is_archived.is_(False))
            .order_by(TrackingLink.created_at.desc())
            .all()
        )

    async def create_org_link(self, organization_id: str, data: OrgTrackingLinkCreate) -> TrackingLink:
        model = self._get_org_model(organization_id, data.model_id) if data.model_id else None
        if model is None and not data.destination_url:
            raise BadRequestError("A tracking link needs a model or a destination_url")
        if data.source_id:
            self.get_source(data.source_id)
        self._check_subtag(data.subtag_id, data.source_id)

        slug = (data.slug or "").strip()
        if not slug:
            if model is None:
                raise BadRequestError("slug is required for links without a model")
            slug = self.next_slug_for_model(model.id)
        self._check_slug_free(slug, model.id if model else None, organization_id)

        link = TrackingLink(
            organization_id=organization_id,
            model_id=model.id if model else None,
            name=data.name,
            slug=slug,
            destination_url=data.destination_url,
            source_id=data.source_id,
            subtag_id=data.subtag_id,
        )
        self.db.add(link)
        self.db.commit()
        self.db.refresh(link)

        if model:
            await self.invalidate(model.slug, link.slug)
        return link

    async def update_org_link(
        self, organization_id: str, link_id: str, data: OrgTrackingLinkUpdate
    ) -> TrackingLink:
        link = self._get_org_link(organization_id, link_id)
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise BadRequestError("No fields to update")

        old_slug = link.slug
        if "slug" in changes:
            slug = (changes["slug"] or "").strip()
            if not slug:
                raise BadRequestError("slug cannot be empty")
            self._check_slug_free(slug, link.model_id, organization_id, exclude_id=link.id)
            changes["slug"] = slug
        if changes.get("source_id"):
            self.get_source(changes["source_id"])
        self._check_subtag(changes.get("subtag_id"), changes.get("source_id", link.source_id))

        for field, value in changes.items():
            setattr(link, field, value)
        self.db.commit()
        self.db.refresh(link)

        await self.invalidate(link.model_slug, old_slug)
        await self.invalidate(link.model_slug, link.slug)
        return link

    async def archive_org_link(self, organization_id: str, link_id: str) -> TrackingLink:
        link = self._get_org_link(organization_id, link_id)
        return await self.archive_link(link.id)

    # ------------------------------------------------------------------
    # Redirect lookups
    # ------------------------------------------------------------------

    @staticmethod
    def _cache_key(model_slug: str, tracking_slug: str) -> str:
        return f"tracking-link:{model_slug}:{tracking_slug}"

    async def invalidate(self, model_slug: Optional[str], tracking_slug: Optional[str]) -> None:
        if self.cache and model_slug and tracking_slug:
            await self.cache.delete(self._cache_key(model_slug, tracking_slug))

    async def get_cached_link(
        self, model_slug: str, tracking_slug: str
    ) -> Optional[CachedTrackingLink]:
        cache_key = self._cache_key(model_slug, tracking_slug)
        if self.cache:
            cached = await self.cache.get(cache_key)
            if cached:
                return CachedTrackingLink.model_validate_json(cached)

        link = (
            self.db.query(TrackingLink)
            .join(Model, TrackingLink.model_id == Model.id)
            .filter(
                Model.slug == model_slug,
                TrackingLink.slug == tracking_slug,
                TrackingLink.is_archived.is_(False),
            )
            .first()
        )
        if not link:
            return None

        data = CachedTrackingLink(
            id=link.id,
            model_id=link.model_id,
            model_slug=model_slug,
            slug=link.slug,
            source_id=link.source_id,
            subtag_id=link.subtag_id,
            is_active=link.is_active,
        )
        if self.cache:
            await self.cache.set(
                cache_key, data.model_dump_json(), ttl=settings.tracking_link_cache_ttl
            )
        return data

    async def lookup_tracking_link(self, model_slug: str, tracking_slug: str) -> TrackingLookup:
        """
        Resolve ``/model/<model_slug>/<tracking_slug>``.

        Unknown or inactive links still redirect to the model page, just
        without the ``ref`` attribution.
        """
        base_redirect = f"/model/{model_slug}"
        data = await self.get_cached_link(model_slug, tracking_slug)

        if not data or not data.is_active:
            return TrackingLookup(found=False, data=None, redirect_url=base_redirect)

        return TrackingLookup(
            found=True, data=data, redirect_url=f"{base_redirect}?ref={tracking_slug}"
        )

    async def resolve_link(self, id_or_slug: str) -> Optional[TrackingLink]:
        """
        Find one live link by id or slug.

        Slugs are only unique per model, so a slug shared by several live
        links is ambiguous and resolves to nothing.
        """
        live = self.db.query(TrackingLink).filter(
            TrackingLink.is_active.is_(True), TrackingLink.is_archived.is_(False)
        )
        link = live.filter(TrackingLink.id == id_or_slug).first()
        if link:
            return link

        matches = live.filter(TrackingLink.slug == id_or_slug).limit(2).all()
        if len(matches) != 1:
            if matches:
                logger.warning("[Tracking] Slug %s matches several links", id_or_slug)
            return None
        return matches[0]

    @staticmethod
    def destination_for(link: TrackingLink, base_url: str) -> Optional[str]:
        if link.destination_url:
            return link.destination_url
        if link.model_slug:
            return f"{base_url.rstrip('/')}/model/{link.model_slug}?ref={link.slug}"
        return None
