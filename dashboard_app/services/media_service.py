import logging
from typing import List, Type

from sqlalchemy import func
from sqlalchemy.orm import Session

from dashboard_app.errors import BadRequestError, NotFoundError
from dashboard_app.models.media import GalleryItem, Story, StoryGroup
from dashboard_app.models.model import Model
from dashboard_app.schemas.common import ReorderItem
from dashboard_app.schemas.media import GalleryItemCreate, StoryCreate, StoryGroupUpdate
from dashboard_app.utils import normalize_media_path, utcnow

logger = logging.getLogger(__name__)

MEDIA_TYPES = ("image", "video")


class MediaService:
    """
    Gallery items, story groups and stories.

    Media URLs are stored as bucket-relative object keys. Ordering is
    owned by the client: reorder calls submit the full order and the
    last write wins.
    """

    def __init__(self, db: Session):
        self.db = db

    def _get_model(self, model_id: str) -> Model:
        model = self.db.query(Model).filter(Model.id == model_id).first()
        if not model:
            raise NotFoundError("Model not found")
        return model

    def _get(self, entity: Type, entity_id: str, label: str):
        row = self.db.query(entity).filter(entity.id == entity_id).first()
        if not row:
            raise NotFoundError(f"{label} not found")
        return row

    def _reorder(self, entity: Type, items: List[ReorderItem], label: str) -> int:
        if not items:
            raise BadRequestError("items must be a non-empty list")
        ids = [item.id for item in items]
        if len(set(ids)) != len(ids):
            raise BadRequestError("Duplicate ids in reorder request")

        rows = {row.id: row for row in self.db.query(entity).filter(entity.id.in_(ids)).all()}
        missing = [item_id for item_id in ids if item_id not in rows]
        if missing:
            raise NotFoundError(f"{label} not found: {', '.join(missing)}")

        for item in items:
            rows[item.id].sort_order = item.sort_order
        self.db.commit()
        return len(items)

    # Gallery

    async def add_gallery_item(self, data: GalleryItemCreate) -> GalleryItem:
        if not data.model_id or not data.media_url or not data.media_type:
            raise BadRequestError("Missing required fields: model_id, media_url, media_type")
        if data.media_type not in MEDIA_TYPES:
            raise BadRequestError("media_type must be 'image' or 'video'")
        self._get_model(data.model_id)

        max_order = self.db.query(func.max(GalleryItem.sort_order)).filter(
            GalleryItem.model_id == data.model_id
        ).scalar()
        item = GalleryItem(
            model_id=data.model_id,
            media_url=normalize_media_path(data.media_url),
            media_type=data.media_type,
            poster_url=normalize_media_path(data.poster_url) if data.poster_url else None,
            width=data.width,
            height=data.height,
            sort_order=0 if max_order is None else max_order + 1,
        )
        self.db.add(item)
        self.db.commit()
        self.db.refresh(item)
        return item

    async def list_gallery(self, model_id: str) -> List[GalleryItem]:
        return (
            self.db.query(GalleryItem)
            .filter(GalleryItem.model_id == model_id)
            .order_by(GalleryItem.sort_order, GalleryItem.created_at)
            .all()
        )

    async def reorder_gallery(self, items: List[ReorderItem]) -> int:
        return self._reorder(GalleryItem, items, "Gallery item")

    async def delete_gallery_item(self, item_id: str) -> None:
        item = self._get(GalleryItem, item_id, "Gallery item")
        self.db.delete(item)
        self.db.commit()

    # Stories

    def _find_group_for(self, data: StoryCreate, cover_url: str) -> StoryGroup:
        if data.group_id:
            group = self.db.query(StoryGroup).filter(
                StoryGroup.id == data.group_id, StoryGroup.model_id == data.model_id
            ).first()
            if not group:
                raise BadRequestError("Invalid group_id or group does not belong to this model")
            group.cover_url = cover_url
            return group

        group = (
            self.db.query(StoryGroup)
            .filter(StoryGroup.model_id == data.model_id, StoryGroup.is_pinned == data.is_pinned)
            .order_by(StoryGroup.created_at.desc())
            .first()
        )
        if group:
            group.cover_url = cover_url
            return group

        max_order = self.db.query(func.max(StoryGroup.sort_order)).filter(
            StoryGroup.model_id == data.model_id
        ).scalar()
        group = StoryGroup(
            model_id=data.model_id,
            is_pinned=data.is_pinned,
            title=data.title or ("Pinned" if data.is_pinned else None),
            cover_url=cover_url,
            sort_order=0 if max_order is None else max_order + 1,
        )
        self.db.add(group)
        self.db.flush()
        return group

    async def add_story(self, data: StoryCreate) -> Story:
        if not data.model_id or not data.media_url:
            raise BadRequestError("Missing required fields: model_id and media_url")
        if data.media_type not in MEDIA_TYPES:
            raise BadRequestError("media_type must be 'image' or 'video'")
        model = self._get_model(data.model_id)

        media_url = normalize_media_path(data.media_url)
        cover_url = normalize_media_path(data.cover_url) if data.cover_url else media_url
        group = self._find_group_for(data, cover_url)

        max_order = self.db.query(func.max(Story.sort_order)).filter(
            Story.group_id == group.id
        ).scalar()
        now = utcnow()
        story = Story(
            group_id=group.id,
            media_url=media_url,
            media_type=data.media_type,
            poster_url=normalize_media_path(data.poster_url) if data.poster_url else None,
            duration=data.duration or 5,
            posted_date=now,
            sort_order=0 if max_order is None else max_order + 1,
        )
        self.db.add(story)
        model.last_story_added_at = now
        self.db.commit()
        self.db.refresh(story)
        logger.info("[Media] Story %s added to group %s", story.id, group.id)
        return story

    async def delete_story(self, story_id: str) -> None:
        story = self._get(Story, story_id, "Story")
        self.db.delete(story)
        self.db.commit()

    async def reorder_stories(self, items: List[ReorderItem]) -> int:
        return self._reorder(Story, items, "Story")

    # Story groups

    async def list_story_groups(self, model_id: str) -> List[StoryGroup]:
        return (
            self.db.query(StoryGroup)
            .filter(StoryGroup.model_id == model_id)
            .order_by(StoryGroup.sort_order, StoryGroup.created_at)
            .all()
        )

    async def update_story_group(self, group_id: str, data: StoryGroupUpdate) -> StoryGroup:
        group = self._get(StoryGroup, group_id, "Story group")
        changes = data.model_dump(exclude_unset=True)
        if not changes:
            raise BadRequestError("No fields to update")
        if changes.get("cover_url"):
            changes["cover_url"] = normalize_media_path(changes["cover_url"])
        if "is_pinned" in changes and changes["is_pinned"] is None:
            raise BadRequestError("is_pinned cannot be null")

        for field, value in changes.items():
            setattr(group, field, value)
        self.db.commit()
        self.db.refresh(group)
        return group

    async def delete_story_group(self, group_id: str) -> None:
        group = self._get(StoryGroup, group_id, "Story group")
        self.db.delete(group)
        self.db.commit()

    async def reorder_story_groups(self, items: List[ReorderItem]) -> int:
        return self._reorder(StoryGroup, items, "Story group")
