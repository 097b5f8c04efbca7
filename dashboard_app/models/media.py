from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from dashboard_app.database.connection import Base
from dashboard_app.utils import new_uuid, utcnow


class GalleryItem(Base):
    __tablename__ = "gallery_items"

    id = Column(String(36), primary_key=True, default=new_uuid)
    model_id = Column(
        String(36), ForeignKey("models.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Object key relative to the media bucket
    media_url = Column(Text, nullable=False)
    media_type = Column(String(10), nullable=False)  # "image" | "video"
    poster_url = Column(Text, nullable=True)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    model = relationship("Model", back_populates="gallery_items")


class StoryGroup(Base):
    """A bubble of stories; pinned groups stay on the profile."""
    __tablename__ = "story_groups"

    id = Column(String(36), primary_key=True, default=new_uuid)
    model_id = Column(
        String(36), ForeignKey("models.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title = Column(String(200), nullable=True)
    cover_url = Column(Text, nullable=True)
    is_pinned = Column(Boolean, default=False, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    model = relationship("Model", back_populates="story_groups")
    stories = relationship(
        "Story",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="Story.sort_order",
    )


class Story(Base):
    __tablename__ = "stories"

    id = Column(String(36), primary_key=True, default=new_uuid)
    group_id = Column(
        String(36), ForeignKey("story_groups.id", ondelete="CASCADE"), nullable=False, index=True
    )
    media_url = Column(Text, nullable=False)
    media_type = Column(String(10), default="image", nullable=False)
    poster_url = Column(Text, nullable=True)
    duration = Column(Integer, default=5, nullable=False)  # seconds
    posted_date = Column(DateTime, default=utcnow, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    group = relationship("StoryGroup", back_populates="stories")
