from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from dashboard_app.database.connection import Base
from dashboard_app.utils import new_uuid, utcnow


class Model(Base):
    """A creator profile shown on the public site."""
    __tablename__ = "models"

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(200), nullable=False)
    slug = Column(String(200), unique=True, nullable=False, index=True)
    image_url = Column(Text, nullable=True)
    bio = Column(Text, nullable=True)
    bio_es = Column(Text, nullable=True)
    tags = Column(JSON, nullable=True)
    social_link = Column(Text, nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)
    is_new = Column(Boolean, default=True, nullable=False)
    is_pinned = Column(Boolean, default=False, nullable=False)
    organization_id = Column(
        String(36),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    last_story_added_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    organization = relationship("Organization", back_populates="models")
    gallery_items = relationship(
        "GalleryItem", back_populates="model", cascade="all, delete-orphan"
    )
    story_groups = relationship(
        "StoryGroup", back_populates="model", cascade="all, delete-orphan"
    )
    tracking_links = relationship(
        "TrackingLink", back_populates="model", cascade="all, delete-orphan"
    )
