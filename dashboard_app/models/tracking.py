from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from dashboard_app.database.connection import Base
from dashboard_app.utils import new_uuid, utcnow


class TrafficSource(Base):
    """
    Where a tracking link is shared (Instagram, Reddit, ...).

    Default sources are seeded at startup and cannot be deleted;
    custom sources are created by admins.
    """
    __tablename__ = "tracking_sources"

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(100), unique=True, nullable=False)
    slug = Column(String(100), nullable=False)
    is_custom = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    subtags = relationship(
        "TrackingSubtag",
        back_populates="source",
        cascade="all, delete-orphan",
        order_by="TrackingSubtag.name",
    )


class TrackingSubtag(Base):
    """Finer attribution under a source, e.g. a specific subreddit."""
    __tablename__ = "tracking_subtags"

    id = Column(String(36), primary_key=True, default=new_uuid)
    source_id = Column(
        String(36), ForeignKey("tracking_sources.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(100), nullable=False)
    slug = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    source = relationship("TrafficSource", back_populates="subtags")


class TrackingLink(Base):
    """
    Attributed URL for a model.

    Admin links get sequential slugs (c1, c2, ...) per model and redirect
    to the model page with ``?ref=<slug>``. Organization links may point at
    an arbitrary ``destination_url`` instead. Archiving is a soft delete.
    """
    __tablename__ = "tracking_links"

    id = Column(String(36), primary_key=True, default=new_uuid)
    model_id = Column(
        String(36), ForeignKey("models.id", ondelete="CASCADE"), nullable=True, index=True
    )
    organization_id = Column(
        String(36), ForeignKey("organizations.id", ondelete="CASCADE"), nullable=True, index=True
    )
    source_id = Column(String(36), ForeignKey("tracking_sources.id"), nullable=True, index=True)
    subtag_id = Column(
        String(36), ForeignKey("tracking_subtags.id", ondelete="SET NULL"), nullable=True
    )
    name = Column(String(200), nullable=True)
    slug = Column(String(100), nullable=False, index=True)
    destination_url = Column(Text, nullable=True)
    preview_url = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_archived = Column(Boolean, default=False, nullable=False)
    archived_at = Column(DateTime, nullable=True)
    click_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    model = relationship("Model", back_populates="tracking_links")
    source = relationship("TrafficSource")
    subtag = relationship("TrackingSubtag")

    @property
    def source_name(self):
        return self.source.name if self.source else None

    @property
    def subtag_name(self):
        return self.subtag.name if self.subtag else None

    @property
    def model_name(self):
        return self.model.name if self.model else None

    @property
    def model_slug(self):
        return self.model.slug if self.model else None
