from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from dashboard_app.database.connection import Base
from dashboard_app.utils import new_uuid, utcnow


class Organization(Base):
    """
    A tenant of the platform.

    Organizations authenticate with their own API key and only ever see
    the models assigned to them.
    """
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=new_uuid)
    name = Column(String(100), unique=True, nullable=False)
    # unique=True also creates the index used by key lookups
    api_key = Column(String(64), unique=True, nullable=False, default=new_uuid)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    models = relationship("Model", back_populates="organization")
