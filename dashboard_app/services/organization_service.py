import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from dashboard_app.cache.strategies import CacheStrategy
from dashboard_app.errors import BadRequestError, ConflictError, NotFoundError
from dashboard_app.models.model import Model
from dashboard_app.models.organization import Organization
from dashboard_app.models.tracking import TrackingLink
from dashboard_app.schemas.organization import OrganizationResponse, OrganizationWithCount
from dashboard_app.services.permissions import AuthService
from dashboard_app.services.tracking_service import TrackingService
from dashboard_app.utils import new_uuid

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100


class OrganizationService:
    """
    CRUD for organizations (admin only).

    Each organization gets a random UUID API key on creation; regenerating
    it drops the cached lookup of the old key so it stops working at once.
    """

    def __init__(
        self,
        db: Session,
        auth: Optional[AuthService] = None,
        cache: Optional[CacheStrategy] = None,
    ):
        self.db = db
        self.auth = auth
        self.cache = cache

    @staticmethod
    def _validate_name(name: Any) -> str:
        if not isinstance(name, str) or not name.strip():
            raise BadRequestError("Name is required and must be a string")
        name = name.strip()
        if len(name) > MAX_NAME_LENGTH:
            raise BadRequestError(f"Name must be {MAX_NAME_LENGTH} characters or less")
        return name

    def _name_taken(self, name: str, exclude_id: Optional[str] = None) -> bool:
        query = self.db.query(Organization).filter(Organization.name == name)
        if exclude_id:
            query = query.filter(Organization.id != exclude_id)
        return query.first() is not None

    def _model_counts(self) -> Dict[str, int]:
        rows = (
            self.db.query(Model.organization_id, func.count(Model.id))
            .filter(Model.organization_id.isnot(None))
            .group_by(Model.organization_id)
            .all()
        )
        counts = defaultdict(int)
        counts.update({organization_id: count for organization_id, count in rows})
        return counts

    def get(self, organization_id: str) -> Organization:
        organization = self.db.query(Organization).filter(
            Organization.id == organization_id
        ).first()
        if not organization:
            raise NotFoundError("Organization not found")
        return organization

    async def list_organizations(self) -> List[OrganizationWithCount]:
        organizations = self.db.query(Organization).order_by(
            Organization.created_at.desc()
        ).all()
        counts = self._model_counts()
        return [
            OrganizationWithCount(
                **OrganizationResponse.model_validate(organization).model_dump(),
                model_count=counts[organization.id],
            )
            for organization in organizations
        ]

    async def create_organization(self, name: Any) -> Organization:
        name = self._validate_name(name)
        if self._name_taken(name):
            raise ConflictError("An organization with this name already exists")

        organization = Organization(name=name, api_key=new_uuid())
        self.db.add(organization)
        self.db.commit()
        self.db.refresh(organization)
        logger.info("[Organizations] Created %s (%s)", organization.name, organization.id)
        return organization

    async def update_organization(
        self,
        organization_id: str,
        name: Any = None,
        regenerate_key: bool = False,
    ) -> Organization:
        organization = self.get(organization_id)

        if name is not None:
            name = self._validate_name(name)
            if self._name_taken(name, exclude_id=organization.id):
                raise ConflictError("An organization with this name already exists")
            organization.name = name

        old_key = None
        if regenerate_key:
            old_key = organization.api_key
            organization.api_key = new_uuid()

        self.db.commit()
        self.db.refresh(organization)

        if old_key and self.auth:
            await self.auth.invalidate_key(old_key)
            logger.info("[Organizations] Regenerated API key for %s", organization.id)
        return organization

    async def delete_organization(self, organization_id: str) -> None:
        organization = self.get(organization_id)

        model_count = self.db.query(func.count(Model.id)).filter(
            Model.organization_id == organization.id
        ).scalar()
        if model_count:
            raise BadRequestError(
                f"Cannot delete organization with {model_count} assigned model(s). "
                "Please unassign all models first."
            )

        api_key = organization.api_key
        links = self.db.query(TrackingLink).filter(TrackingLink.organization_id == organization.id)
        cached_lookups = [(link.model_slug, link.slug) for link in links]
        links.delete(synchronize_session=False)
        self.db.delete(organization)
        self.db.commit()

        tracking = TrackingService(self.db, self.cache)
        for model_slug, slug in cached_lookups:
            await tracking.invalidate(model_slug, slug)

        if self.auth:
            await self.auth.invalidate_key(api_key)
        logger.info("[Organizations] Deleted %s", organization_id)
