"""
API key authentication and role permissions.

Two kinds of callers exist:

- global admins, holding one of the configured admin keys, who can do
  everything;
- organizations, holding the API key stored on their row, who can read
  analytics for and edit the basic info of their own models.

Keys arrive as ``?key=`` or ``Authorization: Bearer <key>``.
"""

import hashlib
import hmac
import json
import logging
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from dashboard_app.cache.strategies import CacheStrategy
from dashboard_app.config import settings
from dashboard_app.errors import ForbiddenError, UnauthorizedError
from dashboard_app.models.organization import Organization
from dashboard_app.schemas.auth import AuthContext, DashboardPermissions
from dashboard_app.utils import mask_key

logger = logging.getLogger(__name__)

ROLE_ADMIN = "admin"
ROLE_ORGANIZATION = "organization"


def extract_api_key(request: Request) -> Optional[str]:
    """Query parameter wins over the Authorization header."""
    key = request.query_params.get("key")
    if key:
        return key
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[len("Bearer "):].strip() or None
    return None


def admin_context() -> AuthContext:
    return AuthContext(
        user_role=ROLE_ADMIN,
        is_admin=True,
        can_manage_content=True,
        can_manage_models=True,
        can_edit_model_info=True,
    )


def organization_context(organization_id: str, organization_name: str) -> AuthContext:
    return AuthContext(
        user_role=ROLE_ORGANIZATION,
        organization_id=organization_id,
        organization_name=organization_name,
        is_admin=False,
        can_manage_content=False,
        can_manage_models=False,
        can_edit_model_info=True,
    )


def get_permissions(role: str) -> DashboardPermissions:
    """Dashboard areas and actions available to ``role``."""
    is_admin = role == ROLE_ADMIN
    return DashboardPermissions(
        show_gallery_tab=is_admin,
        show_stories_tab=is_admin,
        show_tracking_tab=is_admin,
        show_analytics_tab=True,
        show_settings_tab=is_admin,
        can_upload_media=is_admin,
        can_delete_media=is_admin,
        can_create_model=is_admin,
        can_delete_model=is_admin,
        can_edit_basic_info=True,
    )


def is_global_admin_key(key: str) -> bool:
    return any(
        hmac.compare_digest(key.encode("utf-8"), admin_key.encode("utf-8"))
        for admin_key in settings.global_admin_keys
    )


def require_content_management(ctx: AuthContext) -> None:
    if not ctx.can_manage_content:
        raise ForbiddenError("Forbidden: Content management requires admin access")


def require_model_management(ctx: AuthContext) -> None:
    if not ctx.can_manage_models:
        raise ForbiddenError("Forbidden: Model management requires admin access")


def check_model_access(ctx: AuthContext, model_organization_id: Optional[str]) -> None:
    """Admins reach every model; organizations only their own."""
    if ctx.is_admin:
        return
    if not model_organization_id or model_organization_id != ctx.organization_id:
        raise ForbiddenError("Forbidden: Model does not belong to your organization")


def check_organization_scope(ctx: AuthContext, organization_id: str) -> None:
    if ctx.is_admin:
        return
    if ctx.organization_id != organization_id:
        raise ForbiddenError("Forbidden: Access to this organization is not allowed")


class AuthService:
    """
    Resolves API keys to an AuthContext.

    Organization lookups are cached for ``organization_key_cache_ttl``
    seconds; only hits are cached so a freshly created key works at once.
    """

    def __init__(self, db: Session, cache: Optional[CacheStrategy] = None):
        self.db = db
        self.cache = cache

    @staticmethod
    def _cache_key(api_key: str) -> str:
        digest = hashlib.sha256(api_key.encode("utf-8")).hexdigest()
        return f"org-key:{digest}"

    async def get_organization_by_key(self, api_key: str) -> Optional[dict]:
        cache_key = self._cache_key(api_key)
        if self.cache:
            cached = await self.cache.get(cache_key)
            if cached:
                return json.loads(cached)

        organization = self.db.query(Organization).filter(
            Organization.api_key == api_key
        ).first()
        if not organization:
            return None

        found = {"id": organization.id, "name": organization.name}
        if self.cache:
            await self.cache.set(
                cache_key, json.dumps(found), ttl=settings.organization_key_cache_ttl
            )
        return found

    async def invalidate_key(self, api_key: str) -> None:
        if self.cache and api_key:
            await self.cache.delete(self._cache_key(api_key))

    async def resolve(self, api_key: Optional[str]) -> Optional[AuthContext]:
        if not api_key:
            return None
        if is_global_admin_key(api_key):
            return admin_context()

        organization = await self.get_organization_by_key(api_key)
        if organization:
            return organization_context(organization["id"], organization["name"])

        logger.info("[OrgAuth] Rejected API key %s", mask_key(api_key))
        return None

    async def authenticate(self, api_key: Optional[str]) -> AuthContext:
        """Like resolve() but raises 401 instead of returning None."""
        if not api_key:
            raise UnauthorizedError("Unauthorized: No valid authentication")
        ctx = await self.resolve(api_key)
        if ctx is None:
            raise UnauthorizedError("Unauthorized: Invalid API key")
        return ctx
