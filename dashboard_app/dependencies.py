"""
FastAPI dependencies for dependency injection.

Cache and queue are process-wide singletons built from settings; services
are created per request around the request's DB session.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Query, Request
from sqlalchemy.orm import Session

from dashboard_app.cache.factory import CacheBackend, CacheFactory
from dashboard_app.cache.strategies import CacheStrategy
from dashboard_app.config import settings
from dashboard_app.database.connection import get_db
from dashboard_app.errors import BadRequestError, ForbiddenError
from dashboard_app.queue.factory import QueueBackend, QueueFactory
from dashboard_app.queue.strategies import QueueStrategy
from dashboard_app.schemas.auth import AuthContext
from dashboard_app.services.permissions import (
    AuthService,
    check_organization_scope,
    extract_api_key,
    require_content_management,
)


@lru_cache()
def get_cache() -> CacheStrategy:
    """
    Get cache instance (singleton).

    @lru_cache ensures the factory is called only once per process.
    """
    backend = CacheBackend(settings.cache_backend)
    return CacheFactory.create(backend)


@lru_cache()
def get_queue() -> QueueStrategy:
    """Get queue instance (singleton)."""
    backend = QueueBackend(settings.queue_backend)
    return QueueFactory.create(backend)


# ----------------------------------------------------------------------
# Auth
# ----------------------------------------------------------------------

def get_auth_service(
    db: Session = Depends(get_db),
    cache: CacheStrategy = Depends(get_cache),
) -> AuthService:
    return AuthService(db=db, cache=cache)


async def get_auth_context(
    request: Request,
    auth: AuthService = Depends(get_auth_service),
) -> AuthContext:
    """Any valid key: global admin or organization."""
    return await auth.authenticate(extract_api_key(request))


async def require_admin(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    if not ctx.is_admin:
        raise ForbiddenError("Forbidden: Admin access required")
    return ctx


async def require_content_manager(ctx: AuthContext = Depends(get_auth_context)) -> AuthContext:
    require_content_management(ctx)
    return ctx


async def get_org_context(
    org_id: str,
    ctx: AuthContext = Depends(get_auth_context),
) -> AuthContext:
    """Context for ``/api/org/{org_id}/*``; organizations only reach their own id."""
    check_organization_scope(ctx, org_id)
    return ctx


async def get_dashboard_organization_id(
    organization_id: Optional[str] = None,
    ctx: AuthContext = Depends(get_auth_context),
) -> str:
    """
    Organization whose dashboard ``/api/org/analytics`` shows.

    Organization keys always see their own; admins pick one with
    ``?organization_id=``.
    """
    if not ctx.is_admin:
        return ctx.organization_id
    if not organization_id:
        raise BadRequestError("organization_id is required for admin access")
    return organization_id


# ----------------------------------------------------------------------
# Services
# ----------------------------------------------------------------------

def get_organization_service(
    db: Session = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
    cache: CacheStrategy = Depends(get_cache),
):
    from dashboard_app.services.organization_service import OrganizationService
    return OrganizationService(db=db, auth=auth, cache=cache)


def get_model_service(
    db: Session = Depends(get_db),
    cache: CacheStrategy = Depends(get_cache),
):
    from dashboard_app.services.model_service import ModelService
    return ModelService(db=db, cache=cache)


def get_tracking_service(
    db: Session = Depends(get_db),
    cache: CacheStrategy = Depends(get_cache),
):
    from dashboard_app.services.tracking_service import TrackingService
    return TrackingService(db=db, cache=cache)


def get_media_service(db: Session = Depends(get_db)):
    from dashboard_app.services.media_service import MediaService
    return MediaService(db=db)


def get_analytics_view_service(db: Session = Depends(get_db)):
    from dashboard_app.services.analytics_views import AnalyticsViewService
    return AnalyticsViewService(db=db)


def get_analytics_service(
    db: Session = Depends(get_db),
    views=Depends(get_analytics_view_service),
):
    from dashboard_app.services.analytics_service import AnalyticsService
    return AnalyticsService(db=db, views=views)


def get_event_service(queue: QueueStrategy = Depends(get_queue)):
    from dashboard_app.services.event_service import EventService
    return EventService(queue=queue)


def get_dashboard_query(
    period: Optional[str] = None,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    models: Optional[str] = None,
    model_slugs: Optional[str] = Query(None, alias="modelSlugs"),
    sources: Optional[str] = None,
    countries: Optional[str] = None,
    country: Optional[str] = None,
):
    """Dashboard filters; ``modelSlugs`` and ``country`` are accepted as aliases."""
    from dashboard_app.services.analytics_service import DashboardQuery
    return DashboardQuery(
        period=period,
        start_date=start_date,
        end_date=end_date,
        models=models or model_slugs,
        sources=sources,
        countries=countries or country,
    )
