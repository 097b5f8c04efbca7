import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from dashboard_app.api import events, health, tracking
from dashboard_app.api.admin import analytics as admin_analytics
from dashboard_app.api.admin import media as admin_media
from dashboard_app.api.admin import models as admin_models
from dashboard_app.api.admin import organizations as admin_organizations
from dashboard_app.api.admin import tracking as admin_tracking
from dashboard_app.api.org import analytics as org_analytics
from dashboard_app.api.org import models as org_models
from dashboard_app.api.org import tracking as org_tracking
from dashboard_app.config import settings
from dashboard_app.database.connection import Base, SessionLocal, engine
from dashboard_app.errors import ApiError
from dashboard_app.logging_config import configure_logging
from dashboard_app.services.tracking_service import TrackingService

# Import models to ensure they're registered with Base
from dashboard_app import models  # noqa: F401

configure_logging()
logger = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = SessionLocal()
    try:
        created = TrackingService(db).seed_default_sources()
        if created:
            logger.info("[Startup] Seeded %d default traffic sources", created)
    finally:
        db.close()
    yield


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Content management and analytics API for models, organizations and tracking links",
    debug=settings.debug,
    lifespan=lifespan,
)


######## Error handlers

def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, **extra},
    )


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error("[API] %s %s failed: %s", request.method, request.url.path, exc.message)
    return _error(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return _error(422, "Invalid request", details=jsonable_errors(exc))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("[API] Unhandled error on %s %s", request.method, request.url.path)
    return _error(500, "Internal server error")


def jsonable_errors(exc: RequestValidationError):
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


@app.get("/")
def read_root():
    """Root endpoint with API information"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc",
    }


######## Include routers
app.include_router(admin_models.router, prefix="/api/admin")
app.include_router(admin_organizations.router, prefix="/api/admin")
app.include_router(admin_tracking.router, prefix="/api/admin")
app.include_router(admin_media.router, prefix="/api/admin")
app.include_router(admin_analytics.router, prefix="/api/admin")
app.include_router(org_analytics.router, prefix="/api/org")
app.include_router(org_models.router, prefix="/api/org")
app.include_router(org_tracking.router, prefix="/api/org")
app.include_router(events.router, prefix="/api")
app.include_router(health.router, prefix="/api")
app.include_router(tracking.router)
