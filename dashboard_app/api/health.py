import logging
import time
from datetime import timedelta

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from dashboard_app.cache.strategies import CacheStrategy
from dashboard_app.config import settings
from dashboard_app.database.connection import get_db
from dashboard_app.dependencies import get_cache, get_queue
from dashboard_app.models.analytics import AnalyticsEvent
from dashboard_app.queue.strategies import QueueStrategy
from dashboard_app.utils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    db: Session = Depends(get_db),
    cache: CacheStrategy = Depends(get_cache),
    queue: QueueStrategy = Depends(get_queue),
):
    """
    ``healthy`` when the database answers and events arrived in the last
    24 hours, ``degraded`` when only the latter fails, ``unhealthy`` (503)
    when the database is unreachable.
    """
    checks = {}
    overall = "healthy"

    started = time.monotonic()
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = {
            "status": "healthy",
            "latency_ms": int((time.monotonic() - started) * 1000),
        }
    except Exception as e:
        logger.error("[Health] Database check failed: %s", e)
        checks["database"] = {"status": "unhealthy", "error": str(e)}
        overall = "unhealthy"

    if overall != "unhealthy":
        try:
            since = utcnow() - timedelta(hours=24)
            recent = db.query(AnalyticsEvent).filter(AnalyticsEvent.created_at >= since).count()
            checks["analytics"] = {
                "status": "healthy" if recent else "degraded",
                "events_last_24h": recent,
            }
            if not recent:
                overall = "degraded"
        except Exception as e:
            logger.error("[Health] Analytics check failed: %s", e)
            checks["analytics"] = {"status": "degraded", "error": str(e)}
            overall = "degraded"

    checks["queue"] = {
        "backend": settings.queue_backend,
        "pending": await queue.get_queue_length(settings.queue_name),
    }
    checks["cache"] = {"backend": cache.name}

    body = {
        "status": overall,
        "environment": settings.environment,
        "timestamp": utcnow().isoformat(),
        "checks": checks,
    }
    return JSONResponse(status_code=503 if overall == "unhealthy" else 200, content=body)
