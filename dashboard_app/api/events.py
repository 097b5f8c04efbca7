from typing import List

from fastapi import APIRouter, Depends, Request, status

from dashboard_app.dependencies import get_analytics_service, get_event_service, require_admin
from dashboard_app.schemas.analytics import EventCreate, EventResponse
from dashboard_app.schemas.common import ApiResponse
from dashboard_app.services.analytics_service import AnalyticsService
from dashboard_app.services.event_service import EventService

router = APIRouter(prefix="/analytics", tags=["events"])


@router.post("", response_model=ApiResponse[dict], status_code=status.HTTP_202_ACCEPTED)
async def ingest_event(
    body: EventCreate,
    request: Request,
    events: EventService = Depends(get_event_service),
):
    """Queue one analytics event; the worker writes it."""
    message = await events.ingest(request, body)
    return {"success": True, "data": {"eventType": message.event_type}, "message": "Event queued"}


@router.get(
    "",
    response_model=ApiResponse[List[EventResponse]],
    dependencies=[Depends(require_admin)],
)
async def list_events(
    limit: int = 1000,
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Newest raw events first."""
    return {"success": True, "data": await service.list_events(limit)}
