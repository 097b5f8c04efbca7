from typing import Tuple

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse

from dashboard_app.dependencies import get_event_service, get_tracking_service
from dashboard_app.errors import BadRequestError, NotFoundError
from dashboard_app.models.tracking import TrackingLink
from dashboard_app.services.event_service import EventService
from dashboard_app.services.tracking_service import TrackingService

router = APIRouter(tags=["redirect"])


@router.api_route("/model/{model_slug}/{tracking_slug}", methods=["GET", "HEAD"])
async def tracking_redirect(
    model_slug: str,
    tracking_slug: str,
    request: Request,
    tracking: TrackingService = Depends(get_tracking_service),
    events: EventService = Depends(get_event_service),
):
    """
    Attributed entry point ``/model/<slug>/<tracking_slug>``.

    Flow:
    1. Resolve the link using cache-aside
    2. Publish the visit to the queue (GET only, bots skipped)
    3. Redirect to the model page, with ``?ref=`` only for active links
    """
    lookup = await tracking.lookup_tracking_link(model_slug, tracking_slug)
    if lookup.found and request.method == "GET":
        await events.track_visit(request, lookup.data)
    return RedirectResponse(url=lookup.redirect_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


async def _resolve_destination(
    id_or_slug: str, request: Request, tracking: TrackingService
) -> Tuple[TrackingLink, str]:
    link = await tracking.resolve_link(id_or_slug)
    if not link:
        raise NotFoundError("Tracking link not found")
    destination = tracking.destination_for(link, str(request.base_url))
    if not destination:
        raise BadRequestError("Destination URL not configured")
    return link, destination


@router.get("/go/{slug}")
async def go_redirect(
    slug: str,
    request: Request,
    tracking: TrackingService = Depends(get_tracking_service),
    events: EventService = Depends(get_event_service),
):
    """Shareable short link; counts a click and forwards to the destination."""
    link, destination = await _resolve_destination(slug, request, tracking)
    await events.track_click(request, link)
    return RedirectResponse(url=destination, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.get("/api/track/{id_or_slug}")
async def track_redirect(
    id_or_slug: str,
    request: Request,
    tracking: TrackingService = Depends(get_tracking_service),
    events: EventService = Depends(get_event_service),
):
    link, destination = await _resolve_destination(id_or_slug, request, tracking)
    await events.track_click(request, link)
    return RedirectResponse(url=destination, status_code=status.HTTP_302_FOUND)
