from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import HTMLResponse
import structlog
from .schemas import ActionResponse
from .render import render_stats
from ..deps import get_coordinator
from ..event_models import CoverageEvent
from ..services.ingestion import IngestionCoordinator

router = APIRouter()
log = structlog.get_logger()


@router.post("/action", response_model=ActionResponse)
async def receive_action(
    request: Request,
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    """Record a coverage event posted by CI or a local tracker."""
    body = await request.body()
    event = await coordinator.receive(body)
    return ActionResponse.accepted(event, getattr(request.state, "correlation_id", None))


@router.get("/api/stats", response_model=list[CoverageEvent])
async def stats_api(coordinator: IngestionCoordinator = Depends(get_coordinator)):
    return await coordinator.list_events()


@router.get("/stats", response_class=HTMLResponse)
async def stats_web(coordinator: IngestionCoordinator = Depends(get_coordinator)):
    events = await coordinator.list_events()
    return HTMLResponse(render_stats(events))


@router.api_route("/", methods=["GET", "POST", "PUT", "DELETE", "PATCH"], include_in_schema=False)
async def default_path(request: Request):
    body = await request.body()
    log.info("tracker.default_path", body=body.decode("utf-8", errors="replace"))
    return Response(status_code=404)
