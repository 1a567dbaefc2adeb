"""
Calendar API routes

Thin HTTP wrappers over CalendarService. Pipeline failures come back as
{"success": False, "error": ...} bodies with a matching status code.
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse

from config import get_logger
from server.dependencies import get_calendar_service
from server.services.calendar import CalendarService

logger = get_logger(__name__)


router = APIRouter(prefix="/api/calendar", tags=["calendar"])


def _respond(result: Dict[str, Any], error_status: int = 502) -> JSONResponse:
    if result.get("success"):
        return JSONResponse(result)
    return JSONResponse(result, status_code=error_status)


@router.get("/events")
async def get_events(
    force_refresh: bool = Query(False, description="Skip the fresh-cache shortcut"),
    service: CalendarService = Depends(get_calendar_service),
):
    """Consolidated meetings across all configured sources"""
    result = await service.get_events(force_refresh=force_refresh)
    return _respond(result, error_status=503)


@router.get("/events/{client}/{event_id}/detail")
async def get_event_detail(
    client: str,
    event_id: str,
    service: CalendarService = Depends(get_calendar_service),
):
    """Video and minutes links for one event"""
    result = await service.get_event_detail(client, event_id)
    return _respond(result)


@router.post("/message")
async def handle_message(
    message: Dict[str, Any] = Body(...),
    service: CalendarService = Depends(get_calendar_service),
):
    """Message envelope: {"action": "getEvents"|"getEventDetail", ...}"""
    result = await service.handle_message(message)
    # Envelope callers read success/error from the body
    return JSONResponse(result)
