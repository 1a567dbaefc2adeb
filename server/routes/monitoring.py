"""
Monitoring and health check API routes
"""

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from config import config, get_logger
from server.dependencies import get_calendar_service
from server.metrics import get_metrics_text
from server.services.calendar import CalendarService
from vendors.session_manager_async import AsyncSessionManager

logger = get_logger(__name__)


router = APIRouter()


@router.get("/")
async def root():
    """API status and info"""
    return {
        "service": "meetcal",
        "status": "running",
        "sources": config.SOURCES,
        "endpoints": {
            "events": "GET /api/calendar/events?force_refresh=false - Consolidated meetings",
            "detail": "GET /api/calendar/events/{client}/{event_id}/detail - Video and minutes links",
            "message": "POST /api/calendar/message - Message envelope (getEvents, getEventDetail)",
            "health": "GET /api/health - Cache and session status",
            "metrics": "GET /metrics - Prometheus metrics",
        },
    }


@router.get("/api/health")
async def health_check(service: CalendarService = Depends(get_calendar_service)):
    """Cache freshness and HTTP session status. Never triggers a sync."""
    cache = service.aggregator.cache_status()
    return {
        "status": "healthy" if cache.get("withinStaleWindow") else "degraded",
        "cache": cache,
        "sessions": AsyncSessionManager.get_stats(),
    }


@router.get("/metrics")
async def prometheus_metrics():
    """Prometheus scrape endpoint"""
    return Response(content=get_metrics_text(), media_type="text/plain; version=0.0.4")
