"""
Meetcal API Server

FastAPI application serving the consolidated meeting calendar.
The Aggregator and its caches live for the process lifetime on app state.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import config, get_logger
from pipeline.aggregator import Aggregator
from server.metrics import metrics
from server.middleware.logging import log_requests
from server.middleware.request_id import RequestIDMiddleware
from server.routes import calendar, monitoring
from server.services.calendar import CalendarService
from vendors.session_manager_async import AsyncSessionManager

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the calendar pipeline on startup, close HTTP sessions on shutdown"""
    config.ensure_data_dir()
    aggregator = Aggregator.from_config(config, metrics=metrics)
    app.state.calendar_service = CalendarService(
        aggregator,
        timeout=config.REQUEST_TIMEOUT,
        metrics=metrics,
    )
    logger.info("calendar service ready", sources=config.SOURCES)

    yield

    try:
        await AsyncSessionManager.close_all()
        logger.info("closed vendor sessions")
    except Exception as e:
        # Shutdown proceeds regardless
        logger.error("error closing vendor sessions", error=str(e), exc_info=True)


app = FastAPI(title="meetcal API", description="Consolidated meeting calendar", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# Request ID middleware (must be early in stack for tracing)
app.add_middleware(RequestIDMiddleware)


@app.middleware("http")
async def log_requests_middleware(request, call_next):
    return await log_requests(request, call_next)


app.include_router(monitoring.router)  # Root, health and metrics
app.include_router(calendar.router)    # Calendar events and detail


def run():
    """Start the API server with uvicorn"""
    import uvicorn

    logger.info("starting meetcal API server", config_summary=config.summary())
    uvicorn.run(
        app,
        host=config.API_HOST,
        port=config.API_PORT,
        access_log=False,  # Request logging middleware covers this
    )


if __name__ == "__main__":
    run()
