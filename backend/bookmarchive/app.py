"""FastAPI application setup for bookmarchive."""

from __future__ import annotations

from fastapi import FastAPI

from bookmarchive import __version__
from bookmarchive.api.dependencies import (
    get_app_settings,
    get_broadcaster,
    get_ingest_worker,
    get_query_service,
    shutdown_dependencies,
)
from bookmarchive.api.routes_admin import router as admin_router
from bookmarchive.api.routes_events import router as events_router
from bookmarchive.api.routes_search import router as search_router
from bookmarchive.core.logging import configure_logging, get_logger

logger = get_logger(__name__)

app = FastAPI(
    title="bookmarchive",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(search_router, prefix="/api", tags=["search"])
app.include_router(events_router, prefix="/api", tags=["events"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.on_event("startup")
async def startup() -> None:
    """Open the archive and start ingestion when enabled.

    A missing server URL or token raises ``ConfigError`` here, which aborts
    startup before anything is fetched.
    """
    settings = get_app_settings()
    configure_logging(settings.log_level, settings.log_format)
    get_query_service()
    get_broadcaster()
    if not settings.ingest_enabled:
        logger.info("Ingestion disabled; serving the existing archive only")
        return
    worker = get_ingest_worker()
    worker.start()
    logger.info("Ingestion worker started", extra={"ctx_server": settings.server_url})


@app.on_event("shutdown")
async def shutdown() -> None:
    shutdown_dependencies()
    logger.info("bookmarchive stopped")
