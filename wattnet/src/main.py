"""
FastAPI application entry point for the wattnet hub.

The lifespan builds the store and hub services, starts the scheduler and
tears everything down at exit. Live device state only exists between
startup and shutdown.

Run with:
    uvicorn wattnet.src.main:app

CHANGELOG:
- 2026-10-13: Initial creation (STORY-109)
- 2026-10-14: Start scheduler from lifespan (STORY-112)

TODO:
- None
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from wattnet.src.api.health import router as health_router
from wattnet.src.api.ingest import router as ingest_router
from wattnet.src.api.realtime import router as realtime_router
from wattnet.src.api.rollup import router as rollup_router
from wattnet.src.config import get_settings
from wattnet.src.db.session import create_engine, create_session_factory
from wattnet.src.hub import build_hub
from wattnet.src.logging_config import setup_logging
from wattnet.src.store.sql import SqlTelemetryStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: wire services, run the scheduler, clean up."""
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    engine = create_engine(settings)
    store = SqlTelemetryStore(create_session_factory(engine), timeout_s=settings.STORE_TIMEOUT_S)
    hub = build_hub(settings, store)
    app.state.hub = hub
    hub.scheduler.start()
    logger.info("Hub started (timezone %s)", settings.TIMEZONE)

    try:
        yield
    finally:
        await hub.shutdown()
        app.state.hub = None
        await engine.dispose()


app = FastAPI(
    title="wattnet hub",
    description="Telemetry ingestion, energy integration and rollups for power meters.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health_router)
app.include_router(ingest_router)
app.include_router(realtime_router)
app.include_router(rollup_router)


@app.get("/")
async def root() -> dict:
    """Liveness endpoint.

    Returns:
        dict: JSON object with application status.
    """
    return {"status": "ok"}
