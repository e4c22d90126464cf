"""
Health check endpoint that probes the store and reports live state.

Returns HTTP 200 when the store answers, or HTTP 503 when it does not.
The body also carries the number of tracked and online devices and the
scheduler statistics.

CHANGELOG:
- 2026-10-13: Initial creation (STORY-109)

TODO:
- None
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from wattnet.src.api.deps import HubDep
from wattnet.src.services.ingestion import utcnow
from wattnet.src.store.base import TelemetryStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["health"])


async def _check_store(store: TelemetryStore) -> str:
    """Probe the store.

    Returns:
        "ok" if the probe succeeds, "error" otherwise.
    """
    try:
        await store.ping()
        return "ok"
    except Exception:
        logger.warning("Health check: store probe failed", exc_info=True)
        return "error"


@router.get("/health")
async def health_check(hub: HubDep) -> JSONResponse:
    """Health check with store probe and live device counts.

    Returns:
        JSONResponse: status, db, tracked_devices, online_devices and
            scheduler. HTTP 200 when the store is ok, 503 otherwise.
    """
    db_status = await _check_store(hub.store)
    ok = db_status == "ok"

    return JSONResponse(
        status_code=200 if ok else 503,
        content={
            "status": "ok" if ok else "degraded",
            "db": db_status,
            "tracked_devices": len(hub.tracker),
            "online_devices": hub.tracker.online_count(utcnow()),
            "scheduler": hub.scheduler.get_stats(),
        },
    )
