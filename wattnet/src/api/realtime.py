"""
Realtime device view via GET /api/realtime-data.

Online devices report live values held in memory; offline devices fall
back to the last values stored in the database.

CHANGELOG:
- 2026-10-13: Initial creation (STORY-109)

TODO:
- None
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from wattnet.src.api.deps import HubDep
from wattnet.src.services.ingestion import utcnow
from wattnet.src.services.realtime import build_realtime_view

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["realtime"])


@router.get("/realtime-data")
async def get_realtime_data(hub: HubDep) -> dict[str, dict[str, Any]]:
    """Return every known device keyed by device id.

    Raises:
        HTTPException: 503 if the store cannot list devices.
    """
    try:
        return await build_realtime_view(hub.store, hub.tracker, utcnow())
    except Exception as exc:
        logger.warning("Realtime view unavailable", exc_info=True)
        raise HTTPException(status_code=503, detail="Device store unavailable.") from exc
