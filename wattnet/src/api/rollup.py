"""
Manual hooks for the scheduled jobs.

- POST /api/rollup runs a rollup for the period containing a moment
  (default: the previous period of that type).
- POST /api/retention runs the retention job now.

Both go through the scheduler so a manual day rollup unlocks retention
exactly as the scheduled one does.

CHANGELOG:
- 2026-10-13: Initial creation (STORY-109)

TODO:
- None
"""

import logging
from datetime import UTC, datetime, timedelta, tzinfo

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from wattnet.src.api.deps import HubDep
from wattnet.src.services.ingestion import utcnow
from wattnet.src.services.rollup import period_bounds
from wattnet.src.store.base import PeriodType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["jobs"])


# ---------------------------------------------------------------------------
# Pydantic request / response schemas
# ---------------------------------------------------------------------------


class RollupRequest(BaseModel):
    """Schema for a manual rollup.

    Attributes:
        period_type: One of hour, day, week, month.
        period_start: Any moment inside the target period. When omitted
            the period before the current one is rolled up.
    """

    period_type: PeriodType
    period_start: datetime | None = None


class RollupResponse(BaseModel):
    period_type: PeriodType
    period_start: datetime
    period_end: datetime
    processed: int
    errors: int


class RetentionResponse(BaseModel):
    """Schema for a manual retention run.

    Attributes:
        skipped: True when no daily rollup has completed yet.
        deleted: Number of raw readings removed.
    """

    skipped: bool
    deleted: int


def _previous_period_moment(period_type: PeriodType, tz: tzinfo) -> datetime:
    """Return a moment inside the period before the current one."""
    start, _ = period_bounds(period_type, utcnow(), tz)
    return start - timedelta(seconds=1)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/rollup", response_model=RollupResponse)
async def trigger_rollup(body: RollupRequest, hub: HubDep) -> RollupResponse:
    """Run a rollup for one period over every registered device.

    Raises:
        HTTPException: 503 if the store cannot list devices.
    """
    moment = body.period_start or _previous_period_moment(body.period_type, hub.settings.tz)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    start, end = period_bounds(body.period_type, moment, hub.settings.tz)

    try:
        result = await hub.scheduler.trigger_rollup(body.period_type, moment)
    except Exception as exc:
        logger.warning("Manual %s rollup failed", body.period_type, exc_info=True)
        raise HTTPException(status_code=503, detail="Rollup failed.") from exc

    return RollupResponse(
        period_type=body.period_type,
        period_start=start,
        period_end=end,
        processed=result.processed,
        errors=result.errors,
    )


@router.post("/retention", response_model=RetentionResponse)
async def trigger_retention(hub: HubDep) -> RetentionResponse:
    """Purge raw readings that are past the horizon and already rolled up.

    Raises:
        HTTPException: 503 if the delete fails.
    """
    try:
        deleted = await hub.scheduler.trigger_retention()
    except Exception as exc:
        logger.warning("Manual retention failed", exc_info=True)
        raise HTTPException(status_code=503, detail="Retention failed.") from exc

    if deleted is None:
        return RetentionResponse(skipped=True, deleted=0)
    return RetentionResponse(skipped=False, deleted=deleted)
