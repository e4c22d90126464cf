"""
Retention of raw readings.

Deletes raw readings older than a horizon. It does not know which windows
have been rolled up; the scheduler only calls it with cutoffs that lie
behind the last successful daily rollup.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-107)

TODO:
- None
"""

import logging
from datetime import UTC, datetime, timedelta

from wattnet.src.store.base import TelemetryStore

logger = logging.getLogger(__name__)

DEFAULT_HORIZON = timedelta(hours=48)


class RetentionManager:
    def __init__(self, store: TelemetryStore) -> None:
        self._store = store

    async def purge_before(self, cutoff: datetime) -> int:
        """Delete raw readings with ``ts < cutoff``.

        Returns:
            int: Number of deleted rows.

        Raises:
            Exception: Store failures propagate so the caller can report them.
        """
        deleted = await self._store.delete_readings_before(cutoff)
        logger.info("Purged %d raw readings older than %s", deleted, cutoff.isoformat())
        return deleted

    async def purge_older_than(
        self,
        horizon: timedelta = DEFAULT_HORIZON,
        now: datetime | None = None,
    ) -> int:
        """Delete raw readings older than ``now - horizon``."""
        if horizon <= timedelta(0):
            raise ValueError("horizon must be positive")
        if now is None:
            now = datetime.now(UTC)
        return await self.purge_before(now - horizon)
