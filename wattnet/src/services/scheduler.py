"""
Wall-clock scheduling of the presence sweep, rollups and retention.

Runs four asyncio tasks on the application's event loop:

- **sweep**: ``PresenceTracker.sweep()`` every ``sweep_interval``.
- **hourly**: rolls up the previous hour shortly after each hour boundary.
- **daily**: rolls up yesterday at ``daily_at`` local time (one-shot delay
  to the next occurrence, then every 24 h), chaining week/month rollups
  when the day closes one. A catch-up run for yesterday happens at start.
- **retention**: purges raw readings every ``retention_interval``.

Retention never deletes past the end of the last day that was rolled up
without errors, nor past the start of any earlier day whose rollup had
errors. Those failed days are retried on every scheduled daily run until
they roll up cleanly. Until a daily rollup has succeeded in this process,
retention is skipped.

Next runs are scheduled against the original timeline (not "sleep after
finishing"), so a slow job does not push later runs back. Job failures are
logged and the loop continues; the manual ``trigger_*`` hooks propagate
errors to their caller instead.

CHANGELOG:
- 2026-10-12: Initial creation (STORY-107)
- 2026-10-14: Hold retention behind the last clean daily rollup (STORY-112)
- 2026-10-15: Retry failed days and hold retention before them (STORY-115)

TODO:
- None
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Any

from wattnet.src.services.ingestion import utcnow
from wattnet.src.services.presence import PresenceTracker, SweepResult
from wattnet.src.services.retention import DEFAULT_HORIZON, RetentionManager
from wattnet.src.services.rollup import (
    RollupEngine,
    RollupResult,
    day_bounds,
    period_bounds,
)
from wattnet.src.store.base import PeriodType, TelemetryStore

logger = logging.getLogger(__name__)

# Delay after the hour boundary so late samples land before the rollup.
HOURLY_ROLLUP_OFFSET = timedelta(minutes=1)

_DAY_S = 24 * 3600.0
_HOUR_S = 3600.0


def seconds_until(at: time, now: datetime, tz: tzinfo = UTC) -> float:
    """Seconds from *now* to the next local wall-clock time *at*.

    Returns a full day when *now* is exactly at *at*.
    """
    local_now = now.astimezone(tz)
    target = datetime.combine(local_now.date(), at, tzinfo=tz)
    if target <= local_now:
        target = datetime.combine(local_now.date() + timedelta(days=1), at, tzinfo=tz)
    return (target.astimezone(UTC) - now.astimezone(UTC)).total_seconds()


def seconds_until_next_hour(now: datetime, offset: timedelta = HOURLY_ROLLUP_OFFSET) -> float:
    """Seconds from *now* to the next hour boundary plus *offset*."""
    floor = now.replace(minute=0, second=0, microsecond=0)
    target = floor + offset
    if target <= now:
        target += timedelta(hours=1)
    return (target - now).total_seconds()


class Scheduler:
    """Drives the periodic jobs and exposes manual triggers.

    Args:
        store: Store used to enumerate devices.
        tracker: Presence tracker swept every ``sweep_interval``.
        rollup: Rollup engine.
        retention: Retention manager.
        sweep_interval: Interval of the presence sweep.
        daily_at: Local wall-clock time of the daily rollup.
        retention_interval: Interval between retention runs.
        retention_horizon: Age after which raw readings may be purged.
        tz: Zone whose calendar defines days.
        clock: Source of "now".
    """

    def __init__(
        self,
        store: TelemetryStore,
        tracker: PresenceTracker,
        rollup: RollupEngine,
        retention: RetentionManager,
        sweep_interval: timedelta = timedelta(seconds=2),
        daily_at: time = time(0, 5),
        retention_interval: timedelta = timedelta(hours=6),
        retention_horizon: timedelta = DEFAULT_HORIZON,
        tz: tzinfo = UTC,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._tracker = tracker
        self._rollup = rollup
        self._retention = retention
        self._sweep_interval = sweep_interval
        self._daily_at = daily_at
        self._retention_interval = retention_interval
        self._retention_horizon = retention_horizon
        self._tz = tz
        self._clock = clock

        self._tasks: list[asyncio.Task] = []
        # End of the latest day rolled up without errors.
        self._rolled_through: datetime | None = None
        # Closed days whose rollup had errors, retried by the daily run.
        self._failed_days: set[date] = set()
        self._run_counts: dict[str, int] = {}
        self._last_runs: dict[str, datetime] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def rolled_through(self) -> datetime | None:
        return self._rolled_through

    @property
    def failed_days(self) -> list[date]:
        return sorted(self._failed_days)

    def start(self) -> None:
        """Start the background tasks on the running event loop."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._sweep_loop(), name="presence-sweep"),
            asyncio.create_task(self._hourly_loop(), name="hourly-rollup"),
            asyncio.create_task(self._daily_loop(), name="daily-rollup"),
            asyncio.create_task(self._retention_loop(), name="retention"),
        ]
        logger.info(
            "Scheduler started: sweep every %ss, daily rollup at %s, "
            "retention every %s (horizon %s)",
            self._sweep_interval.total_seconds(),
            self._daily_at.isoformat(),
            self._retention_interval,
            self._retention_horizon,
        )

    async def stop(self) -> None:
        """Cancel the background tasks and wait for them to finish."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Scheduler stopped")

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def run_sweep(self) -> SweepResult:
        result = await self._tracker.sweep(self._clock())
        self._record("sweep")
        return result

    async def run_hourly_rollup(self, now: datetime | None = None) -> RollupResult:
        """Roll up the hour before the one containing *now*."""
        now = now or self._clock()
        start, end = period_bounds(PeriodType.HOUR, now - timedelta(hours=1), self._tz)
        device_ids = await self._store.list_device_ids()
        result = await self._rollup.rollup(PeriodType.HOUR, start, end, device_ids)
        self._record("hourly")
        return result

    async def run_daily_rollup(self, day: date | None = None) -> dict[PeriodType, RollupResult]:
        """Roll up *day* plus any week/month it closes.

        Without *day*, earlier days whose rollup had errors are retried
        first and then yesterday is rolled up.

        Returns:
            Results of the rollup of *day* (or yesterday).
        """
        now = self._clock()
        retry: list[date] = []
        if day is None:
            day = now.astimezone(self._tz).date() - timedelta(days=1)
            retry = sorted(self._failed_days - {day})
        device_ids = await self._store.list_device_ids()

        for failed_day in retry:
            logger.info("Retrying daily rollup of %s", failed_day)
            await self._roll_day(failed_day, device_ids, now)
        results = await self._roll_day(day, device_ids, now)
        self._record("daily")
        return results

    async def run_retention(self, now: datetime | None = None) -> int | None:
        """Purge raw readings behind both the horizon and the last clean rollup.

        The cutoff never passes the start of a day whose rollup had errors.

        Returns:
            Number of deleted rows, or ``None`` when skipped because no
            daily rollup has completed yet.
        """
        now = now or self._clock()
        if self._rolled_through is None:
            logger.info("Retention skipped: no completed daily rollup yet")
            return None
        cutoff = min(now - self._retention_horizon, self._rolled_through)
        if self._failed_days:
            first_failed, _ = day_bounds(min(self._failed_days), self._tz)
            cutoff = min(cutoff, first_failed)
        deleted = await self._retention.purge_before(cutoff)
        self._record("retention")
        return deleted

    # ------------------------------------------------------------------
    # Manual triggers
    # ------------------------------------------------------------------

    async def trigger_rollup(self, period_type: PeriodType, moment: datetime) -> RollupResult:
        """Roll up the window of *period_type* containing *moment* now.

        A day trigger goes through :meth:`run_daily_rollup`, so it also
        chains week/month rollups and can unlock retention.
        """
        if period_type is PeriodType.DAY:
            results = await self.run_daily_rollup(moment.astimezone(self._tz).date())
            return results[PeriodType.DAY]
        device_ids = await self._store.list_device_ids()
        return await self._rollup.rollup_period(period_type, moment, device_ids)

    async def trigger_retention(self) -> int | None:
        return await self.run_retention()

    def get_stats(self) -> dict[str, Any]:
        """Scheduler statistics for the health endpoint."""
        return {
            "running": self.running,
            "rolled_through": self._rolled_through.isoformat() if self._rolled_through else None,
            "failed_days": [d.isoformat() for d in sorted(self._failed_days)],
            "run_counts": dict(self._run_counts),
            "last_runs": {name: ts.isoformat() for name, ts in self._last_runs.items()},
        }

    async def _roll_day(
        self,
        day: date,
        device_ids: list[str],
        now: datetime,
    ) -> dict[PeriodType, RollupResult]:
        results = await self._rollup.rollup_closed_day(day, device_ids)
        _, day_end = day_bounds(day, self._tz)
        if day_end > now:
            return results

        errors = results[PeriodType.DAY].errors
        if errors:
            logger.warning(
                "Daily rollup of %s had %d error(s); retrying on the next daily run",
                day,
                errors,
            )
            self._failed_days.add(day)
            return results

        self._failed_days.discard(day)
        if self._rolled_through is None or day_end > self._rolled_through:
            self._rolled_through = day_end
        return results

    def _record(self, name: str) -> None:
        self._run_counts[name] = self._run_counts.get(name, 0) + 1
        self._last_runs[name] = self._clock()

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    async def _guarded(self, name: str, job: Callable[[], Awaitable[Any]]) -> None:
        try:
            await job()
        except Exception:
            logger.exception("Scheduled %s failed", name)

    async def _every(
        self,
        name: str,
        first_delay_s: float,
        period_s: float,
        job: Callable[[], Awaitable[Any]],
    ) -> None:
        loop = asyncio.get_running_loop()
        next_run = loop.time() + first_delay_s
        while True:
            await asyncio.sleep(max(0.0, next_run - loop.time()))
            await self._guarded(name, job)
            next_run += period_s
            # Skip runs missed while the job was busy.
            while next_run <= loop.time():
                next_run += period_s

    async def _sweep_loop(self) -> None:
        interval = self._sweep_interval.total_seconds()
        await self._every("sweep", interval, interval, self.run_sweep)

    async def _hourly_loop(self) -> None:
        delay = seconds_until_next_hour(self._clock())
        await self._every("hourly rollup", delay, _HOUR_S, self.run_hourly_rollup)

    async def _daily_loop(self) -> None:
        await self._guarded("catch-up daily rollup", self.run_daily_rollup)
        delay = seconds_until(self._daily_at, self._clock(), self._tz)
        await self._every("daily rollup", delay, _DAY_S, self.run_daily_rollup)

    async def _retention_loop(self) -> None:
        interval = self._retention_interval.total_seconds()
        await self._every("retention", interval, interval, self.run_retention)
