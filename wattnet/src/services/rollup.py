"""
Rollup of raw readings into per-period summaries.

Computes hour and day summaries from raw readings, and week and month
summaries from the already-computed day summaries. Every write is
compute-then-replace: the full summary is calculated first and then
replaces whatever row exists for (device_id, period_type, period_start),
so re-running a window (scheduled run, manual trigger, day-boundary
detection during ingestion) always converges on the same row.

Window boundaries are calendar boundaries in the configured timezone and
are returned as UTC datetimes. Weeks start on Monday.

A per-device failure is logged and counted; the remaining devices are
still processed and the caller gets ``RollupResult(processed, errors)``.

CHANGELOG:
- 2026-10-11: Initial creation (STORY-106)
- 2026-10-12: Chain week/month rollups from closed days (STORY-107)
- 2026-10-14: Log energy counter regressions inside a window (STORY-113)
- 2026-10-15: Zero reading_count in no-data summaries (STORY-116)

TODO:
- None
"""

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta, tzinfo

from wattnet.src.store.base import (
    PeriodType,
    RawReadingRecord,
    SummaryRecord,
    TelemetryStore,
)

logger = logging.getLogger(__name__)

# Efficiency buckets on average power (W).
HIGH_POWER_W = 100.0
MEDIUM_POWER_W = 50.0
LOW_POWER_W = 10.0
NO_DATA_CATEGORY = "no_data"

MAX_ACTIVE_HOURS_PER_DAY = 24.0

# Tolerance before a falling energy counter is reported.
_REGRESSION_TOLERANCE_KWH = 1e-6


@dataclass(frozen=True)
class RollupResult:
    processed: int
    errors: int

    def __add__(self, other: "RollupResult") -> "RollupResult":
        return RollupResult(
            processed=self.processed + other.processed,
            errors=self.errors + other.errors,
        )


# ---------------------------------------------------------------------------
# Window helpers
# ---------------------------------------------------------------------------


def _local_midnight(day: date, tz: tzinfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=tz).astimezone(UTC)


def day_bounds(day: date, tz: tzinfo = UTC) -> tuple[datetime, datetime]:
    """Return the UTC ``[start, end)`` of calendar *day* in *tz*."""
    return _local_midnight(day, tz), _local_midnight(day + timedelta(days=1), tz)


def period_bounds(
    period_type: PeriodType,
    moment: datetime,
    tz: tzinfo = UTC,
) -> tuple[datetime, datetime]:
    """Return the UTC ``[start, end)`` of the window containing *moment*.

    Args:
        period_type: Window granularity.
        moment: Any timezone-aware instant inside the wanted window.
        tz: Zone whose calendar defines day, week and month boundaries.

    Returns:
        Tuple of (start, end) as UTC datetimes.
    """
    local = moment.astimezone(tz)

    if period_type is PeriodType.HOUR:
        start = local.replace(minute=0, second=0, microsecond=0).astimezone(UTC)
        return start, start + timedelta(hours=1)

    if period_type is PeriodType.DAY:
        return day_bounds(local.date(), tz)

    if period_type is PeriodType.WEEK:
        monday = local.date() - timedelta(days=local.weekday())
        return _local_midnight(monday, tz), _local_midnight(monday + timedelta(days=7), tz)

    first = local.date().replace(day=1)
    next_first = (first + timedelta(days=32)).replace(day=1)
    return _local_midnight(first, tz), _local_midnight(next_first, tz)


# ---------------------------------------------------------------------------
# Pure summary computation
# ---------------------------------------------------------------------------


def efficiency_category(average_power: float, has_data: bool = True) -> str:
    """Bucket a window by its average power."""
    if not has_data:
        return NO_DATA_CATEGORY
    if average_power >= HIGH_POWER_W:
        return "high"
    if average_power >= MEDIUM_POWER_W:
        return "medium"
    if average_power < LOW_POWER_W:
        return "low"
    return "normal"


def empty_summary(
    device_id: str,
    period_type: PeriodType,
    start: datetime,
    end: datetime,
) -> SummaryRecord:
    """Summary for a window without enough data; all metrics zero."""
    return SummaryRecord(
        device_id=device_id,
        period_type=period_type,
        period_start=start,
        period_end=end,
        energy_consumed=0.0,
        peak_power=0.0,
        average_power=0.0,
        active_hours=0.0,
        estimated_cost=0.0,
        efficiency_category=NO_DATA_CATEGORY,
        reading_count=0,
        has_data=False,
    )


def _find_regressions(readings: Sequence[RawReadingRecord]) -> int:
    regressions = 0
    for before, after in zip(readings, readings[1:]):
        if after.energy < before.energy - _REGRESSION_TOLERANCE_KWH:
            regressions += 1
    return regressions


def summarize_readings(
    device_id: str,
    period_type: PeriodType,
    start: datetime,
    end: datetime,
    readings: Sequence[RawReadingRecord],
    tariff_per_kwh: float,
) -> SummaryRecord:
    """Compute the summary of raw readings in one window.

    Fewer than two readings produce a ``has_data=False`` summary.
    ``energy_consumed`` is ``max(energy) - min(energy)``; a counter that
    falls inside the window is logged, not corrected.
    """
    if len(readings) < 2:
        return empty_summary(device_id, period_type, start, end)

    ordered = sorted(readings, key=lambda r: r.ts)
    regressions = _find_regressions(ordered)
    if regressions:
        logger.warning(
            "Energy counter fell %d time(s) for device %s in %s window "
            "starting %s; energy_consumed may be inaccurate",
            regressions,
            device_id,
            period_type.value,
            start.isoformat(),
        )

    energies = [r.energy for r in ordered]
    powers = [r.power for r in ordered]
    energy_consumed = max(energies) - min(energies)
    average_power = sum(powers) / len(powers)
    span_hours = (ordered[-1].ts - ordered[0].ts).total_seconds() / 3600

    return SummaryRecord(
        device_id=device_id,
        period_type=period_type,
        period_start=start,
        period_end=end,
        energy_consumed=round(energy_consumed, 6),
        peak_power=round(max(powers), 3),
        average_power=round(average_power, 3),
        active_hours=round(min(MAX_ACTIVE_HOURS_PER_DAY, span_hours), 4),
        estimated_cost=round(max(energy_consumed * tariff_per_kwh, 0.0), 4),
        efficiency_category=efficiency_category(average_power),
        reading_count=len(ordered),
        has_data=True,
    )


def combine_summaries(
    device_id: str,
    period_type: PeriodType,
    start: datetime,
    end: datetime,
    days: Iterable[SummaryRecord],
    tariff_per_kwh: float,
) -> SummaryRecord:
    """Aggregate day summaries into a week or month summary.

    Energy, active hours and reading counts are summed; the peak is the
    largest day peak; the average is weighted by each day's reading count.
    Cost is recomputed from the summed energy with the current tariff.
    """
    with_data = [d for d in days if d.has_data]
    if not with_data:
        return empty_summary(device_id, period_type, start, end)

    energy_consumed = sum(d.energy_consumed for d in with_data)
    reading_count = sum(d.reading_count for d in with_data)
    if reading_count:
        average_power = sum(d.average_power * d.reading_count for d in with_data) / reading_count
    else:
        average_power = sum(d.average_power for d in with_data) / len(with_data)

    return SummaryRecord(
        device_id=device_id,
        period_type=period_type,
        period_start=start,
        period_end=end,
        energy_consumed=round(energy_consumed, 6),
        peak_power=round(max(d.peak_power for d in with_data), 3),
        average_power=round(average_power, 3),
        active_hours=round(sum(d.active_hours for d in with_data), 4),
        estimated_cost=round(max(energy_consumed * tariff_per_kwh, 0.0), 4),
        efficiency_category=efficiency_category(average_power),
        reading_count=reading_count,
        has_data=True,
    )


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class RollupEngine:
    """Computes and stores period summaries for a set of devices.

    Args:
        store: Store providing readings and accepting summaries.
        tariff_per_kwh: Price used for ``estimated_cost``.
        tz: Zone whose calendar defines day/week/month boundaries.
    """

    def __init__(
        self,
        store: TelemetryStore,
        tariff_per_kwh: float = 0.15,
        tz: tzinfo = UTC,
    ) -> None:
        self._store = store
        self._tariff = tariff_per_kwh
        self._tz = tz

    @property
    def tz(self) -> tzinfo:
        return self._tz

    async def rollup(
        self,
        period_type: PeriodType,
        period_start: datetime,
        period_end: datetime,
        device_ids: Iterable[str],
    ) -> RollupResult:
        """Compute and replace one summary per device for ``[start, end)``.

        Returns:
            RollupResult with the number of devices written and failed.
        """
        processed = 0
        errors = 0
        for device_id in device_ids:
            try:
                summary = await self._compute(device_id, period_type, period_start, period_end)
                await self._store.replace_summary(summary)
                processed += 1
            except Exception:
                errors += 1
                logger.warning(
                    "Rollup failed for device %s (%s starting %s)",
                    device_id,
                    period_type.value,
                    period_start.isoformat(),
                    exc_info=True,
                )

        logger.info(
            "Rollup %s %s..%s: %d processed, %d errors",
            period_type.value,
            period_start.isoformat(),
            period_end.isoformat(),
            processed,
            errors,
        )
        return RollupResult(processed=processed, errors=errors)

    async def rollup_period(
        self,
        period_type: PeriodType,
        moment: datetime,
        device_ids: Iterable[str],
    ) -> RollupResult:
        """Roll up the window of *period_type* that contains *moment*."""
        start, end = period_bounds(period_type, moment, self._tz)
        return await self.rollup(period_type, start, end, device_ids)

    async def rollup_closed_day(
        self,
        day: date,
        device_ids: Iterable[str],
    ) -> dict[PeriodType, RollupResult]:
        """Roll up a finished day, then any week or month it completes.

        The week rollup runs when *day* is a Sunday and the month rollup
        when *day* is the last day of its month; both read the day
        summaries written just before.
        """
        device_ids = list(device_ids)
        start, end = day_bounds(day, self._tz)
        results = {PeriodType.DAY: await self.rollup(PeriodType.DAY, start, end, device_ids)}

        next_day = day + timedelta(days=1)
        if next_day.weekday() == 0:
            week_start = _local_midnight(day - timedelta(days=6), self._tz)
            results[PeriodType.WEEK] = await self.rollup(
                PeriodType.WEEK, week_start, end, device_ids,
            )
        if next_day.day == 1:
            month_start = _local_midnight(day.replace(day=1), self._tz)
            results[PeriodType.MONTH] = await self.rollup(
                PeriodType.MONTH, month_start, end, device_ids,
            )
        return results

    async def _compute(
        self,
        device_id: str,
        period_type: PeriodType,
        start: datetime,
        end: datetime,
    ) -> SummaryRecord:
        if period_type in (PeriodType.WEEK, PeriodType.MONTH):
            days = await self._store.fetch_summaries(device_id, PeriodType.DAY, start, end)
            return combine_summaries(device_id, period_type, start, end, days, self._tariff)

        readings = await self._store.fetch_readings(device_id, start, end)
        return summarize_readings(device_id, period_type, start, end, readings, self._tariff)
