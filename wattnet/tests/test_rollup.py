"""
Tests for the rollup engine and its pure helpers.

CHANGELOG:
- 2026-10-11: Initial creation (STORY-106)
- 2026-10-12: Week/month chaining (STORY-107)
- 2026-10-14: Counter regression warning (STORY-113)
- 2026-10-15: No-data summaries fully zeroed (STORY-116)

TODO:
- None
"""

import logging
from datetime import UTC, date, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from wattnet.src.services.rollup import (
    NO_DATA_CATEGORY,
    RollupEngine,
    RollupResult,
    combine_summaries,
    day_bounds,
    efficiency_category,
    period_bounds,
    summarize_readings,
)
from wattnet.src.store.base import PeriodType, RawReadingRecord, SummaryRecord

DAY_START = datetime(2026, 10, 12, 0, 0, tzinfo=UTC)
DAY_END = DAY_START + timedelta(days=1)


def reading(ts: datetime, energy: float, power: float, device_id: str = "dev1") -> RawReadingRecord:
    return RawReadingRecord(
        device_id=device_id, ts=ts, power=power, energy=energy, voltage=230.0, current=0.0,
    )


def day_summary(
    day: date,
    energy: float,
    peak: float,
    average: float,
    count: int,
    hours: float = 2.0,
    has_data: bool = True,
) -> SummaryRecord:
    start, end = day_bounds(day)
    return SummaryRecord(
        device_id="dev1",
        period_type=PeriodType.DAY,
        period_start=start,
        period_end=end,
        energy_consumed=energy,
        peak_power=peak,
        average_power=average,
        active_hours=hours,
        estimated_cost=0.0,
        efficiency_category="normal",
        reading_count=count,
        has_data=has_data,
    )


THREE_READINGS = [
    reading(DAY_START + timedelta(hours=10), 1.0, 100.0),
    reading(DAY_START + timedelta(hours=10, minutes=30), 1.05, 200.0),
    reading(DAY_START + timedelta(hours=11), 1.2, 300.0),
]


# ---------------------------------------------------------------------------
# Window boundaries
# ---------------------------------------------------------------------------


class TestPeriodBounds:
    """Tests for period_bounds() and day_bounds()."""

    def test_hour(self) -> None:
        start, end = period_bounds(PeriodType.HOUR, datetime(2026, 10, 12, 10, 42, tzinfo=UTC))
        assert start == datetime(2026, 10, 12, 10, 0, tzinfo=UTC)
        assert end == datetime(2026, 10, 12, 11, 0, tzinfo=UTC)

    def test_day(self) -> None:
        start, end = period_bounds(PeriodType.DAY, datetime(2026, 10, 12, 23, 59, tzinfo=UTC))
        assert (start, end) == (DAY_START, DAY_END)

    def test_week_starts_on_monday(self) -> None:
        start, end = period_bounds(PeriodType.WEEK, datetime(2026, 10, 15, 8, 0, tzinfo=UTC))
        assert start == datetime(2026, 10, 12, tzinfo=UTC)
        assert end == datetime(2026, 10, 19, tzinfo=UTC)

    def test_month(self) -> None:
        start, end = period_bounds(PeriodType.MONTH, datetime(2026, 12, 31, 23, 0, tzinfo=UTC))
        assert start == datetime(2026, 12, 1, tzinfo=UTC)
        assert end == datetime(2027, 1, 1, tzinfo=UTC)

    def test_day_in_other_timezone(self) -> None:
        """Local midnight at UTC+02:00 is 22:00 UTC the day before."""
        start, end = day_bounds(date(2026, 10, 12), timezone(timedelta(hours=2)))
        assert start == datetime(2026, 10, 11, 22, 0, tzinfo=UTC)
        assert end == datetime(2026, 10, 12, 22, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Pure computation
# ---------------------------------------------------------------------------


class TestEfficiencyCategory:

    @pytest.mark.parametrize(
        ("average", "expected"),
        [
            (250.0, "high"),
            (100.0, "high"),
            (99.9, "medium"),
            (50.0, "medium"),
            (49.9, "normal"),
            (10.0, "normal"),
            (9.99, "low"),
            (0.0, "low"),
        ],
    )
    def test_buckets(self, average: float, expected: str) -> None:
        assert efficiency_category(average) == expected

    def test_no_data(self) -> None:
        assert efficiency_category(500.0, has_data=False) == NO_DATA_CATEGORY


class TestSummarizeReadings:
    """Tests for summarize_readings()."""

    def test_empty_window_has_no_data(self) -> None:
        summary = summarize_readings("dev1", PeriodType.DAY, DAY_START, DAY_END, [], 0.15)
        assert summary.has_data is False
        assert summary.reading_count == 0
        assert summary.energy_consumed == 0.0
        assert summary.efficiency_category == NO_DATA_CATEGORY

    def test_single_reading_has_no_data(self) -> None:
        summary = summarize_readings(
            "dev1", PeriodType.DAY, DAY_START, DAY_END, THREE_READINGS[:1], 0.15,
        )
        assert summary.has_data is False
        assert summary.reading_count == 0
        assert summary.peak_power == 0.0

    def test_three_readings(self) -> None:
        summary = summarize_readings(
            "dev1", PeriodType.DAY, DAY_START, DAY_END, THREE_READINGS, 0.15,
        )
        assert summary.has_data is True
        assert summary.energy_consumed == pytest.approx(0.2)
        assert summary.peak_power == 300.0
        assert summary.average_power == 200.0
        assert summary.active_hours == 1.0
        assert summary.estimated_cost == pytest.approx(0.03)
        assert summary.efficiency_category == "high"
        assert summary.reading_count == 3
        assert summary.period_start == DAY_START
        assert summary.period_end == DAY_END

    def test_unordered_readings_sorted(self) -> None:
        ordered = summarize_readings(
            "dev1", PeriodType.DAY, DAY_START, DAY_END, THREE_READINGS, 0.15,
        )
        shuffled = summarize_readings(
            "dev1", PeriodType.DAY, DAY_START, DAY_END, list(reversed(THREE_READINGS)), 0.15,
        )
        assert ordered == shuffled

    def test_counter_regression_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        readings = [
            reading(DAY_START + timedelta(hours=1), 5.0, 100.0),
            reading(DAY_START + timedelta(hours=2), 1.0, 100.0),
            reading(DAY_START + timedelta(hours=3), 2.0, 100.0),
        ]
        with caplog.at_level(logging.WARNING, logger="wattnet.src.services.rollup"):
            summary = summarize_readings(
                "dev1", PeriodType.DAY, DAY_START, DAY_END, readings, 0.15,
            )
        assert summary.energy_consumed == 4.0
        assert summary.energy_consumed >= 0
        assert "fell" in caplog.text

    def test_active_hours_capped(self) -> None:
        readings = [
            reading(DAY_START - timedelta(hours=2), 0.0, 10.0),
            reading(DAY_END + timedelta(hours=2), 1.0, 10.0),
        ]
        summary = summarize_readings(
            "dev1", PeriodType.DAY, DAY_START, DAY_END, readings, 0.15,
        )
        assert summary.active_hours == 24.0


class TestCombineSummaries:
    """Tests for combine_summaries()."""

    def test_sums_and_weights(self) -> None:
        days = [
            day_summary(date(2026, 10, 5), energy=1.0, peak=400.0, average=100.0, count=10),
            day_summary(date(2026, 10, 6), energy=2.0, peak=900.0, average=40.0, count=30),
            day_summary(date(2026, 10, 7), 0.0, 0.0, 0.0, 1, hours=0.0, has_data=False),
        ]
        start, end = period_bounds(PeriodType.WEEK, datetime(2026, 10, 6, tzinfo=UTC))

        week = combine_summaries("dev1", PeriodType.WEEK, start, end, days, 0.15)

        assert week.energy_consumed == 3.0
        assert week.peak_power == 900.0
        assert week.average_power == 55.0
        assert week.active_hours == 4.0
        assert week.reading_count == 40
        assert week.estimated_cost == pytest.approx(0.45)
        assert week.efficiency_category == "medium"
        assert week.has_data is True

    def test_no_days_with_data(self) -> None:
        start, end = period_bounds(PeriodType.MONTH, DAY_START)
        month = combine_summaries("dev1", PeriodType.MONTH, start, end, [], 0.15)
        assert month.has_data is False
        assert month.period_type is PeriodType.MONTH


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class TestRollupEngine:
    """Tests for RollupEngine against a mock store."""

    @pytest.mark.asyncio()
    async def test_empty_window_written_without_data(self, store: AsyncMock) -> None:
        engine = RollupEngine(store)

        result = await engine.rollup(PeriodType.HOUR, DAY_START, DAY_START + timedelta(hours=1), ["dev1"])

        assert result == RollupResult(processed=1, errors=0)
        summary = store.replace_summary.await_args.args[0]
        assert summary.has_data is False
        assert summary.period_type is PeriodType.HOUR

    @pytest.mark.asyncio()
    async def test_rerun_writes_identical_summary(self, store: AsyncMock) -> None:
        store.fetch_readings.return_value = THREE_READINGS
        engine = RollupEngine(store)

        await engine.rollup(PeriodType.DAY, DAY_START, DAY_END, ["dev1"])
        await engine.rollup(PeriodType.DAY, DAY_START, DAY_END, ["dev1"])

        first, second = (call.args[0] for call in store.replace_summary.await_args_list)
        assert first == second

    @pytest.mark.asyncio()
    async def test_one_failing_device_does_not_stop_others(self, store: AsyncMock) -> None:
        async def fetch(device_id, start, end):
            if device_id == "bad":
                raise ConnectionError("db down")
            return THREE_READINGS

        store.fetch_readings.side_effect = fetch
        engine = RollupEngine(store)

        result = await engine.rollup(PeriodType.DAY, DAY_START, DAY_END, ["good", "bad", "other"])

        assert result == RollupResult(processed=2, errors=1)
        assert store.replace_summary.await_count == 2

    @pytest.mark.asyncio()
    async def test_tariff_used_for_cost(self, store: AsyncMock) -> None:
        store.fetch_readings.return_value = THREE_READINGS
        engine = RollupEngine(store, tariff_per_kwh=0.5)

        await engine.rollup(PeriodType.DAY, DAY_START, DAY_END, ["dev1"])

        assert store.replace_summary.await_args.args[0].estimated_cost == pytest.approx(0.1)

    @pytest.mark.asyncio()
    async def test_rollup_period_uses_window_of_moment(self, store: AsyncMock) -> None:
        engine = RollupEngine(store)

        await engine.rollup_period(PeriodType.HOUR, datetime(2026, 10, 12, 10, 42, tzinfo=UTC), ["dev1"])

        store.fetch_readings.assert_awaited_once_with(
            "dev1",
            datetime(2026, 10, 12, 10, 0, tzinfo=UTC),
            datetime(2026, 10, 12, 11, 0, tzinfo=UTC),
        )

    @pytest.mark.asyncio()
    async def test_week_reads_day_summaries(self, store: AsyncMock) -> None:
        engine = RollupEngine(store)
        start, end = period_bounds(PeriodType.WEEK, DAY_START)

        await engine.rollup(PeriodType.WEEK, start, end, ["dev1"])

        store.fetch_summaries.assert_awaited_once_with("dev1", PeriodType.DAY, start, end)
        store.fetch_readings.assert_not_awaited()


class TestRollupClosedDay:
    """Tests for RollupEngine.rollup_closed_day()."""

    @pytest.mark.asyncio()
    async def test_midweek_day_rolls_up_day_only(self, store: AsyncMock) -> None:
        engine = RollupEngine(store)

        results = await engine.rollup_closed_day(date(2026, 10, 14), ["dev1"])

        assert set(results) == {PeriodType.DAY}

    @pytest.mark.asyncio()
    async def test_sunday_chains_week(self, store: AsyncMock) -> None:
        engine = RollupEngine(store)

        results = await engine.rollup_closed_day(date(2026, 10, 11), ["dev1"])

        assert set(results) == {PeriodType.DAY, PeriodType.WEEK}
        store.fetch_summaries.assert_awaited_once_with(
            "dev1",
            PeriodType.DAY,
            datetime(2026, 10, 5, tzinfo=UTC),
            datetime(2026, 10, 12, tzinfo=UTC),
        )

    @pytest.mark.asyncio()
    async def test_month_end_chains_month(self, store: AsyncMock) -> None:
        engine = RollupEngine(store)

        results = await engine.rollup_closed_day(date(2026, 10, 31), ["dev1"])

        assert set(results) == {PeriodType.DAY, PeriodType.MONTH}
        store.fetch_summaries.assert_awaited_once_with(
            "dev1",
            PeriodType.DAY,
            datetime(2026, 10, 1, tzinfo=UTC),
            datetime(2026, 11, 1, tzinfo=UTC),
        )

    @pytest.mark.asyncio()
    async def test_day_written_before_week(self, store: AsyncMock) -> None:
        engine = RollupEngine(store)

        await engine.rollup_closed_day(date(2026, 5, 31), ["dev1"])

        written = [call.args[0].period_type for call in store.replace_summary.await_args_list]
        assert written == [PeriodType.DAY, PeriodType.WEEK, PeriodType.MONTH]
