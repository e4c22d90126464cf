"""
Tests for the PostgreSQL telemetry store.

The session factory is mocked; statements are compiled with the
PostgreSQL dialect to check the conflict clauses.

CHANGELOG:
- 2026-10-10: Initial creation (STORY-103)
- 2026-10-11: Summary upsert (STORY-106)
- 2026-10-13: Operation timeout (STORY-110)

TODO:
- None
"""

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from wattnet.src.db.models import Device
from wattnet.src.store.base import (
    DeviceRecord,
    ElectricalSnapshot,
    LiveUpdate,
    PeriodType,
    RawReadingRecord,
    SummaryRecord,
)
from wattnet.src.store.sql import SqlTelemetryStore

T0 = datetime(2026, 10, 12, 10, 0, tzinfo=UTC)


@pytest.fixture()
def session() -> AsyncMock:
    """Mock AsyncSession whose execute() returns a MagicMock result."""
    session = AsyncMock()
    session.execute.return_value = MagicMock()
    return session


@pytest.fixture()
def sql_store(session: AsyncMock) -> SqlTelemetryStore:
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = session
    return SqlTelemetryStore(factory, timeout_s=1.0)


def _executed_sql(session: AsyncMock) -> str:
    stmt = session.execute.await_args.args[0]
    return str(stmt.compile(dialect=postgresql.dialect()))


LIVE = LiveUpdate(
    power=120.0,
    energy=3.5,
    snapshot=ElectricalSnapshot(voltage=231.0, current=0.52, frequency=50.0, power_factor=0.99),
    is_online=True,
    at=T0,
)


class TestDevices:

    @pytest.mark.asyncio()
    async def test_get_device_missing(self, sql_store: SqlTelemetryStore, session: AsyncMock) -> None:
        session.execute.return_value.scalar_one_or_none.return_value = None
        assert await sql_store.get_device("dev1") is None

    @pytest.mark.asyncio()
    async def test_get_device_maps_row(self, sql_store: SqlTelemetryStore, session: AsyncMock) -> None:
        session.execute.return_value.scalar_one_or_none.return_value = Device(
            device_id="dev1", name="Kitchen", is_online=True, power=120.0, energy=3.5,
            voltage=231.0, current=0.52, frequency=50.0, power_factor=0.99, last_seen=T0,
        )

        record = await sql_store.get_device("dev1")

        assert record == DeviceRecord(
            device_id="dev1", name="Kitchen", is_online=True, power=120.0, energy=3.5,
            voltage=231.0, current=0.52, frequency=50.0, power_factor=0.99, last_seen=T0,
        )

    @pytest.mark.asyncio()
    async def test_create_device_ignores_duplicates(
        self, sql_store: SqlTelemetryStore, session: AsyncMock,
    ) -> None:
        record = await sql_store.create_device("dev1", LIVE)

        sql = _executed_sql(session)
        assert "INSERT INTO devices" in sql
        assert "ON CONFLICT (device_id) DO NOTHING" in sql
        session.commit.assert_awaited_once()
        assert record.energy == 3.5
        assert record.last_seen == T0

    @pytest.mark.asyncio()
    async def test_update_live_commits(self, sql_store: SqlTelemetryStore, session: AsyncMock) -> None:
        await sql_store.update_device_live("dev1", LIVE)

        assert _executed_sql(session).startswith("UPDATE devices")
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_mark_offline(self, sql_store: SqlTelemetryStore, session: AsyncMock) -> None:
        await sql_store.mark_offline("dev1", T0)

        stmt = session.execute.await_args.args[0]
        params = stmt.compile(dialect=postgresql.dialect()).params
        assert params["is_online"] is False
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_list_device_ids(self, sql_store: SqlTelemetryStore, session: AsyncMock) -> None:
        session.execute.return_value.scalars.return_value.all.return_value = ["a", "b"]
        assert await sql_store.list_device_ids() == ["a", "b"]


class TestReadings:

    @pytest.mark.asyncio()
    async def test_append_is_idempotent_insert(
        self, sql_store: SqlTelemetryStore, session: AsyncMock,
    ) -> None:
        await sql_store.append_raw_reading(
            RawReadingRecord(device_id="dev1", ts=T0, power=1.0, energy=2.0, voltage=230.0, current=0.1),
        )

        sql = _executed_sql(session)
        assert "INSERT INTO raw_readings" in sql
        assert "ON CONFLICT (device_id, ts) DO NOTHING" in sql
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_delete_returns_rowcount(self, sql_store: SqlTelemetryStore, session: AsyncMock) -> None:
        session.execute.return_value.rowcount = 12
        assert await sql_store.delete_readings_before(T0) == 12
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_delete_without_rowcount(self, sql_store: SqlTelemetryStore, session: AsyncMock) -> None:
        session.execute.return_value.rowcount = None
        assert await sql_store.delete_readings_before(T0) == 0

    @pytest.mark.asyncio()
    async def test_fetch_readings_empty(self, sql_store: SqlTelemetryStore, session: AsyncMock) -> None:
        session.execute.return_value.scalars.return_value.all.return_value = []
        assert await sql_store.fetch_readings("dev1", T0, T0) == []


class TestSummaries:

    @pytest.mark.asyncio()
    async def test_replace_summary_upserts(self, sql_store: SqlTelemetryStore, session: AsyncMock) -> None:
        await sql_store.replace_summary(
            SummaryRecord(
                device_id="dev1", period_type=PeriodType.DAY, period_start=T0, period_end=T0,
                energy_consumed=1.0, peak_power=2.0, average_power=1.5, active_hours=1.0,
                estimated_cost=0.15, efficiency_category="low", reading_count=2, has_data=True,
            ),
        )

        sql = _executed_sql(session)
        assert "INSERT INTO period_summaries" in sql
        assert "ON CONFLICT (device_id, period_type, period_start) DO UPDATE" in sql
        assert "energy_consumed = excluded.energy_consumed" in sql
        session.commit.assert_awaited_once()


class TestOperationBounds:

    @pytest.mark.asyncio()
    async def test_ping(self, sql_store: SqlTelemetryStore, session: AsyncMock) -> None:
        await sql_store.ping()
        assert "SELECT 1" in str(session.execute.await_args.args[0])

    @pytest.mark.asyncio()
    async def test_slow_operation_times_out(self, session: AsyncMock) -> None:
        async def stall(*args, **kwargs):
            await asyncio.sleep(1)

        session.execute.side_effect = stall
        factory = MagicMock()
        factory.return_value.__aenter__.return_value = session
        sql_store = SqlTelemetryStore(factory, timeout_s=0.01)

        with pytest.raises(TimeoutError):
            await sql_store.ping()

    @pytest.mark.asyncio()
    async def test_errors_propagate(self, sql_store: SqlTelemetryStore, session: AsyncMock) -> None:
        session.execute.side_effect = ConnectionError("db down")
        with pytest.raises(ConnectionError):
            await sql_store.list_devices()
