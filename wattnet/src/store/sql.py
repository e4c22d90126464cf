"""
PostgreSQL implementation of the telemetry store.

Each operation opens its own short-lived ``AsyncSession`` from the factory,
commits on success, and is bounded by ``timeout_s`` so a stalled database
cannot wedge the presence sweep or a rollup. Writes that must be idempotent
use PostgreSQL ``INSERT ... ON CONFLICT``:

- raw readings: ``ON CONFLICT (device_id, ts) DO NOTHING``
- summaries: ``ON CONFLICT (device_id, period_type, period_start) DO UPDATE``
- device registration: ``ON CONFLICT (device_id) DO NOTHING``

CHANGELOG:
- 2026-10-10: Initial creation (STORY-103)
- 2026-10-11: Add summary upsert (STORY-106)
- 2026-10-12: Add create_device for auto-registration (STORY-108)
- 2026-10-13: Bound every operation with asyncio.wait_for (STORY-110)

TODO:
- None
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import TypeVar

from sqlalchemy import delete, select, text, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wattnet.src.db.models import Device, PeriodSummary, RawReading
from wattnet.src.store.base import (
    DeviceRecord,
    LiveUpdate,
    PeriodType,
    RawReadingRecord,
    SummaryRecord,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Summary columns rewritten when a window is recomputed.
_SUMMARY_VALUE_COLUMNS = (
    "period_end",
    "energy_consumed",
    "peak_power",
    "average_power",
    "active_hours",
    "estimated_cost",
    "efficiency_category",
    "reading_count",
    "has_data",
)


def _device_record(row: Device) -> DeviceRecord:
    return DeviceRecord(
        device_id=row.device_id,
        name=row.name,
        is_online=row.is_online,
        power=row.power,
        energy=row.energy,
        voltage=row.voltage,
        current=row.current,
        frequency=row.frequency,
        power_factor=row.power_factor,
        last_seen=row.last_seen,
    )


def _live_values(live: LiveUpdate) -> dict:
    return {
        "is_online": live.is_online,
        "power": live.power,
        "energy": live.energy,
        "voltage": live.snapshot.voltage,
        "current": live.snapshot.current,
        "frequency": live.snapshot.frequency,
        "power_factor": live.snapshot.power_factor,
        "last_seen": live.at,
        "updated_at": live.at,
    }


class SqlTelemetryStore:
    """``TelemetryStore`` backed by SQLAlchemy async sessions.

    Args:
        session_factory: Factory producing ``AsyncSession`` instances.
        timeout_s: Upper bound in seconds for each operation; ``0``
            disables the bound.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout_s: float = 5.0,
    ) -> None:
        self._session_factory = session_factory
        self._timeout_s = timeout_s or None

    async def _run(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """Run *operation* in a fresh session, bounded by the store timeout."""

        async def _in_session() -> T:
            async with self._session_factory() as session:
                return await operation(session)

        return await asyncio.wait_for(_in_session(), timeout=self._timeout_s)

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    async def get_device(self, device_id: str) -> DeviceRecord | None:
        async def op(session: AsyncSession) -> DeviceRecord | None:
            result = await session.execute(
                select(Device).where(Device.device_id == device_id),
            )
            row = result.scalar_one_or_none()
            return _device_record(row) if row is not None else None

        return await self._run(op)

    async def create_device(self, device_id: str, live: LiveUpdate) -> DeviceRecord:
        """Register a device with its first live values.

        A concurrent registration of the same identifier is ignored, so
        calling this twice never fails.
        """

        async def op(session: AsyncSession) -> None:
            stmt = (
                insert(Device)
                .values(device_id=device_id, created_at=live.at, **_live_values(live))
                .on_conflict_do_nothing(index_elements=["device_id"])
            )
            await session.execute(stmt)
            await session.commit()

        await self._run(op)
        logger.info("Registered new device %s", device_id)
        return DeviceRecord(
            device_id=device_id,
            is_online=live.is_online,
            power=live.power,
            energy=live.energy,
            voltage=live.snapshot.voltage,
            current=live.snapshot.current,
            frequency=live.snapshot.frequency,
            power_factor=live.snapshot.power_factor,
            last_seen=live.at,
        )

    async def update_device_live(self, device_id: str, live: LiveUpdate) -> None:
        async def op(session: AsyncSession) -> None:
            await session.execute(
                update(Device)
                .where(Device.device_id == device_id)
                .values(**_live_values(live)),
            )
            await session.commit()

        await self._run(op)

    async def mark_offline(self, device_id: str, at: datetime) -> None:
        async def op(session: AsyncSession) -> None:
            await session.execute(
                update(Device)
                .where(Device.device_id == device_id)
                .values(is_online=False, updated_at=at),
            )
            await session.commit()

        await self._run(op)

    async def list_devices(self) -> list[DeviceRecord]:
        async def op(session: AsyncSession) -> list[DeviceRecord]:
            result = await session.execute(select(Device).order_by(Device.device_id))
            return [_device_record(row) for row in result.scalars().all()]

        return await self._run(op)

    async def list_device_ids(self) -> list[str]:
        async def op(session: AsyncSession) -> list[str]:
            result = await session.execute(
                select(Device.device_id).order_by(Device.device_id),
            )
            return list(result.scalars().all())

        return await self._run(op)

    # ------------------------------------------------------------------
    # Raw readings
    # ------------------------------------------------------------------

    async def append_raw_reading(self, reading: RawReadingRecord) -> None:
        async def op(session: AsyncSession) -> None:
            stmt = (
                insert(RawReading)
                .values(
                    device_id=reading.device_id,
                    ts=reading.ts,
                    power=reading.power,
                    energy=reading.energy,
                    voltage=reading.voltage,
                    current=reading.current,
                )
                .on_conflict_do_nothing(index_elements=["device_id", "ts"])
            )
            await session.execute(stmt)
            await session.commit()

        await self._run(op)

    async def fetch_readings(
        self, device_id: str, start: datetime, end: datetime,
    ) -> list[RawReadingRecord]:
        """Return the device's raw readings in ``[start, end)`` ordered by ts."""

        async def op(session: AsyncSession) -> list[RawReadingRecord]:
            result = await session.execute(
                select(RawReading)
                .where(
                    RawReading.device_id == device_id,
                    RawReading.ts >= start,
                    RawReading.ts < end,
                )
                .order_by(RawReading.ts),
            )
            return [
                RawReadingRecord(
                    device_id=row.device_id,
                    ts=row.ts,
                    power=row.power,
                    energy=row.energy,
                    voltage=row.voltage,
                    current=row.current,
                )
                for row in result.scalars().all()
            ]

        return await self._run(op)

    async def delete_readings_before(self, cutoff: datetime) -> int:
        async def op(session: AsyncSession) -> int:
            result = await session.execute(
                delete(RawReading).where(RawReading.ts < cutoff),
            )
            await session.commit()
            return result.rowcount or 0

        return await self._run(op)

    # ------------------------------------------------------------------
    # Period summaries
    # ------------------------------------------------------------------

    async def fetch_summaries(
        self,
        device_id: str,
        period_type: PeriodType,
        start: datetime,
        end: datetime,
    ) -> list[SummaryRecord]:
        """Return summaries whose ``period_start`` lies in ``[start, end)``."""

        async def op(session: AsyncSession) -> list[SummaryRecord]:
            result = await session.execute(
                select(PeriodSummary)
                .where(
                    PeriodSummary.device_id == device_id,
                    PeriodSummary.period_type == period_type.value,
                    PeriodSummary.period_start >= start,
                    PeriodSummary.period_start < end,
                )
                .order_by(PeriodSummary.period_start),
            )
            return [
                SummaryRecord(
                    device_id=row.device_id,
                    period_type=PeriodType(row.period_type),
                    period_start=row.period_start,
                    period_end=row.period_end,
                    energy_consumed=row.energy_consumed,
                    peak_power=row.peak_power,
                    average_power=row.average_power,
                    active_hours=row.active_hours,
                    estimated_cost=row.estimated_cost,
                    efficiency_category=row.efficiency_category,
                    reading_count=row.reading_count,
                    has_data=row.has_data,
                )
                for row in result.scalars().all()
            ]

        return await self._run(op)

    async def replace_summary(self, summary: SummaryRecord) -> None:
        """Insert the summary or overwrite every value column of the existing row."""

        async def op(session: AsyncSession) -> None:
            stmt = insert(PeriodSummary).values(
                device_id=summary.device_id,
                period_type=summary.period_type.value,
                period_start=summary.period_start,
                period_end=summary.period_end,
                energy_consumed=summary.energy_consumed,
                peak_power=summary.peak_power,
                average_power=summary.average_power,
                active_hours=summary.active_hours,
                estimated_cost=summary.estimated_cost,
                efficiency_category=summary.efficiency_category,
                reading_count=summary.reading_count,
                has_data=summary.has_data,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["device_id", "period_type", "period_start"],
                set_={col: stmt.excluded[col] for col in _SUMMARY_VALUE_COLUMNS},
            )
            await session.execute(stmt)
            await session.commit()

        await self._run(op)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def ping(self) -> None:
        """Probe the database with ``SELECT 1``; raises on failure."""

        async def op(session: AsyncSession) -> None:
            await session.execute(text("SELECT 1"))

        await self._run(op)
