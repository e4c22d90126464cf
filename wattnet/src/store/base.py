"""
Store contract and record types shared between the services and the
persistence layer.

The services only ever talk to a ``TelemetryStore``; the SQL implementation
lives in ``wattnet.src.store.sql``. Records are plain frozen dataclasses so
the services stay independent of the ORM.

CHANGELOG:
- 2026-10-10: Initial creation (STORY-103)
- 2026-10-11: Add summary records and PeriodType (STORY-106)
- 2026-10-12: Add create_device and list_devices (STORY-108)

TODO:
- None
"""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import Protocol


class PeriodType(StrEnum):
    """Rollup window granularity."""

    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


@dataclass(frozen=True)
class ElectricalSnapshot:
    """Electrical quantities reported with a sample."""

    voltage: float = 0.0
    current: float = 0.0
    frequency: float = 0.0
    power_factor: float = 0.0


@dataclass(frozen=True)
class DeviceRecord:
    """Device row as read from the store."""

    device_id: str
    name: str | None = None
    is_online: bool = False
    power: float = 0.0
    energy: float = 0.0
    voltage: float = 0.0
    current: float = 0.0
    frequency: float = 0.0
    power_factor: float = 0.0
    last_seen: datetime | None = None


@dataclass(frozen=True)
class LiveUpdate:
    """Live fields written back to the device row after each sample."""

    power: float
    energy: float
    snapshot: ElectricalSnapshot
    is_online: bool
    at: datetime


@dataclass(frozen=True)
class RawReadingRecord:
    device_id: str
    ts: datetime
    power: float
    energy: float
    voltage: float
    current: float


@dataclass(frozen=True)
class SummaryRecord:
    """One PeriodSummary row; identity is (device_id, period_type, period_start)."""

    device_id: str
    period_type: PeriodType
    period_start: datetime
    period_end: datetime
    energy_consumed: float
    peak_power: float
    average_power: float
    active_hours: float
    estimated_cost: float
    efficiency_category: str
    reading_count: int
    has_data: bool


class TelemetryStore(Protocol):
    """Async persistence contract consumed by the hub services."""

    async def get_device(self, device_id: str) -> DeviceRecord | None: ...

    async def create_device(
        self, device_id: str, live: LiveUpdate,
    ) -> DeviceRecord: ...

    async def update_device_live(self, device_id: str, live: LiveUpdate) -> None: ...

    async def mark_offline(self, device_id: str, at: datetime) -> None: ...

    async def list_devices(self) -> list[DeviceRecord]: ...

    async def list_device_ids(self) -> list[str]: ...

    async def append_raw_reading(self, reading: RawReadingRecord) -> None: ...

    async def fetch_readings(
        self, device_id: str, start: datetime, end: datetime,
    ) -> list[RawReadingRecord]: ...

    async def fetch_summaries(
        self,
        device_id: str,
        period_type: PeriodType,
        start: datetime,
        end: datetime,
    ) -> list[SummaryRecord]: ...

    async def replace_summary(self, summary: SummaryRecord) -> None: ...

    async def delete_readings_before(self, cutoff: datetime) -> int: ...

    async def ping(self) -> None: ...
