"""
Store package: the persistence contract and its PostgreSQL implementation.

CHANGELOG:
- 2026-10-10: Initial creation (STORY-103)

TODO:
- None
"""

from wattnet.src.store.base import (
    DeviceRecord,
    ElectricalSnapshot,
    LiveUpdate,
    PeriodType,
    RawReadingRecord,
    SummaryRecord,
    TelemetryStore,
)
from wattnet.src.store.sql import SqlTelemetryStore

__all__ = [
    "DeviceRecord",
    "ElectricalSnapshot",
    "LiveUpdate",
    "PeriodType",
    "RawReadingRecord",
    "SqlTelemetryStore",
    "SummaryRecord",
    "TelemetryStore",
]
