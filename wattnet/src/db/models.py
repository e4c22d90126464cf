"""
SQLAlchemy ORM models for the hub database.

Defines the three tables the hub reads and writes:
- ``devices``: one row per metering device with its last live snapshot.
- ``raw_readings``: downsampled telemetry, composite key (device_id, ts).
- ``period_summaries``: one row per (device_id, period_type, period_start).

CHANGELOG:
- 2026-10-09: Initial creation with Device and RawReading (STORY-102)
- 2026-10-11: Add PeriodSummary (STORY-106)

TODO:
- None
"""

import datetime

from sqlalchemy import Boolean, DateTime, Double, Integer, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all hub ORM models."""

    pass


class Device(Base):
    """A metering device and its most recently reported live values.

    Attributes:
        device_id: Hardware identifier reported by the device.
        name: Optional display name.
        is_online: Online flag as last written by ingestion or the sweep.
        power: Last instantaneous power (W).
        energy: Last cumulative energy estimate (kWh).
        voltage: Last voltage (V).
        current: Last current (A).
        frequency: Last grid frequency (Hz).
        power_factor: Last power factor.
        last_seen: Timestamp of the last received sample.
        created_at: Row creation time.
        updated_at: Last write time.
    """

    __tablename__ = "devices"

    device_id: Mapped[str] = mapped_column(Text, primary_key=True, nullable=False)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_online: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    power: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    energy: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    voltage: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    current: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    frequency: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    power_factor: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    last_seen: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(),
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(),
    )

    def __repr__(self) -> str:
        """Return string representation of the Device."""
        return f"Device(device_id={self.device_id!r}, is_online={self.is_online!r})"


class RawReading(Base):
    """A persisted (downsampled) telemetry sample.

    Composite primary key on (device_id, ts) so re-appending the same
    sample is a no-op.
    """

    __tablename__ = "raw_readings"

    device_id: Mapped[str] = mapped_column(Text, primary_key=True, nullable=False)
    ts: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), primary_key=True, nullable=False,
    )
    power: Mapped[float] = mapped_column(Double, nullable=False)
    energy: Mapped[float] = mapped_column(Double, nullable=False)
    voltage: Mapped[float] = mapped_column(Double, nullable=False)
    current: Mapped[float] = mapped_column(Double, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of the RawReading."""
        return (
            f"RawReading(device_id={self.device_id!r}, ts={self.ts!r}, "
            f"power={self.power!r})"
        )


class PeriodSummary(Base):
    """Aggregated statistics for one device over one closed window.

    Attributes:
        period_type: One of hour, day, week, month.
        period_start: Inclusive window start (UTC).
        period_end: Exclusive window end (UTC).
        energy_consumed: kWh consumed in the window.
        peak_power: Highest sampled power (W).
        average_power: Mean sampled power (W).
        active_hours: Span covered by readings, capped at 24 per day.
        estimated_cost: energy_consumed multiplied by the tariff.
        efficiency_category: Bucket derived from average_power.
        reading_count: Number of raw readings (or summed day counts).
        has_data: False when the window held fewer than two readings.
    """

    __tablename__ = "period_summaries"

    device_id: Mapped[str] = mapped_column(Text, primary_key=True, nullable=False)
    period_type: Mapped[str] = mapped_column(Text, primary_key=True, nullable=False)
    period_start: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), primary_key=True, nullable=False,
    )
    period_end: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    energy_consumed: Mapped[float] = mapped_column(Double, nullable=False)
    peak_power: Mapped[float] = mapped_column(Double, nullable=False)
    average_power: Mapped[float] = mapped_column(Double, nullable=False)
    active_hours: Mapped[float] = mapped_column(Double, nullable=False)
    estimated_cost: Mapped[float] = mapped_column(Double, nullable=False)
    efficiency_category: Mapped[str] = mapped_column(Text, nullable=False)
    reading_count: Mapped[int] = mapped_column(Integer, nullable=False)
    has_data: Mapped[bool] = mapped_column(Boolean, nullable=False)

    def __repr__(self) -> str:
        """Return string representation of the PeriodSummary."""
        return (
            f"PeriodSummary(device_id={self.device_id!r}, "
            f"period_type={self.period_type!r}, "
            f"period_start={self.period_start!r})"
        )
