"""
Ingestion pipeline for device telemetry samples.

For every sample pushed by a device the pipeline:

1. looks the device up in the store (seeds the live state on first contact);
2. if the sample starts a new calendar day, rolls up the day just closed
   for this device;
3. touches the presence tracker;
4. integrates power into cumulative energy;
5. asks the downsampler whether to keep a raw reading;
6. writes the live snapshot (and the raw reading) back to the store.

Steps 3-6 run under a per-device ``asyncio.Lock`` so two samples from the
same device never interleave their read-modify-write of the live state.
Store writes are best-effort: failures are logged and the caller still
gets the locally computed energy.

A device-supplied timestamp more than ``max_clock_skew`` ahead of the hub
clock is replaced by the time of receipt, so the integration anchor never
moves into the future.

The day-boundary rollup duplicates the scheduler's daily rollup on
purpose; if the scheduler was down at midnight the day is still
summarized. Both paths replace the same summary row, so running both is
harmless.

CHANGELOG:
- 2026-10-10: Initial creation (STORY-104)
- 2026-10-12: Auto-register unknown devices, day-boundary rollup (STORY-108)
- 2026-10-13: Serialize samples per device with asyncio.Lock (STORY-110)
- 2026-10-15: Replace sample times ahead of the hub clock with receipt time (STORY-114)

TODO:
- None
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, tzinfo

from wattnet.src.services.downsampler import Downsampler
from wattnet.src.services.energy import integrate
from wattnet.src.services.presence import PresenceTracker
from wattnet.src.services.rollup import RollupEngine
from wattnet.src.store.base import (
    DeviceRecord,
    ElectricalSnapshot,
    LiveUpdate,
    RawReadingRecord,
    TelemetryStore,
)

logger = logging.getLogger(__name__)

# Tolerated lead of a device clock over the hub clock.
DEFAULT_MAX_CLOCK_SKEW = timedelta(seconds=5)


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class TelemetrySample:
    """One telemetry sample as pushed by a device.

    Attributes:
        power: Instantaneous power (W).
        voltage: RMS voltage (V).
        current: RMS current (A).
        frequency: Grid frequency (Hz).
        power_factor: Power factor.
        timestamp: Sample time; ``None`` means the time of receipt.
    """

    power: float
    voltage: float = 0.0
    current: float = 0.0
    frequency: float = 0.0
    power_factor: float = 0.0
    timestamp: datetime | None = None

    def snapshot(self) -> ElectricalSnapshot:
        return ElectricalSnapshot(
            voltage=self.voltage,
            current=self.current,
            frequency=self.frequency,
            power_factor=self.power_factor,
        )


@dataclass(frozen=True)
class IngestResult:
    """Outcome reported back to the device.

    Attributes:
        energy: Locally computed cumulative energy (kWh).
        online: Presence as seen right after this sample.
        registered: Whether the device exists in the store.
        persisted: Whether a raw reading was written for this sample.
        timestamp: Sample time used for this sample.
    """

    energy: float
    online: bool
    registered: bool
    persisted: bool
    timestamp: datetime


class IngestionPipeline:
    """Turns telemetry samples into live state and store writes.

    Args:
        store: Persistence backend.
        tracker: Presence tracker owning the live state.
        downsampler: 1-in-N raw reading gate.
        rollup: Engine used for the day-boundary rollup; ``None`` disables it.
        tz: Zone whose calendar defines day boundaries.
        auto_register: Create unknown devices on first telemetry.
        clock: Source of "now" for samples without a timestamp.
        max_clock_skew: Largest accepted lead of a sample timestamp over
            ``clock``; later timestamps are replaced by the time of receipt.
    """

    def __init__(
        self,
        store: TelemetryStore,
        tracker: PresenceTracker,
        downsampler: Downsampler,
        rollup: RollupEngine | None = None,
        tz: tzinfo = UTC,
        auto_register: bool = True,
        clock: Callable[[], datetime] = utcnow,
        max_clock_skew: timedelta = DEFAULT_MAX_CLOCK_SKEW,
    ) -> None:
        self._store = store
        self._tracker = tracker
        self._downsampler = downsampler
        self._rollup = rollup
        self._tz = tz
        self._auto_register = auto_register
        self._clock = clock
        self._max_clock_skew = max_clock_skew
        self._locks: dict[str, asyncio.Lock] = {}
        tracker.add_evict_listener(self.forget)

    async def ingest(self, device_id: str, sample: TelemetrySample) -> IngestResult:
        """Process one sample; never raises for store failures."""
        now = self._clock()
        sample_time = sample.timestamp or now
        if sample_time.tzinfo is None:
            sample_time = sample_time.replace(tzinfo=UTC)
        if sample_time > now + self._max_clock_skew:
            logger.warning(
                "Sample from %s dated %s is ahead of the hub clock; using receipt time %s",
                device_id,
                sample_time.isoformat(),
                now.isoformat(),
            )
            sample_time = now

        lock = self._locks.setdefault(device_id, asyncio.Lock())
        async with lock:
            return await self._ingest_locked(device_id, sample, sample_time)

    def forget(self, device_id: str) -> None:
        """Drop per-device bookkeeping of an evicted device."""
        lock = self._locks.get(device_id)
        if lock is not None and not lock.locked():
            del self._locks[device_id]
        self._downsampler.forget(device_id)

    async def _ingest_locked(
        self,
        device_id: str,
        sample: TelemetrySample,
        sample_time: datetime,
    ) -> IngestResult:
        device, lookup_ok = await self._lookup(device_id)

        previous = self._tracker.get(device_id)
        if previous is not None:
            await self._close_day_if_crossed(device_id, previous.last_seen_at, sample_time)

        if device is not None:
            baseline: float | None = device.energy
        else:
            baseline = 0.0 if lookup_ok else None

        snapshot = sample.snapshot()
        state = self._tracker.touch(device_id, sample_time, snapshot, baseline_energy=baseline)

        power = max(sample.power, 0.0)
        anchor = state.anchor()
        energy = integrate(anchor, power, sample_time) if anchor is not None else state.cumulative_energy
        state.advance(power, sample_time, energy)
        energy = state.cumulative_energy

        persist = self._downsampler.should_persist(device_id)

        live = LiveUpdate(
            power=power,
            energy=energy,
            snapshot=snapshot,
            is_online=True,
            at=sample_time,
        )
        registered = device is not None
        if device is not None:
            await self._write_live(device_id, live)
        elif lookup_ok and self._auto_register:
            registered = await self._register(device_id, live)

        persisted = False
        if persist and registered:
            persisted = await self._append_reading(
                RawReadingRecord(
                    device_id=device_id,
                    ts=sample_time,
                    power=power,
                    energy=energy,
                    voltage=snapshot.voltage,
                    current=snapshot.current,
                ),
            )

        logger.debug(
            "Ingested %s: P=%.1fW E=%.6fkWh persisted=%s",
            device_id,
            power,
            energy,
            persisted,
        )
        return IngestResult(
            energy=energy,
            online=self._tracker.is_online(device_id, max(self._clock(), sample_time)) is True,
            registered=registered,
            persisted=persisted,
            timestamp=sample_time,
        )

    # ------------------------------------------------------------------
    # Best-effort store calls
    # ------------------------------------------------------------------

    async def _lookup(self, device_id: str) -> tuple[DeviceRecord | None, bool]:
        try:
            return await self._store.get_device(device_id), True
        except Exception:
            logger.warning("Device lookup failed for %s", device_id, exc_info=True)
            return None, False

    async def _write_live(self, device_id: str, live: LiveUpdate) -> None:
        try:
            await self._store.update_device_live(device_id, live)
        except Exception:
            logger.warning(
                "Live snapshot write failed for device %s", device_id, exc_info=True,
            )

    async def _register(self, device_id: str, live: LiveUpdate) -> bool:
        try:
            await self._store.create_device(device_id, live)
        except Exception:
            logger.warning("Registration failed for device %s", device_id, exc_info=True)
            return False
        return True

    async def _append_reading(self, reading: RawReadingRecord) -> bool:
        try:
            await self._store.append_raw_reading(reading)
        except Exception:
            logger.warning(
                "Raw reading write failed for device %s", reading.device_id, exc_info=True,
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Day boundary
    # ------------------------------------------------------------------

    def _local_date(self, moment: datetime) -> date:
        return moment.astimezone(self._tz).date()

    async def _close_day_if_crossed(
        self,
        device_id: str,
        previous_time: datetime,
        sample_time: datetime,
    ) -> None:
        if self._rollup is None or sample_time <= previous_time:
            return
        closed_day = self._local_date(previous_time)
        if self._local_date(sample_time) == closed_day:
            return

        logger.info("Device %s crossed into a new day; rolling up %s", device_id, closed_day)
        try:
            await self._rollup.rollup_closed_day(closed_day, [device_id])
        except Exception:
            logger.warning(
                "Day-boundary rollup of %s failed for device %s",
                closed_day,
                device_id,
                exc_info=True,
            )
