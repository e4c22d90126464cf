"""
In-memory presence tracking of metering devices.

The ``PresenceTracker`` owns the live-state map: it is created empty when
the application starts, cleared at shutdown, and is the only way code
reaches a device's ``DeviceLiveState``. Losing it costs freshness only;
the store remains the source of truth for everything persisted.

A device is online while ``now - last_seen_at < online_timeout``. The
periodic ``sweep()`` writes the offline transition to the store once per
transition (best-effort) and evicts devices idle longer than the eviction
threshold, after which ``is_online()`` reports ``None`` (unknown).

CHANGELOG:
- 2026-10-10: Initial creation (STORY-104)
- 2026-10-13: Write offline once per transition instead of every sweep (STORY-111)

TODO:
- None
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from wattnet.src.services.energy import IntegrationAnchor
from wattnet.src.store.base import ElectricalSnapshot, TelemetryStore

logger = logging.getLogger(__name__)

DEFAULT_ONLINE_TIMEOUT = timedelta(milliseconds=5000)
DEFAULT_EVICTION_AFTER = timedelta(milliseconds=600000)


@dataclass
class DeviceLiveState:
    """Live view of one device.

    ``last_sample_at`` is the integration anchor and may lag
    ``last_seen_at`` when a sample's timestamp did not advance.
    """

    device_id: str
    last_seen_at: datetime
    snapshot: ElectricalSnapshot = field(default_factory=ElectricalSnapshot)
    last_sample_at: datetime | None = None
    last_power: float = 0.0
    cumulative_energy: float = 0.0
    sample_count: int = 0
    offline_reported: bool = False
    seeded: bool = False

    def anchor(self) -> IntegrationAnchor | None:
        """Return the integration anchor, or None before the first sample."""
        if self.last_sample_at is None:
            return None
        return IntegrationAnchor(
            power=self.last_power,
            time=self.last_sample_at,
            energy=self.cumulative_energy,
        )

    def advance(self, power: float, sample_time: datetime, energy: float) -> None:
        """Move the anchor forward; stale timestamps only refresh the power."""
        self.last_power = power
        self.cumulative_energy = max(self.cumulative_energy, energy)
        if self.last_sample_at is None or sample_time > self.last_sample_at:
            self.last_sample_at = sample_time


@dataclass(frozen=True)
class SweepResult:
    marked_offline: list[str]
    evicted: list[str]


class PresenceTracker:
    """Process-scoped map of device identifier to ``DeviceLiveState``.

    Args:
        store: Store used to record offline transitions; ``None`` keeps
            the tracker purely in memory.
        online_timeout: Silence after which a device counts as offline.
        eviction_after: Silence after which the live state is dropped.
    """

    def __init__(
        self,
        store: TelemetryStore | None = None,
        online_timeout: timedelta = DEFAULT_ONLINE_TIMEOUT,
        eviction_after: timedelta = DEFAULT_EVICTION_AFTER,
    ) -> None:
        if eviction_after < online_timeout:
            raise ValueError("eviction_after must not be shorter than online_timeout")
        self._store = store
        self._online_timeout = online_timeout
        self._eviction_after = eviction_after
        self._evict_listeners: list[Callable[[str], None]] = []
        self._states: dict[str, DeviceLiveState] = {}

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, device_id: str) -> bool:
        return device_id in self._states

    @property
    def online_timeout(self) -> timedelta:
        return self._online_timeout

    def add_evict_listener(self, listener: Callable[[str], None]) -> None:
        """Register a callback invoked with each evicted device identifier."""
        self._evict_listeners.append(listener)

    def get(self, device_id: str) -> DeviceLiveState | None:
        return self._states.get(device_id)

    def tracked_ids(self) -> list[str]:
        return list(self._states)

    def touch(
        self,
        device_id: str,
        sample_time: datetime,
        snapshot: ElectricalSnapshot,
        baseline_energy: float | None = None,
    ) -> DeviceLiveState:
        """Record contact from *device_id* and return its live state.

        Creates the state on first contact, seeded with *baseline_energy*
        (the last cumulative energy known to the store); later calls
        mutate and return the same object. A state created without a
        baseline (store unreachable) takes it on the first call that
        provides one.
        """
        state = self._states.get(device_id)
        if state is None:
            state = DeviceLiveState(
                device_id=device_id,
                last_seen_at=sample_time,
            )
            self._states[device_id] = state
            logger.info("Tracking device %s", device_id)

        if not state.seeded and baseline_energy is not None:
            state.cumulative_energy += max(baseline_energy, 0.0)
            state.seeded = True

        state.last_seen_at = max(state.last_seen_at, sample_time)
        state.snapshot = snapshot
        state.sample_count += 1
        state.offline_reported = False
        return state

    def is_online(self, device_id: str, now: datetime) -> bool | None:
        """Return True/False for tracked devices, None when unknown."""
        state = self._states.get(device_id)
        if state is None:
            return None
        return now - state.last_seen_at < self._online_timeout

    def online_count(self, now: datetime) -> int:
        return sum(
            1 for state in self._states.values()
            if now - state.last_seen_at < self._online_timeout
        )

    async def sweep(self, now: datetime) -> SweepResult:
        """Mark newly idle devices offline and evict long-idle ones.

        Store failures are logged and swallowed; the transition is retried
        on the next sweep. Never raises for store errors.
        """
        marked: list[str] = []
        evicted: list[str] = []

        for device_id, state in list(self._states.items()):
            idle = now - state.last_seen_at
            if idle < self._online_timeout:
                continue

            if not state.offline_reported:
                if await self._report_offline(device_id, now):
                    # A sample may have arrived while the write was pending.
                    if now - state.last_seen_at >= self._online_timeout:
                        state.offline_reported = True
                        marked.append(device_id)

            if now - state.last_seen_at > self._eviction_after and self._states.get(device_id) is state:
                del self._states[device_id]
                evicted.append(device_id)
                logger.info("Evicted device %s after %s idle", device_id, idle)
                for listener in self._evict_listeners:
                    listener(device_id)

        return SweepResult(marked_offline=marked, evicted=evicted)

    async def _report_offline(self, device_id: str, now: datetime) -> bool:
        if self._store is None:
            return True
        try:
            await self._store.mark_offline(device_id, now)
        except Exception:
            logger.warning(
                "Failed to mark device %s offline", device_id, exc_info=True,
            )
            return False
        logger.info("Device %s marked offline", device_id)
        return True

    def clear(self) -> None:
        """Discard all live state (process shutdown)."""
        self._states.clear()
