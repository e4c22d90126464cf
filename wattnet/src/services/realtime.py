"""
Realtime view merging in-memory live state with stored device rows.

Online devices report their live values from the presence tracker;
offline or untracked devices fall back to the last values persisted in
the store.

CHANGELOG:
- 2026-10-13: Initial creation (STORY-109)

TODO:
- None
"""

from datetime import datetime
from typing import Any

from wattnet.src.services.presence import PresenceTracker
from wattnet.src.store.base import DeviceRecord, TelemetryStore


def device_view(record: DeviceRecord, tracker: PresenceTracker, now: datetime) -> dict[str, Any]:
    """Build the realtime entry of one device."""
    state = tracker.get(record.device_id)
    online = tracker.is_online(record.device_id, now) is True

    if online and state is not None:
        return {
            "deviceId": record.device_id,
            "name": record.name,
            "V": state.snapshot.voltage,
            "I": state.snapshot.current,
            "P": state.last_power,
            "kWh": state.cumulative_energy,
            "Hz": state.snapshot.frequency,
            "PF": state.snapshot.power_factor,
            "status": "online",
            "timestamp": state.last_seen_at.isoformat(),
        }

    return {
        "deviceId": record.device_id,
        "name": record.name,
        "V": record.voltage,
        "I": record.current,
        "P": record.power,
        "kWh": state.cumulative_energy if state is not None else record.energy,
        "Hz": record.frequency,
        "PF": record.power_factor,
        "status": "offline",
        "timestamp": record.last_seen.isoformat() if record.last_seen else None,
    }


async def build_realtime_view(
    store: TelemetryStore,
    tracker: PresenceTracker,
    now: datetime,
) -> dict[str, dict[str, Any]]:
    """Return the realtime entry of every stored device, keyed by device id."""
    devices = await store.list_devices()
    return {record.device_id: device_view(record, tracker, now) for record in devices}
