"""
Energy integration of instantaneous power samples.

Pure function that advances a device's cumulative energy (kWh) from the
previous anchor sample to a new one using the trapezoidal rule. No I/O and
no clock dependency: both timestamps are supplied by the caller.

CHANGELOG:
- 2026-10-10: Initial creation (STORY-104)

TODO:
- None
"""

from dataclasses import dataclass
from datetime import datetime

# Decimal places kept on cumulative energy.
ENERGY_PRECISION = 6

_SECONDS_PER_HOUR = 3600


@dataclass(frozen=True)
class IntegrationAnchor:
    """Previous sample the next integration step starts from.

    Attributes:
        power: Instantaneous power at ``time`` (W).
        time: Timestamp of the anchor sample.
        energy: Cumulative energy at ``time`` (kWh).
    """

    power: float
    time: datetime
    energy: float


def integrate(
    prev: IntegrationAnchor | None,
    new_power: float,
    new_time: datetime,
) -> float:
    """Return the cumulative energy after a new power sample.

    Uses the average of the anchor power and the new power over the elapsed
    interval, which tracks ramps better than ``power * interval``.

    Non-advancing time (duplicate or out-of-order timestamps) leaves the
    energy unchanged, as does an interval where both samples read zero.
    Negative power readings are treated as zero.

    Args:
        prev: Anchor sample, or ``None`` before the first sample.
        new_power: New instantaneous power (W).
        new_time: Timestamp of the new sample.

    Returns:
        Cumulative energy in kWh rounded to 6 decimals; ``0.0`` when
        there is no anchor.
    """
    if prev is None:
        return 0.0
    if new_time <= prev.time:
        return prev.energy

    elapsed_hours = (new_time - prev.time).total_seconds() / _SECONDS_PER_HOUR
    if elapsed_hours <= 0:
        return prev.energy

    prev_power = max(prev.power, 0.0)
    new_power = max(new_power, 0.0)
    if prev_power == 0 and new_power == 0:
        return prev.energy

    avg_power = (prev_power + new_power) / 2
    increment_kwh = (avg_power / 1000) * elapsed_hours
    return round(prev.energy + increment_kwh, ENERGY_PRECISION)
