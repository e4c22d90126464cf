"""
Per-device downsampling of raw reading persistence.

Every sample still refreshes presence and energy; only one in ``every``
samples is written to the raw readings table.

CHANGELOG:
- 2026-10-10: Initial creation (STORY-105)

TODO:
- None
"""

# Counters wrap after this many multiples of N.
_WRAP_CYCLES = 10_000


class Downsampler:
    """1-in-N persistence gate keyed by device identifier.

    Args:
        every: N; the Nth, 2Nth, ... call for a device returns True.
    """

    def __init__(self, every: int = 6) -> None:
        if every < 1:
            raise ValueError("every must be >= 1")
        self._every = every
        # Wrap on a multiple of N so spacing stays even across resets.
        self._wrap = every * _WRAP_CYCLES
        self._counters: dict[str, int] = {}

    @property
    def every(self) -> int:
        return self._every

    def should_persist(self, device_id: str) -> bool:
        """Count one sample for *device_id* and report whether to persist it."""
        count = self._counters.get(device_id, 0) + 1
        if count > self._wrap:
            count = 1
        self._counters[device_id] = count
        return count % self._every == 0

    def forget(self, device_id: str) -> None:
        """Drop the counter of an evicted device."""
        self._counters.pop(device_id, None)

    def clear(self) -> None:
        self._counters.clear()
