"""
Shared test fixtures for hub tests.

Provides a clean environment for Settings and an ``AsyncMock`` standing
in for the telemetry store, pre-configured with empty results.

CHANGELOG:
- 2026-10-10: Initial creation (STORY-104)
- 2026-10-13: Add mock store fixture (STORY-109)

TODO:
- None
"""

from unittest.mock import AsyncMock

import pytest

_SETTINGS_ENV = (
    "DATABASE_URL",
    "ONLINE_TIMEOUT_MS",
    "SWEEP_INTERVAL_MS",
    "EVICTION_MS",
    "DOWNSAMPLE_N",
    "TARIFF_PER_KWH",
    "DAILY_ROLLUP_HOUR",
    "DAILY_ROLLUP_MINUTE",
    "RETENTION_HOURS",
    "RETENTION_INTERVAL_H",
    "STORE_TIMEOUT_S",
    "MAX_CLOCK_SKEW_S",
    "TIMEZONE",
    "AUTO_REGISTER_DEVICES",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset hub env vars and set the required DATABASE_URL."""
    for name in _SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://u:p@localhost/db")


def make_store() -> AsyncMock:
    """Create a mock TelemetryStore with empty default results.

    Returns:
        AsyncMock: Store whose reads return nothing and writes succeed.
    """
    store = AsyncMock()
    store.get_device.return_value = None
    store.list_devices.return_value = []
    store.list_device_ids.return_value = []
    store.fetch_readings.return_value = []
    store.fetch_summaries.return_value = []
    store.delete_readings_before.return_value = 0
    store.ping.return_value = None
    return store


@pytest.fixture()
def store() -> AsyncMock:
    """Mock telemetry store.

    Returns:
        AsyncMock: See :func:`make_store`.
    """
    return make_store()
