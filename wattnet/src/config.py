"""
Hub configuration from environment variables using Pydantic BaseSettings.

All configuration values are loaded from environment variables at startup.
Durations keep the unit in their name (``_MS``, ``_H``, ``_S``); the
timedelta properties expose them to the services.

CHANGELOG:
- 2026-10-09: Initial creation (STORY-101)
- 2026-10-12: Add TIMEZONE and AUTO_REGISTER_DEVICES (STORY-108)
- 2026-10-15: Add MAX_CLOCK_SKEW_S (STORY-114)

TODO:
- None
"""

from datetime import timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Hub application settings loaded from environment variables.

    Attributes:
        DATABASE_URL: PostgreSQL connection string (asyncpg).
        ONLINE_TIMEOUT_MS: Silence after which a device counts as offline.
        SWEEP_INTERVAL_MS: Interval of the presence sweep.
        EVICTION_MS: Silence after which a device's live state is dropped.
        DOWNSAMPLE_N: Persist one raw reading every N samples.
        TARIFF_PER_KWH: Price of one kWh used for cost estimates.
        DAILY_ROLLUP_HOUR: Wall-clock hour of the daily rollup.
        DAILY_ROLLUP_MINUTE: Wall-clock minute of the daily rollup.
        RETENTION_HOURS: Age after which raw readings may be purged.
        RETENTION_INTERVAL_H: Interval between retention runs.
        STORE_TIMEOUT_S: Timeout applied to every store operation.
        MAX_CLOCK_SKEW_S: Largest accepted lead of a device timestamp over
            the hub clock.
        TIMEZONE: IANA zone used for hour/day/week/month boundaries.
        AUTO_REGISTER_DEVICES: Create unknown devices on first telemetry.
        LOG_LEVEL: Root logging level.
    """

    DATABASE_URL: str
    ONLINE_TIMEOUT_MS: int = 5000
    SWEEP_INTERVAL_MS: int = 2000
    EVICTION_MS: int = 600000
    DOWNSAMPLE_N: int = 6
    TARIFF_PER_KWH: float = 0.15
    DAILY_ROLLUP_HOUR: int = 0
    DAILY_ROLLUP_MINUTE: int = 5
    RETENTION_HOURS: int = 48
    RETENTION_INTERVAL_H: int = 6
    STORE_TIMEOUT_S: float = 5.0
    MAX_CLOCK_SKEW_S: float = 5.0
    TIMEZONE: str = "UTC"
    AUTO_REGISTER_DEVICES: bool = True
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @field_validator(
        "ONLINE_TIMEOUT_MS",
        "SWEEP_INTERVAL_MS",
        "EVICTION_MS",
        "DOWNSAMPLE_N",
        "RETENTION_HOURS",
        "RETENTION_INTERVAL_H",
    )
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        """Reject zero or negative counts and intervals."""
        if v < 1:
            raise ValueError("value must be >= 1")
        return v

    @field_validator("STORE_TIMEOUT_S", "TARIFF_PER_KWH", "MAX_CLOCK_SKEW_S")
    @classmethod
    def must_not_be_negative(cls, v: float) -> float:
        """Reject negative durations and tariffs."""
        if v < 0:
            raise ValueError("value must be >= 0")
        return v

    @field_validator("DAILY_ROLLUP_HOUR")
    @classmethod
    def hour_in_range(cls, v: int) -> int:
        """Validate the rollup hour is a wall-clock hour."""
        if not 0 <= v <= 23:
            raise ValueError("DAILY_ROLLUP_HOUR must be between 0 and 23")
        return v

    @field_validator("DAILY_ROLLUP_MINUTE")
    @classmethod
    def minute_in_range(cls, v: int) -> int:
        """Validate the rollup minute is a wall-clock minute."""
        if not 0 <= v <= 59:
            raise ValueError("DAILY_ROLLUP_MINUTE must be between 0 and 59")
        return v

    @field_validator("TIMEZONE")
    @classmethod
    def timezone_must_exist(cls, v: str) -> str:
        """Validate TIMEZONE names a zone known to the tz database."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown TIMEZONE: {v!r}") from exc
        return v

    @property
    def tz(self) -> ZoneInfo:
        """Zone used for calendar boundaries."""
        return ZoneInfo(self.TIMEZONE)

    @property
    def online_timeout(self) -> timedelta:
        return timedelta(milliseconds=self.ONLINE_TIMEOUT_MS)

    @property
    def eviction_after(self) -> timedelta:
        return timedelta(milliseconds=self.EVICTION_MS)

    @property
    def max_clock_skew(self) -> timedelta:
        return timedelta(seconds=self.MAX_CLOCK_SKEW_S)

    @property
    def retention_horizon(self) -> timedelta:
        return timedelta(hours=self.RETENTION_HOURS)


def get_settings() -> Settings:
    """Create and return a Settings instance.

    Returns:
        Settings: Validated configuration from environment variables.
    """
    return Settings()
