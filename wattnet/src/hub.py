"""
Wiring of the hub services.

``build_hub()`` assembles one instance of every service around a store.
The application lifespan owns the resulting ``Hub``: it is created at
startup (live state empty) and shut down at exit (live state cleared).

CHANGELOG:
- 2026-10-13: Initial creation (STORY-109)

TODO:
- None
"""

import logging
from dataclasses import dataclass
from datetime import time, timedelta

from wattnet.src.config import Settings
from wattnet.src.services.downsampler import Downsampler
from wattnet.src.services.ingestion import IngestionPipeline
from wattnet.src.services.presence import PresenceTracker
from wattnet.src.services.retention import RetentionManager
from wattnet.src.services.rollup import RollupEngine
from wattnet.src.services.scheduler import Scheduler
from wattnet.src.store.base import TelemetryStore

logger = logging.getLogger(__name__)


@dataclass
class Hub:
    settings: Settings
    store: TelemetryStore
    tracker: PresenceTracker
    downsampler: Downsampler
    rollup: RollupEngine
    retention: RetentionManager
    pipeline: IngestionPipeline
    scheduler: Scheduler

    async def shutdown(self) -> None:
        """Stop scheduled jobs and drop all in-memory state."""
        await self.scheduler.stop()
        self.tracker.clear()
        self.downsampler.clear()
        logger.info("Hub shut down")


def build_hub(settings: Settings, store: TelemetryStore) -> Hub:
    """Create the services described by *settings* around *store*."""
    tz = settings.tz
    tracker = PresenceTracker(
        store=store,
        online_timeout=settings.online_timeout,
        eviction_after=settings.eviction_after,
    )
    downsampler = Downsampler(every=settings.DOWNSAMPLE_N)
    rollup = RollupEngine(store, tariff_per_kwh=settings.TARIFF_PER_KWH, tz=tz)
    retention = RetentionManager(store)
    pipeline = IngestionPipeline(
        store,
        tracker,
        downsampler,
        rollup=rollup,
        tz=tz,
        auto_register=settings.AUTO_REGISTER_DEVICES,
        max_clock_skew=settings.max_clock_skew,
    )
    scheduler = Scheduler(
        store,
        tracker,
        rollup,
        retention,
        sweep_interval=timedelta(milliseconds=settings.SWEEP_INTERVAL_MS),
        daily_at=time(settings.DAILY_ROLLUP_HOUR, settings.DAILY_ROLLUP_MINUTE),
        retention_interval=timedelta(hours=settings.RETENTION_INTERVAL_H),
        retention_horizon=settings.retention_horizon,
        tz=tz,
    )
    return Hub(
        settings=settings,
        store=store,
        tracker=tracker,
        downsampler=downsampler,
        rollup=rollup,
        retention=retention,
        pipeline=pipeline,
        scheduler=scheduler,
    )
