"""
Telemetry endpoint for metering devices.

Accepts one sample per request via POST /api/data and hands it to the
ingestion pipeline. The response always carries the locally computed
energy, even when the store could not be written.

CHANGELOG:
- 2026-10-13: Initial creation (STORY-109)

TODO:
- None
"""

import logging
import math
from datetime import datetime
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field, field_validator

from wattnet.src.api.deps import HubDep
from wattnet.src.services.ingestion import TelemetrySample

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["ingest"])


# ---------------------------------------------------------------------------
# Pydantic request / response schemas
# ---------------------------------------------------------------------------


class TelemetryIn(BaseModel):
    """Schema for a device telemetry sample.

    Electrical fields that are missing or not numeric read as 0.

    Attributes:
        device_id: Hardware identifier of the device (``deviceId``).
        voltage: RMS voltage (V).
        current: RMS current (A).
        power: Instantaneous power (W).
        frequency: Grid frequency (Hz).
        power_factor: Power factor (``powerFactor``).
        timestamp: Optional sample time; defaults to the time of receipt.
    """

    model_config = ConfigDict(populate_by_name=True)

    device_id: str = Field(alias="deviceId", min_length=1)
    voltage: float = 0.0
    current: float = 0.0
    power: float = 0.0
    frequency: float = 0.0
    power_factor: float = Field(default=0.0, alias="powerFactor")
    timestamp: datetime | None = None

    @field_validator("device_id")
    @classmethod
    def device_id_not_blank(cls, v: str) -> str:
        """Strip surrounding whitespace and reject blank identifiers."""
        v = v.strip()
        if not v:
            raise ValueError("deviceId must not be blank")
        return v

    @field_validator("voltage", "current", "power", "frequency", "power_factor", mode="before")
    @classmethod
    def coerce_number(cls, v: Any) -> float:
        """Read missing, non-numeric and non-finite values as 0."""
        try:
            number = float(v)
        except (TypeError, ValueError):
            return 0.0
        return number if math.isfinite(number) else 0.0


class IngestResponse(BaseModel):
    """Schema for the telemetry acknowledgment.

    Attributes:
        ok: Always True when the sample was processed.
        registered: Whether the device exists in the store.
        energy: Cumulative energy estimate (kWh).
        online: Presence right after this sample.
        persisted: Whether this sample was kept as a raw reading.
        timestamp: Sample time used by the hub.
    """

    ok: bool
    registered: bool
    energy: float
    online: bool
    persisted: bool
    timestamp: datetime


# ---------------------------------------------------------------------------
# Route
# ---------------------------------------------------------------------------


@router.post("/data", response_model=IngestResponse)
async def ingest_telemetry(body: TelemetryIn, hub: HubDep) -> IngestResponse:
    """Ingest one telemetry sample from a device.

    Args:
        body: Validated telemetry sample.
        hub: Hub services (injected).

    Returns:
        IngestResponse: Local energy estimate and presence.
    """
    sample = TelemetrySample(
        power=body.power,
        voltage=body.voltage,
        current=body.current,
        frequency=body.frequency,
        power_factor=body.power_factor,
        timestamp=body.timestamp,
    )
    result = await hub.pipeline.ingest(body.device_id, sample)

    return IngestResponse(
        ok=True,
        registered=result.registered,
        energy=result.energy,
        online=result.online,
        persisted=result.persisted,
        timestamp=result.timestamp,
    )
