"""Pydantic schemas for the RPC wire layer (schema version v1)."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class WireMessage(BaseModel):
    """Immutable message exchanged between a client and a service process."""

    model_config = ConfigDict(frozen=True, extra="ignore", allow_inf_nan=False)


class Empty(WireMessage):
    pass


# Climate


class SetTargetTemperatureRequest(WireMessage):
    target_temp: float


class SetTargetTemperatureResponse(WireMessage):
    success: bool


class GetTemperatureHistoryRequest(WireMessage):
    start_timestamp: int = Field(..., ge=0, description="Replay start in epoch milliseconds.")
    end_timestamp: int = Field(..., ge=0, description="Replay end in epoch milliseconds, inclusive.")


class TemperatureReading(WireMessage):
    temperature: float
    timestamp: int = Field(..., ge=0)


class GetAverageTemperatureResponse(WireMessage):
    average_temp: float
    sample_count: int = Field(..., ge=1)


# Solar


class GetDailyYieldRequest(WireMessage):
    date: str


class GetDailyYieldResponse(WireMessage):
    yield_kw: float
    peak: float


class RealTimeOutput(WireMessage):
    current_kw: float
    timestamp: str


class TradeRequest(WireMessage):
    price: float = Field(..., ge=0)


class TradeResponse(WireMessage):
    accepted: bool
    agreed_price: float = 0.0
    counter_offer: float = 0.0


# Lighting


class GetCurrentBrightnessRequest(WireMessage):
    zone_id: str


class GetCurrentBrightnessResponse(WireMessage):
    level: int = Field(..., ge=0, le=100)
    timestamp: str


class StreamAmbientLightDataRequest(WireMessage):
    zone_id: str


class AmbientLightReading(WireMessage):
    lux: float
    occupied: bool
    timestamp: str


class LightUsageStat(WireMessage):
    duration_min: int = Field(..., ge=0)
    average_level: float = Field(..., ge=0, le=100)


class UploadLightUsageResponse(WireMessage):
    total_energy_kw: float = Field(..., ge=0)


class AdjustBrightnessRequest(WireMessage):
    desired_level: float = Field(..., ge=0, le=100)
    occupied: bool
    timestamp: str


class AdjustBrightnessResponse(WireMessage):
    lux: float
    timestamp: str
