"""Pydantic schemas for the HTTP gateway."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field


class TargetTemperatureBody(BaseModel):
    """New thermostat set-point in °C."""

    target_temp: float = Field(..., allow_inf_nan=False)


class TargetTemperatureResponse(BaseModel):
    success: bool


class TimeWindow(BaseModel):
    """Inclusive window in epoch milliseconds."""

    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)


class HistoryEntry(BaseModel):
    temperature: float
    timestamp: int


class AverageResponse(BaseModel):
    average_temp: float
    sample_count: int = Field(..., ge=0)


class DailyYieldResponse(BaseModel):
    date: str
    yield_kw: float
    peak: float


class TradeBatch(BaseModel):
    prices: List[float] = Field(..., min_length=1, description="Offer prices per kWh.")


class TradeDecisionOut(BaseModel):
    accepted: bool
    agreed_price: float
    counter_offer: float


class BrightnessResponse(BaseModel):
    zone_id: str
    level: int
    timestamp: str


class UsageEntry(BaseModel):
    duration_min: int = Field(..., ge=0)
    average_level: float = Field(..., ge=0, le=100)


class UsageBatch(BaseModel):
    stats: List[UsageEntry]


class UsageResponse(BaseModel):
    entries: int
    total_energy_kw: float


class AdjustEntry(BaseModel):
    desired_level: float = Field(..., ge=0, le=100)
    occupied: bool


class AdjustBatch(BaseModel):
    requests: List[AdjustEntry] = Field(..., min_length=1)


class AdjustResult(BaseModel):
    lux: float
    timestamp: str
