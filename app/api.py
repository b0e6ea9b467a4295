"""HTTP gateway routes over the telemetry clients."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import List, NoReturn

from fastapi import APIRouter, Depends, HTTPException, status

from app.schemas import (
    AdjustBatch,
    AdjustResult,
    AverageResponse,
    BrightnessResponse,
    DailyYieldResponse,
    HistoryEntry,
    TargetTemperatureBody,
    TargetTemperatureResponse,
    TimeWindow,
    TradeBatch,
    TradeDecisionOut,
    UsageBatch,
    UsageResponse,
)
from clients.climate import ThermostatClient, simulate_readings
from clients.lighting import LightingClient, adjust_request, usage_stat
from clients.solar import SolarClient, trade_offers
from rpc.bridge import CallResult
from services.errors import AggregationError, CallTimeoutError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter()


@dataclass
class DashboardClients:
    climate: ThermostatClient
    solar: SolarClient
    lighting: LightingClient

    def close(self) -> None:
        for client in (self.climate, self.solar, self.lighting):
            client.close()


@lru_cache
def build_default_clients() -> DashboardClients:
    return DashboardClients(
        climate=ThermostatClient(),
        solar=SolarClient(),
        lighting=LightingClient(),
    )


def get_clients() -> DashboardClients:
    return build_default_clients()


def _raise_for(label: str, result: CallResult) -> NoReturn:
    error = result.error
    if isinstance(error, CallTimeoutError):
        code = status.HTTP_504_GATEWAY_TIMEOUT
    elif isinstance(error, (AggregationError, ValidationError)):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    else:
        code = status.HTTP_502_BAD_GATEWAY
    detail = f"{label} failed ({result.state.value}): {error or 'no detail provided.'}"
    logger.warning("Gateway call failed", extra={"rpc": label, "state": result.state.value})
    raise HTTPException(status_code=code, detail=detail)


def _bad_request(exc: ValidationError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.put(
    "/climate/target",
    response_model=TargetTemperatureResponse,
    summary="Set the thermostat target temperature.",
)
def set_target_temperature(
    body: TargetTemperatureBody,
    clients: DashboardClients = Depends(get_clients),
) -> TargetTemperatureResponse:
    result = clients.climate.set_target(body.target_temp)
    if not result.ok:
        _raise_for("SetTargetTemperature", result)
    return TargetTemperatureResponse(success=result.value)


@router.get(
    "/climate/history",
    response_model=List[HistoryEntry],
    summary="Replay temperature history between two epoch-ms timestamps.",
)
def temperature_history(
    start: int,
    end: int,
    clients: DashboardClients = Depends(get_clients),
) -> List[HistoryEntry]:
    try:
        result = clients.climate.get_history(start, end)
    except ValidationError as exc:
        raise _bad_request(exc) from exc
    if not result.ok:
        _raise_for("StreamTemperatureHistory", result)
    return [HistoryEntry(temperature=r.temperature, timestamp=r.timestamp) for r in result.value]


@router.post(
    "/climate/average",
    response_model=AverageResponse,
    summary="Stream simulated readings for a window and return their average.",
)
def average_temperature(
    window: TimeWindow,
    clients: DashboardClients = Depends(get_clients),
) -> AverageResponse:
    readings = simulate_readings(window.start, window.end)
    result = clients.climate.get_average(readings)
    if not result.ok:
        _raise_for("GetAverageTemperature", result)
    return AverageResponse(average_temp=result.value, sample_count=len(readings))


@router.get(
    "/solar/yield",
    response_model=DailyYieldResponse,
    summary="Fetch the simulated daily yield for a date.",
)
def daily_yield(
    date: str,
    clients: DashboardClients = Depends(get_clients),
) -> DailyYieldResponse:
    result = clients.solar.get_daily_yield(date)
    if not result.ok:
        _raise_for("GetDailyYield", result)
    return DailyYieldResponse(date=date, yield_kw=result.value.yield_kw, peak=result.value.peak)


@router.post(
    "/solar/trades",
    response_model=List[TradeDecisionOut],
    summary="Negotiate a batch of trade offers.",
)
def negotiate_trades(
    batch: TradeBatch,
    clients: DashboardClients = Depends(get_clients),
) -> List[TradeDecisionOut]:
    try:
        offers = trade_offers(batch.prices)
    except ValidationError as exc:
        raise _bad_request(exc) from exc
    result = clients.solar.negotiate_trades(offers)
    if not result.ok:
        _raise_for("EnergyTradeNegotiation", result)
    return [
        TradeDecisionOut(
            accepted=decision.accepted,
            agreed_price=decision.agreed_price,
            counter_offer=decision.counter_offer,
        )
        for decision in result.value
    ]


@router.get(
    "/lighting/brightness/{zone_id}",
    response_model=BrightnessResponse,
    summary="Fetch the current brightness of a zone.",
)
def current_brightness(
    zone_id: str,
    clients: DashboardClients = Depends(get_clients),
) -> BrightnessResponse:
    result = clients.lighting.get_current_brightness(zone_id)
    if not result.ok:
        _raise_for("GetCurrentBrightness", result)
    return BrightnessResponse(zone_id=zone_id, level=result.value.level, timestamp=result.value.timestamp)


@router.post(
    "/lighting/usage",
    response_model=UsageResponse,
    summary="Upload usage statistics and return the total energy.",
)
def upload_usage(
    batch: UsageBatch,
    clients: DashboardClients = Depends(get_clients),
) -> UsageResponse:
    stats = [usage_stat(entry.duration_min, entry.average_level) for entry in batch.stats]
    result = clients.lighting.upload_usage(stats)
    if not result.ok:
        _raise_for("UploadLightUsageStats", result)
    return UsageResponse(entries=len(stats), total_energy_kw=result.value)


@router.post(
    "/lighting/adjust",
    response_model=List[AdjustResult],
    summary="Request brightness levels and return the resulting lux.",
)
def adjust_brightness(
    batch: AdjustBatch,
    clients: DashboardClients = Depends(get_clients),
) -> List[AdjustResult]:
    requests = [adjust_request(entry.desired_level, entry.occupied) for entry in batch.requests]
    result = clients.lighting.adjust_brightness(requests)
    if not result.ok:
        _raise_for("AdjustBrightness", result)
    return [AdjustResult(lux=reply.lux, timestamp=reply.timestamp) for reply in result.value]
