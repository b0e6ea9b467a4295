"""Domain models shared across servers and clients."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from services.errors import ValidationError

SCHEMA_VERSION = "v1"


@dataclass(frozen=True, slots=True)
class Endpoint:
    """Resolved network address of one service instance."""

    service_name: str
    host: str
    port: int

    @property
    def target(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True, slots=True)
class ServiceDescriptor:
    """Static identity of a service: discovery names, RPC name and default port."""

    domain: str
    service_type: str
    instance_name: str
    rpc_service: str
    default_port: int
    description: str

    @property
    def qualified_name(self) -> str:
        return f"{self.instance_name}.{self.service_type}"


CLIMATE = ServiceDescriptor(
    domain="climate",
    service_type="_thermostat._grpc._tcp.local.",
    instance_name="ThermostatService",
    rpc_service=f"smartenergy.{SCHEMA_VERSION}.SmartThermostat",
    default_port=50051,
    description="Thermostat server will give you the current temperature",
)

SOLAR = ServiceDescriptor(
    domain="solar",
    service_type="_solarpanel._grpc._tcp.local.",
    instance_name="SolarPanelService",
    rpc_service=f"smartenergy.{SCHEMA_VERSION}.SmartSolarService",
    default_port=50052,
    description="Solar panel management service",
)

LIGHTING = ServiceDescriptor(
    domain="lighting",
    service_type="_smartlighting._grpc._tcp.local.",
    instance_name="SmartLightingService",
    rpc_service=f"smartenergy.{SCHEMA_VERSION}.SmartLightingService",
    default_port=50053,
    description="Smart lighting management service",
)

DESCRIPTORS = {descriptor.domain: descriptor for descriptor in (CLIMATE, SOLAR, LIGHTING)}


@dataclass(frozen=True, slots=True)
class Reading:
    """A single synthetic telemetry value produced by a generator tick."""

    timestamp: datetime
    value: float
    occupied: Optional[bool] = None


@dataclass(frozen=True, slots=True)
class TradePolicy:
    counter_offer_price: float = 0.40


@dataclass(frozen=True, slots=True)
class LightingPolicy:
    """Occupancy factors and lux ceiling used to turn a level into lux."""

    occupied_factor: float = 10.0
    vacant_factor: float = 5.0
    lux_ceiling: float = 600.0
    adjust_noise_sigma: float = 10.0
    ambient_noise_spread: float = 25.0

    def factor(self, occupied: bool) -> float:
        return self.occupied_factor if occupied else self.vacant_factor


class SetPoint:
    """Mutable target shared between one writer call type and many generators.

    Rebinding a float attribute is atomic, so a reader sees either the old or
    the new value and never blocks the writer.
    """

    __slots__ = ("_value",)

    def __init__(self, value: float) -> None:
        self._value = _require_finite(value)

    def get(self) -> float:
        return self._value

    def set(self, value: float) -> None:
        self._value = _require_finite(value)


def _require_finite(value: float) -> float:
    try:
        candidate = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Set-point {value!r} is not a number.") from exc
    if not math.isfinite(candidate):
        raise ValidationError(f"Set-point {value!r} must be finite.")
    return candidate
