from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from models.records import Endpoint, ServiceDescriptor


_LOG_LEVEL_ENV = "LOG_LEVEL"
_DISCOVERY_ENABLED_ENV = "DISCOVERY_ENABLED"
_DISCOVERY_TIMEOUT_ENV = "DISCOVERY_TIMEOUT_MS"
_WORKER_COUNT_ENV = "SERVER_WORKER_COUNT"
_GRACE_ENV = "SHUTDOWN_GRACE_SECONDS"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    log_level: str
    discovery_enabled: bool
    discovery_timeout_ms: int
    climate_host: str
    climate_port: int
    solar_host: str
    solar_port: int
    lighting_host: str
    lighting_port: int
    server_workers: int
    shutdown_grace_seconds: float
    unary_timeout: float
    history_timeout: float
    average_timeout: float
    usage_timeout: float
    negotiation_timeout: float
    climate_default_target: float
    lighting_default_level: float
    solar_tick_seconds: float
    ambient_tick_seconds: float

    def fallback_endpoint(self, descriptor: ServiceDescriptor) -> Endpoint:
        """Statically configured address used when discovery finds nothing."""
        host = getattr(self, f"{descriptor.domain}_host")
        port = getattr(self, f"{descriptor.domain}_port")
        return Endpoint(service_name=descriptor.instance_name, host=host, port=port)


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUE_VALUES:
        return True
    if candidate in _FALSE_VALUES:
        return False
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        log_level=_read_log_level("INFO"),
        discovery_enabled=_read_bool_env(_DISCOVERY_ENABLED_ENV, True),
        discovery_timeout_ms=_read_int_env(_DISCOVERY_TIMEOUT_ENV, 5000),
        climate_host=_read_str_env("CLIMATE_HOST", "localhost"),
        climate_port=_read_int_env("CLIMATE_PORT", 50051),
        solar_host=_read_str_env("SOLAR_HOST", "localhost"),
        solar_port=_read_int_env("SOLAR_PORT", 50052),
        lighting_host=_read_str_env("LIGHTING_HOST", "localhost"),
        lighting_port=_read_int_env("LIGHTING_PORT", 50053),
        server_workers=_read_int_env(_WORKER_COUNT_ENV, 10),
        shutdown_grace_seconds=_read_float_env(_GRACE_ENV, 5.0),
        unary_timeout=_read_float_env("UNARY_TIMEOUT_SECONDS", 5.0),
        history_timeout=_read_float_env("HISTORY_TIMEOUT_SECONDS", 10.0),
        average_timeout=_read_float_env("AVERAGE_TIMEOUT_SECONDS", 5.0),
        usage_timeout=_read_float_env("USAGE_TIMEOUT_SECONDS", 5.0),
        negotiation_timeout=_read_float_env("NEGOTIATION_TIMEOUT_SECONDS", 10.0),
        climate_default_target=_read_float_env("CLIMATE_DEFAULT_TARGET", 20.0),
        lighting_default_level=_read_float_env("LIGHTING_DEFAULT_LEVEL", 50.0),
        solar_tick_seconds=_read_float_env("SOLAR_TICK_SECONDS", 1.0),
        ambient_tick_seconds=_read_float_env("AMBIENT_TICK_SECONDS", 5.0),
    )
