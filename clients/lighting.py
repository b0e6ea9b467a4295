"""Client for the smart lighting service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Optional

from clients.base import ServiceClient, build_message, parse_number
from models import messages as m
from models.records import LIGHTING
from rpc import methods
from rpc.bridge import CallResult, LiveStream
from services.errors import ValidationError


class LightingClient(ServiceClient):
    descriptor = LIGHTING

    def get_current_brightness(self, zone_id: str) -> CallResult:
        request = build_message(m.GetCurrentBrightnessRequest, zone_id=zone_id)
        return self.bridge.unary(methods.GET_CURRENT_BRIGHTNESS, request, self.settings.unary_timeout)

    def stream_ambient_light(self, zone_id: str) -> LiveStream:
        request = build_message(m.StreamAmbientLightDataRequest, zone_id=zone_id)
        return self.bridge.subscribe(methods.STREAM_AMBIENT_LIGHT_DATA, request)

    def upload_usage(self, stats: Iterable[m.LightUsageStat]) -> CallResult:
        """Stream usage statistics; ``value`` is the total energy in kWh."""
        result = self.bridge.client_stream(
            methods.UPLOAD_LIGHT_USAGE_STATS, stats, self.settings.usage_timeout
        )
        if not result.ok:
            return result
        return CallResult(value=result.value.total_energy_kw, ok=True, state=result.state)

    def adjust_brightness(self, requests: Iterable[m.AdjustBrightnessRequest]) -> CallResult:
        return self.bridge.bidi(methods.ADJUST_BRIGHTNESS, requests, self.settings.negotiation_timeout)


def usage_stat(duration_min: int | str, average_level: float | str) -> m.LightUsageStat:
    duration = parse_number(duration_min, "Duration")
    if not duration.is_integer():
        raise ValidationError(f"Duration {duration_min!r} must be whole minutes.")
    level = parse_number(average_level, "Level")
    return build_message(m.LightUsageStat, duration_min=int(duration), average_level=level)


def adjust_request(
    desired_level: float | str,
    occupied: bool,
    timestamp: Optional[str] = None,
) -> m.AdjustBrightnessRequest:
    return build_message(
        m.AdjustBrightnessRequest,
        desired_level=parse_number(desired_level, "Level"),
        occupied=occupied,
        timestamp=timestamp or datetime.now(timezone.utc).isoformat(),
    )
