"""Client for the thermostat service."""

from __future__ import annotations

import random
from typing import Iterable, Iterator, List, Optional

from clients.base import ServiceClient, build_message, parse_number
from models import messages as m
from models.records import CLIMATE
from rpc import methods
from rpc.bridge import CallResult

SAMPLE_STEP_MS = 1_000


class ThermostatClient(ServiceClient):
    descriptor = CLIMATE

    def set_target(self, temperature: float | str) -> CallResult:
        """Write the target set-point; ``value`` is the success flag."""
        value = parse_number(temperature, "Target temperature")
        request = build_message(m.SetTargetTemperatureRequest, target_temp=value)
        result = self.bridge.unary(methods.SET_TARGET_TEMPERATURE, request, self.settings.unary_timeout)
        if not result.ok:
            return CallResult(value=False, ok=False, state=result.state, error=result.error)
        return CallResult(value=result.value.success, ok=result.value.success, state=result.state)

    def get_history(self, start: int, end: int) -> CallResult:
        """Replay readings between ``start`` and ``end`` ms; ``value`` is a list."""
        request = build_message(m.GetTemperatureHistoryRequest, start_timestamp=start, end_timestamp=end)
        return self.bridge.server_stream(
            methods.STREAM_TEMPERATURE_HISTORY, request, self.settings.history_timeout
        )

    def get_average(self, readings: Iterable[m.TemperatureReading]) -> CallResult:
        """Stream readings and wait for their average.

        ``value`` is the average on success and ``None`` otherwise; an empty
        stream fails with an :class:`~services.errors.AggregationError`.
        """
        result = self.bridge.client_stream(
            methods.GET_AVERAGE_TEMPERATURE, readings, self.settings.average_timeout
        )
        if not result.ok:
            return result
        return CallResult(value=result.value.average_temp, ok=True, state=result.state)


def simulate_readings(
    start: int,
    end: int,
    baseline: float = 20.0,
    rng: Optional[random.Random] = None,
) -> List[m.TemperatureReading]:
    """One synthetic reading per second in ``[start, end]``."""
    generator = rng or random.Random()
    return list(_readings(start, end, baseline, generator))


def _readings(start: int, end: int, baseline: float, rng: random.Random) -> Iterator[m.TemperatureReading]:
    for timestamp in range(start, end + 1, SAMPLE_STEP_MS):
        yield build_message(
            m.TemperatureReading,
            temperature=baseline + rng.random() * 0.5,
            timestamp=timestamp,
        )
