"""Aggregation logic for client-streamed telemetry."""

from __future__ import annotations

import math
import random
from typing import Optional

from services.errors import AggregationError, ValidationError


class AveragingAggregator:
    """Running sum/count fold for one client-streaming call.

    Instances are single-use: ``on_complete`` may be called once, and an
    aggregator that saw ``on_error`` never produces a value.
    """

    def __init__(self) -> None:
        self._sum = 0.0
        self._count = 0
        self._failure: Optional[BaseException] = None
        self._consumed = False

    @property
    def count(self) -> int:
        return self._count

    def on_message(self, value: float) -> None:
        self._ensure_open()
        if not math.isfinite(value):
            raise ValidationError(f"Reading {value!r} must be finite.")
        self._sum += value
        self._count += 1

    def on_error(self, exc: BaseException) -> None:
        self._failure = exc

    def on_complete(self) -> float:
        self._ensure_open()
        self._consumed = True
        if self._failure is not None:
            raise AggregationError(f"Stream failed before completion: {self._failure}")
        if self._count == 0:
            raise AggregationError("Average is undefined: no readings were received.")
        return self._sum / self._count

    def _ensure_open(self) -> None:
        if self._consumed:
            raise AggregationError("Aggregator has already produced its result.")


class EnergyAggregator:
    """Integrates per-minute energy samples from usage statistics.

    Each statistic expands into ``duration_minutes`` samples of
    ``max_power_kw * (level / 100) * noise / 60`` where ``noise`` is drawn per
    minute around 1.0 and clamped to ``noise_bounds``. No input means 0.0.
    """

    def __init__(
        self,
        max_power_kw: float = 0.1,
        noise_sigma: float = 0.1,
        noise_bounds: tuple[float, float] = (0.5, 1.5),
        rng: Optional[random.Random] = None,
    ) -> None:
        self.max_power_kw = max_power_kw
        self.noise_sigma = noise_sigma
        self.noise_bounds = noise_bounds
        self._rng = rng or random.Random()
        self._total = 0.0
        self._failure: Optional[BaseException] = None
        self._consumed = False

    def on_message(self, duration_minutes: int, average_level: float) -> None:
        if self._consumed:
            raise AggregationError("Aggregator has already produced its result.")
        if duration_minutes < 0:
            raise ValidationError(f"Duration {duration_minutes} must not be negative.")
        if not 0.0 <= average_level <= 100.0:
            raise ValidationError(f"Level {average_level} must be within 0-100.")

        fraction = average_level / 100.0
        low, high = self.noise_bounds
        for _minute in range(duration_minutes):
            noise = min(high, max(low, self._rng.gauss(1.0, self.noise_sigma)))
            self._total += self.max_power_kw * fraction * noise / 60.0

    def on_error(self, exc: BaseException) -> None:
        self._failure = exc

    def on_complete(self) -> float:
        if self._consumed:
            raise AggregationError("Aggregator has already produced its result.")
        self._consumed = True
        if self._failure is not None:
            raise AggregationError(f"Stream failed before completion: {self._failure}")
        return self._total
