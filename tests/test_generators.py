from __future__ import annotations

import random
import time
from datetime import datetime, timezone
from typing import List

import pytest

from models.records import LightingPolicy, Reading, SetPoint
from services.errors import ValidationError
from services.generators import ClimateGenerator, LightingGenerator, SolarGenerator


def _collect_until(readings: List[Reading], count: int, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while len(readings) < count and time.monotonic() < deadline:
        time.sleep(0.01)
    assert len(readings) >= count


def test_generator_stops_after_cancel() -> None:
    readings: List[Reading] = []
    generator = SolarGenerator(period=0.01, rng=random.Random(1))

    handle = generator.start(readings.append)
    _collect_until(readings, 3)
    handle.cancel()
    seen = len(readings)
    time.sleep(0.1)

    assert handle.cancelled is True
    assert handle.join(1.0) is True
    assert len(readings) == seen


def test_generator_stops_when_consumer_declines() -> None:
    readings: List[Reading] = []

    def take_two(reading: Reading) -> bool:
        readings.append(reading)
        return len(readings) < 2

    handle = SolarGenerator(period=0.01, rng=random.Random(1)).start(take_two)

    assert handle.join(1.0) is True
    assert len(readings) == 2


def test_generator_stops_when_consumer_raises() -> None:
    calls = []

    def explode(reading: Reading) -> None:
        calls.append(reading)
        raise RuntimeError("consumer failed")

    handle = SolarGenerator(period=0.01, rng=random.Random(1)).start(explode)

    assert handle.join(1.0) is True
    assert len(calls) == 1


def test_climate_generator_follows_set_point() -> None:
    set_point = SetPoint(20.0)
    generator = ClimateGenerator(set_point, noise_sigma=0.0, rng=random.Random(1))

    assert generator.value() == 20.0
    set_point.set(23.5)
    assert generator.value() == 23.5


def test_running_climate_generator_picks_up_new_set_point() -> None:
    set_point = SetPoint(20.0)
    readings: List[Reading] = []
    generator = ClimateGenerator(set_point, period=0.02, noise_sigma=0.0, rng=random.Random(1))

    handle = generator.start(readings.append)
    _collect_until(readings, 1)
    set_point.set(25.0)
    changed_at = len(readings)
    _collect_until(readings, changed_at + 2)
    handle.cancel()

    assert readings[0].value == 20.0
    assert 25.0 in [reading.value for reading in readings[changed_at : changed_at + 2]]
    assert readings[-1].value == 25.0


def test_set_point_rejects_non_finite_values() -> None:
    set_point = SetPoint(20.0)

    with pytest.raises(ValidationError):
        set_point.set(float("inf"))
    assert set_point.get() == 20.0


def test_solar_generator_follows_sine_wave() -> None:
    generator = SolarGenerator(noise_sigma=0.0, rng=random.Random(1))

    assert generator.value(0.0) == pytest.approx(4.0)
    assert generator.value(1.5707963) == pytest.approx(5.0)


def test_lighting_readings_are_non_negative_and_flag_occupancy() -> None:
    generator = LightingGenerator(SetPoint(0.0), LightingPolicy(), rng=random.Random(5))

    readings = [generator.reading(datetime.now(timezone.utc), 0.0) for _ in range(50)]

    assert all(reading.value >= 0.0 for reading in readings)
    assert {reading.occupied for reading in readings} == {True, False}


def test_generator_period_must_be_positive() -> None:
    with pytest.raises(ValueError):
        SolarGenerator(period=0.0)
