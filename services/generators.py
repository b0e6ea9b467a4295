"""Synthetic telemetry generators driven by cancellable periodic loops."""

from __future__ import annotations

import logging
import math
import random
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from models.records import LightingPolicy, Reading, SetPoint

logger = logging.getLogger(__name__)

ReadingCallback = Callable[[Reading], Optional[bool]]


class CancelHandle:
    """Stops one generator loop.

    ``cancel`` takes the same lock the loop holds while delivering a reading,
    so once it returns no further callback can run.
    """

    def __init__(self, stop: threading.Event, lock: threading.Lock) -> None:
        self._stop = stop
        self._lock = lock
        self._thread: Optional[threading.Thread] = None

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def attach(self, thread: threading.Thread) -> None:
        self._thread = thread

    def cancel(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def join(self, timeout: Optional[float] = None) -> bool:
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()


class TelemetryGenerator:
    """Base class: ``value`` computes one noisy sample, ``start`` ticks it."""

    name = "telemetry"

    def __init__(self, period: float, rng: Optional[random.Random] = None) -> None:
        if period <= 0:
            raise ValueError("Generator period must be positive.")
        self.period = period
        self._rng = rng or random.Random()

    def value(self, elapsed: float = 0.0) -> float:
        raise NotImplementedError

    def reading(self, timestamp: datetime, elapsed: float) -> Reading:
        return Reading(timestamp=timestamp, value=self.value(elapsed))

    def start(self, on_reading: ReadingCallback) -> CancelHandle:
        """Tick every ``period`` seconds until cancelled.

        The loop also ends when ``on_reading`` returns ``False`` (consumer gone)
        or raises.
        """
        stop = threading.Event()
        lock = threading.Lock()
        handle = CancelHandle(stop, lock)
        thread = threading.Thread(
            target=self._run,
            args=(on_reading, stop, lock),
            name=f"{self.name}-generator",
            daemon=True,
        )
        handle.attach(thread)
        thread.start()
        return handle

    def _run(self, on_reading: ReadingCallback, stop: threading.Event, lock: threading.Lock) -> None:
        started = time.monotonic()
        while not stop.is_set():
            reading = self.reading(datetime.now(timezone.utc), time.monotonic() - started)
            with lock:
                if stop.is_set():
                    break
                try:
                    keep_going = on_reading(reading)
                except Exception:  # noqa: BLE001 - consumer failures end this loop only
                    logger.exception("Reading consumer failed", extra={"service": self.name})
                    stop.set()
                    break
                if keep_going is False:
                    stop.set()
                    break
            stop.wait(self.period)
        logger.debug("Generator loop stopped", extra={"service": self.name})


class ClimateGenerator(TelemetryGenerator):
    """Temperature around the shared target set-point."""

    name = "climate"

    def __init__(
        self,
        set_point: SetPoint,
        period: float = 1.0,
        noise_sigma: float = 0.5,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(period, rng)
        self.set_point = set_point
        self.noise_sigma = noise_sigma

    def value(self, elapsed: float = 0.0) -> float:
        return self.set_point.get() + self._rng.gauss(0.0, self.noise_sigma)


class SolarGenerator(TelemetryGenerator):
    """Output in kW following a sine wave over elapsed time."""

    name = "solar"

    def __init__(
        self,
        period: float = 1.0,
        base_kw: float = 4.0,
        noise_sigma: float = 0.2,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(period, rng)
        self.base_kw = base_kw
        self.noise_sigma = noise_sigma

    def value(self, elapsed: float = 0.0) -> float:
        return self.base_kw + math.sin(elapsed) + self._rng.gauss(0.0, self.noise_sigma)


class LightingGenerator(TelemetryGenerator):
    name = "lighting"

    def __init__(
        self,
        desired_level: SetPoint,
        policy: LightingPolicy,
        period: float = 5.0,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(period, rng)
        self.desired_level = desired_level
        self.policy = policy

    def lux(self, occupied: bool) -> float:
        spread = self.policy.ambient_noise_spread
        base = (
            self.desired_level.get()
            * self.policy.factor(occupied)
            / 100.0
            * self.policy.lux_ceiling
        )
        return max(0.0, base + self._rng.uniform(-spread, spread))

    def value(self, elapsed: float = 0.0) -> float:
        return self.lux(occupied=False)

    def reading(self, timestamp: datetime, elapsed: float) -> Reading:
        occupied = self._rng.random() < 0.5
        return Reading(timestamp=timestamp, value=self.lux(occupied), occupied=occupied)
