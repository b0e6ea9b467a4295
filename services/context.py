"""Process-scoped state handed to every servicer."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Optional

from models.records import LightingPolicy, SetPoint, TradePolicy
from services.aggregator import AveragingAggregator, EnergyAggregator
from services.generators import ClimateGenerator, LightingGenerator, SolarGenerator
from services.negotiation import BrightnessNegotiator, TradeNegotiator
from settings import Settings, get_settings


@dataclass
class ServiceContext:
    """Set-points, policies and factories for one service process.

    Set-points are the only state shared across concurrent calls. Aggregators
    and generators are created fresh for every call.
    """

    settings: Settings
    target_temperature: SetPoint
    lighting_level: SetPoint
    trade_policy: TradePolicy = field(default_factory=TradePolicy)
    lighting_policy: LightingPolicy = field(default_factory=LightingPolicy)
    rng: random.Random = field(default_factory=random.Random)

    def climate_generator(self) -> ClimateGenerator:
        return ClimateGenerator(self.target_temperature, rng=self.call_rng())

    def solar_generator(self) -> SolarGenerator:
        return SolarGenerator(period=self.settings.solar_tick_seconds, rng=self.call_rng())

    def lighting_generator(self) -> LightingGenerator:
        return LightingGenerator(
            self.lighting_level,
            self.lighting_policy,
            period=self.settings.ambient_tick_seconds,
            rng=self.call_rng(),
        )

    def averaging_aggregator(self) -> AveragingAggregator:
        return AveragingAggregator()

    def energy_aggregator(self) -> EnergyAggregator:
        return EnergyAggregator(rng=self.call_rng())

    def trade_negotiator(self) -> TradeNegotiator:
        return TradeNegotiator(self.trade_policy)

    def brightness_negotiator(self) -> BrightnessNegotiator:
        return BrightnessNegotiator(self.lighting_policy, rng=self.call_rng())

    def call_rng(self) -> random.Random:
        # One stream per call: gauss() keeps per-instance state.
        return random.Random(self.rng.getrandbits(64))


def build_context(settings: Optional[Settings] = None, seed: Optional[int] = None) -> ServiceContext:
    resolved = settings or get_settings()
    return ServiceContext(
        settings=resolved,
        target_temperature=SetPoint(resolved.climate_default_target),
        lighting_level=SetPoint(resolved.lighting_default_level),
        rng=random.Random(seed),
    )
