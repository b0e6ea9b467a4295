"""Per-message decision functions for the bidirectional calls."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional

from models.records import LightingPolicy, TradePolicy
from services.errors import ValidationError


@dataclass(frozen=True, slots=True)
class TradeDecision:
    accepted: bool
    agreed_price: float = 0.0
    counter_offer: float = 0.0


class TradeNegotiator:
    """Accepts offers at or below the counter-offer price, counters the rest."""

    def __init__(self, policy: TradePolicy) -> None:
        self.policy = policy

    def decide(self, price: float) -> TradeDecision:
        if price < 0:
            raise ValidationError(f"Price {price} must not be negative.")
        if price <= self.policy.counter_offer_price:
            return TradeDecision(accepted=True, agreed_price=price)
        return TradeDecision(accepted=False, counter_offer=self.policy.counter_offer_price)


class BrightnessNegotiator:
    def __init__(self, policy: LightingPolicy, rng: Optional[random.Random] = None) -> None:
        self.policy = policy
        self._rng = rng or random.Random()

    def lux_for(self, desired_level: float, occupied: bool) -> float:
        if not 0.0 <= desired_level <= 100.0:
            raise ValidationError(f"Desired level {desired_level} must be within 0-100.")
        base = desired_level * self.policy.factor(occupied) / 100.0 * self.policy.lux_ceiling
        return base + self._rng.gauss(0.0, self.policy.adjust_noise_sigma)
