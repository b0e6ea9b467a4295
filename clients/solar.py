"""Client for the solar panel service."""

from __future__ import annotations

from typing import Iterable, List

from clients.base import ServiceClient, build_message, parse_number
from models import messages as m
from models.records import SOLAR
from rpc import methods
from rpc.bridge import CallResult, LiveStream


class SolarClient(ServiceClient):
    descriptor = SOLAR

    def get_daily_yield(self, day: str) -> CallResult:
        request = build_message(m.GetDailyYieldRequest, date=day)
        return self.bridge.unary(methods.GET_DAILY_YIELD, request, self.settings.unary_timeout)

    def stream_real_time_output(self) -> LiveStream:
        """Open the live output stream; cancel it (or leave the ``with``) to stop."""
        return self.bridge.subscribe(methods.STREAM_REAL_TIME_OUTPUT, m.Empty())

    def negotiate_trades(self, offers: Iterable[m.TradeRequest]) -> CallResult:
        """One decision per offer; ``value`` holds the decisions received so far."""
        return self.bridge.bidi(
            methods.ENERGY_TRADE_NEGOTIATION, offers, self.settings.negotiation_timeout
        )


def trade_offers(prices: Iterable[float | str]) -> List[m.TradeRequest]:
    return [build_message(m.TradeRequest, price=parse_number(price, "Price")) for price in prices]
