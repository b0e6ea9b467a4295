"""Solar panel service: daily yield, live output and energy trade negotiation."""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Iterator

import grpc

from models import messages as m
from models.records import Reading
from servers.streaming import pipe_generator
from services.context import ServiceContext

logger = logging.getLogger(__name__)


class SolarServicer:
    def __init__(self, context: ServiceContext) -> None:
        self._ctx = context

    def GetDailyYield(
        self, request: m.GetDailyYieldRequest, context: grpc.ServicerContext
    ) -> m.GetDailyYieldResponse:
        try:
            date.fromisoformat(request.date.strip())
        except ValueError:
            context.abort(grpc.StatusCode.INVALID_ARGUMENT, f"invalid date {request.date!r}")

        rng = self._ctx.call_rng()
        peak = 5.0 + rng.gauss(0.0, 0.5)
        # Roughly six hours at peak output.
        total = peak * 6.0 + rng.gauss(0.0, 2.0)
        return m.GetDailyYieldResponse(yield_kw=total, peak=peak)

    def StreamRealTimeOutput(
        self, request: m.Empty, context: grpc.ServicerContext
    ) -> Iterator[m.RealTimeOutput]:
        return pipe_generator(self._ctx.solar_generator(), context, _to_output)

    def EnergyTradeNegotiation(
        self, request_iterator: Iterable[m.TradeRequest], context: grpc.ServicerContext
    ) -> Iterator[m.TradeResponse]:
        negotiator = self._ctx.trade_negotiator()
        try:
            for offer in request_iterator:
                decision = negotiator.decide(offer.price)
                yield m.TradeResponse(
                    accepted=decision.accepted,
                    agreed_price=decision.agreed_price,
                    counter_offer=decision.counter_offer,
                )
        except grpc.RpcError:
            logger.warning("Trade negotiation aborted by peer", extra={"rpc": "EnergyTradeNegotiation"})


def _to_output(reading: Reading) -> m.RealTimeOutput:
    return m.RealTimeOutput(current_kw=reading.value, timestamp=reading.timestamp.isoformat())
