"""Thermostat service: set-point writes, history replay and stream averaging."""

from __future__ import annotations

import logging
from typing import Iterable, Iterator

import grpc

from models import messages as m
from services.context import ServiceContext
from services.errors import AggregationError, ValidationError

logger = logging.getLogger(__name__)

HISTORY_STEP_MS = 1_000


class ThermostatServicer:
    def __init__(self, context: ServiceContext) -> None:
        self._ctx = context

    def SetTargetTemperature(
        self, request: m.SetTargetTemperatureRequest, context: grpc.ServicerContext
    ) -> m.SetTargetTemperatureResponse:
        try:
            self._ctx.target_temperature.set(request.target_temp)
        except ValidationError as exc:
            context.abort(grpc.StatusCode.INVALID_ARGUMENT, str(exc))
        logger.info("Target temperature updated", extra={"rpc": "SetTargetTemperature"})
        return m.SetTargetTemperatureResponse(success=True)

    def StreamTemperatureHistory(
        self, request: m.GetTemperatureHistoryRequest, context: grpc.ServicerContext
    ) -> Iterator[m.TemperatureReading]:
        """Replay one reading per second between start and end, both inclusive."""
        if request.start_timestamp > request.end_timestamp:
            context.abort(
                grpc.StatusCode.INVALID_ARGUMENT,
                f"start {request.start_timestamp} is after end {request.end_timestamp}",
            )
        generator = self._ctx.climate_generator()
        for timestamp in range(request.start_timestamp, request.end_timestamp + 1, HISTORY_STEP_MS):
            if not context.is_active():
                return
            yield m.TemperatureReading(temperature=generator.value(), timestamp=timestamp)

    def GetAverageTemperature(
        self, request_iterator: Iterable[m.TemperatureReading], context: grpc.ServicerContext
    ) -> m.GetAverageTemperatureResponse:
        aggregator = self._ctx.averaging_aggregator()
        try:
            for reading in request_iterator:
                aggregator.on_message(reading.temperature)
        except grpc.RpcError as exc:
            aggregator.on_error(exc)
            logger.warning(
                "Reading stream aborted",
                extra={"rpc": "GetAverageTemperature", "sample_count": aggregator.count},
            )
            context.abort(grpc.StatusCode.CANCELLED, "reading stream aborted by peer")

        try:
            average = aggregator.on_complete()
        except AggregationError as exc:
            context.abort(grpc.StatusCode.FAILED_PRECONDITION, str(exc))
        return m.GetAverageTemperatureResponse(average_temp=average, sample_count=aggregator.count)
