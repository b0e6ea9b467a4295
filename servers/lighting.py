"""Smart lighting service: brightness, ambient light, usage upload and adjustment."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Iterator

import grpc

from models import messages as m
from models.records import Reading
from servers.streaming import pipe_generator
from services.context import ServiceContext
from services.errors import AggregationError, ValidationError

logger = logging.getLogger(__name__)


class LightingServicer:
    def __init__(self, context: ServiceContext) -> None:
        self._ctx = context

    def GetCurrentBrightness(
        self, request: m.GetCurrentBrightnessRequest, context: grpc.ServicerContext
    ) -> m.GetCurrentBrightnessResponse:
        level = self._ctx.call_rng().randint(0, 100)
        logger.info("Brightness requested", extra={"rpc": "GetCurrentBrightness", "zone": request.zone_id})
        return m.GetCurrentBrightnessResponse(level=level, timestamp=_now())

    def StreamAmbientLightData(
        self, request: m.StreamAmbientLightDataRequest, context: grpc.ServicerContext
    ) -> Iterator[m.AmbientLightReading]:
        logger.info("Ambient stream requested", extra={"rpc": "StreamAmbientLightData", "zone": request.zone_id})
        return pipe_generator(self._ctx.lighting_generator(), context, _to_ambient)

    def UploadLightUsageStats(
        self, request_iterator: Iterable[m.LightUsageStat], context: grpc.ServicerContext
    ) -> m.UploadLightUsageResponse:
        aggregator = self._ctx.energy_aggregator()
        try:
            for stat in request_iterator:
                aggregator.on_message(stat.duration_min, stat.average_level)
        except grpc.RpcError as exc:
            aggregator.on_error(exc)
            logger.warning("Usage stream aborted", extra={"rpc": "UploadLightUsageStats"})
            context.abort(grpc.StatusCode.CANCELLED, "usage stream aborted by peer")
        except ValidationError as exc:
            aggregator.on_error(exc)
            context.abort(grpc.StatusCode.INVALID_ARGUMENT, str(exc))

        try:
            total = aggregator.on_complete()
        except AggregationError as exc:
            context.abort(grpc.StatusCode.FAILED_PRECONDITION, str(exc))
        return m.UploadLightUsageResponse(total_energy_kw=total)

    def AdjustBrightness(
        self, request_iterator: Iterable[m.AdjustBrightnessRequest], context: grpc.ServicerContext
    ) -> Iterator[m.AdjustBrightnessResponse]:
        negotiator = self._ctx.brightness_negotiator()
        try:
            for request in request_iterator:
                lux = negotiator.lux_for(request.desired_level, request.occupied)
                yield m.AdjustBrightnessResponse(lux=lux, timestamp=request.timestamp)
        except grpc.RpcError:
            logger.warning("Brightness adjustment aborted by peer", extra={"rpc": "AdjustBrightness"})


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_ambient(reading: Reading) -> m.AmbientLightReading:
    return m.AmbientLightReading(
        lux=reading.value,
        occupied=bool(reading.occupied),
        timestamp=reading.timestamp.isoformat(),
    )
