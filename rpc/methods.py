"""Method registry shared by servers and clients.

Every RPC is declared once as an :class:`RpcMethod`; the same declaration
builds the server-side handler and the client-side multi-callable, so both ends
agree on path, call shape and codec.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Type

import grpc

from models import messages as m
from models.records import CLIMATE, LIGHTING, SOLAR, ServiceDescriptor


class CallShape(str, Enum):
    unary_unary = "unary_unary"
    unary_stream = "unary_stream"
    stream_unary = "stream_unary"
    stream_stream = "stream_stream"


def encode(message: m.WireMessage) -> bytes:
    return message.model_dump_json().encode("utf-8")


def decoder(model: Type[m.WireMessage]) -> Callable[[bytes], m.WireMessage]:
    def decode(payload: bytes) -> m.WireMessage:
        return model.model_validate_json(payload)

    return decode


_HANDLER_FACTORIES = {
    CallShape.unary_unary: grpc.unary_unary_rpc_method_handler,
    CallShape.unary_stream: grpc.unary_stream_rpc_method_handler,
    CallShape.stream_unary: grpc.stream_unary_rpc_method_handler,
    CallShape.stream_stream: grpc.stream_stream_rpc_method_handler,
}


@dataclass(frozen=True)
class RpcMethod:
    service: str
    name: str
    shape: CallShape
    request_type: Type[m.WireMessage]
    response_type: Type[m.WireMessage]

    @property
    def path(self) -> str:
        return f"/{self.service}/{self.name}"

    def handler(self, behavior: Callable[..., Any]) -> grpc.RpcMethodHandler:
        factory = _HANDLER_FACTORIES[self.shape]
        return factory(
            behavior,
            request_deserializer=decoder(self.request_type),
            response_serializer=encode,
        )

    def bind(self, channel: grpc.Channel) -> Any:
        opener = getattr(channel, self.shape.value)
        return opener(
            self.path,
            request_serializer=encode,
            response_deserializer=decoder(self.response_type),
        )


def _method(
    descriptor: ServiceDescriptor,
    name: str,
    shape: CallShape,
    request_type: Type[m.WireMessage],
    response_type: Type[m.WireMessage],
) -> RpcMethod:
    return RpcMethod(descriptor.rpc_service, name, shape, request_type, response_type)


SET_TARGET_TEMPERATURE = _method(
    CLIMATE, "SetTargetTemperature", CallShape.unary_unary,
    m.SetTargetTemperatureRequest, m.SetTargetTemperatureResponse,
)
STREAM_TEMPERATURE_HISTORY = _method(
    CLIMATE, "StreamTemperatureHistory", CallShape.unary_stream,
    m.GetTemperatureHistoryRequest, m.TemperatureReading,
)
GET_AVERAGE_TEMPERATURE = _method(
    CLIMATE, "GetAverageTemperature", CallShape.stream_unary,
    m.TemperatureReading, m.GetAverageTemperatureResponse,
)

GET_DAILY_YIELD = _method(
    SOLAR, "GetDailyYield", CallShape.unary_unary,
    m.GetDailyYieldRequest, m.GetDailyYieldResponse,
)
STREAM_REAL_TIME_OUTPUT = _method(
    SOLAR, "StreamRealTimeOutput", CallShape.unary_stream,
    m.Empty, m.RealTimeOutput,
)
ENERGY_TRADE_NEGOTIATION = _method(
    SOLAR, "EnergyTradeNegotiation", CallShape.stream_stream,
    m.TradeRequest, m.TradeResponse,
)

GET_CURRENT_BRIGHTNESS = _method(
    LIGHTING, "GetCurrentBrightness", CallShape.unary_unary,
    m.GetCurrentBrightnessRequest, m.GetCurrentBrightnessResponse,
)
STREAM_AMBIENT_LIGHT_DATA = _method(
    LIGHTING, "StreamAmbientLightData", CallShape.unary_stream,
    m.StreamAmbientLightDataRequest, m.AmbientLightReading,
)
UPLOAD_LIGHT_USAGE_STATS = _method(
    LIGHTING, "UploadLightUsageStats", CallShape.stream_unary,
    m.LightUsageStat, m.UploadLightUsageResponse,
)
ADJUST_BRIGHTNESS = _method(
    LIGHTING, "AdjustBrightness", CallShape.stream_stream,
    m.AdjustBrightnessRequest, m.AdjustBrightnessResponse,
)

SERVICE_METHODS: Dict[str, tuple[RpcMethod, ...]] = {
    CLIMATE.domain: (SET_TARGET_TEMPERATURE, STREAM_TEMPERATURE_HISTORY, GET_AVERAGE_TEMPERATURE),
    SOLAR.domain: (GET_DAILY_YIELD, STREAM_REAL_TIME_OUTPUT, ENERGY_TRADE_NEGOTIATION),
    LIGHTING.domain: (
        GET_CURRENT_BRIGHTNESS,
        STREAM_AMBIENT_LIGHT_DATA,
        UPLOAD_LIGHT_USAGE_STATS,
        ADJUST_BRIGHTNESS,
    ),
}


def generic_handler(
    descriptor: ServiceDescriptor,
    servicer: Any,
    methods: Iterable[RpcMethod] | None = None,
) -> grpc.GenericRpcHandler:
    """Bind ``servicer`` attributes named after each method to gRPC handlers."""
    selected = tuple(methods) if methods is not None else SERVICE_METHODS[descriptor.domain]
    handlers = {method.name: method.handler(getattr(servicer, method.name)) for method in selected}
    return grpc.method_handlers_generic_handler(descriptor.rpc_service, handlers)
