"""Connection to one service endpoint."""

from __future__ import annotations

import logging
import time
from threading import Lock
from typing import TYPE_CHECKING, Any, Dict, Optional

import grpc

from models.records import Endpoint
from rpc.methods import RpcMethod
from services.errors import TransportError

if TYPE_CHECKING:
    from rpc.bridge import PendingCall

logger = logging.getLogger(__name__)


class ServiceChannel:
    """Lazily opened gRPC channel that tracks in-flight bridged calls.

    ``close`` waits up to ``grace`` seconds for tracked calls to resolve and
    then closes the channel, abandoning whatever is still running.
    """

    def __init__(self, endpoint: Endpoint, grace: float = 5.0) -> None:
        self.endpoint = endpoint
        self.grace = grace
        self._channel: Optional[grpc.Channel] = None
        self._pending: Dict[int, PendingCall] = {}
        self._lock = Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> grpc.Channel:
        with self._lock:
            if self._closed:
                raise TransportError(f"Channel to {self.endpoint.target} is closed.")
            if self._channel is None:
                self._channel = grpc.insecure_channel(self.endpoint.target)
                logger.debug(
                    "Opened channel",
                    extra={
                        "service": self.endpoint.service_name,
                        "host": self.endpoint.host,
                        "port": self.endpoint.port,
                    },
                )
            return self._channel

    def bind(self, method: RpcMethod) -> Any:
        return method.bind(self.open())

    def track(self, pending: PendingCall) -> None:
        key = id(pending)
        with self._lock:
            self._pending[key] = pending
        pending.add_done_callback(lambda _p, k=key: self._clear_pending(k))

    def in_flight(self) -> int:
        with self._lock:
            return len(self._pending)

    def close(self, grace: Optional[float] = None) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pending = list(self._pending.values())
            channel = self._channel
            self._channel = None

        deadline = time.monotonic() + (self.grace if grace is None else grace)
        for call in pending:
            remaining = deadline - time.monotonic()
            if remaining <= 0 or not call.join(remaining):
                logger.warning(
                    "Abandoning in-flight call on shutdown",
                    extra={"service": self.endpoint.service_name, "rpc": call.name, "state": call.state.value},
                )
        if channel is not None:
            channel.close()

    def _clear_pending(self, key: int) -> None:
        with self._lock:
            self._pending.pop(key, None)
