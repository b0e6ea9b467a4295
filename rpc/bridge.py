"""Blocking adapters over asynchronous gRPC calls.

A :class:`PendingCall` is the rendezvous between transport callbacks and the
caller thread: callbacks write the result/error slots and set the completion
event; the caller waits on that event with a hard timeout. A timed-out call is
not cancelled; a late completion only releases the call's trackers, so the
value already handed back never changes.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from queue import Empty, Queue
from typing import Any, Callable, Iterable, Iterator, List, Optional

import grpc

from rpc.channel import ServiceChannel
from rpc.methods import RpcMethod
from services.errors import (
    AggregationError,
    CallTimeoutError,
    TelemetryError,
    TransportError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class CallState(str, Enum):
    idle = "idle"
    sending = "sending"
    awaiting_completion = "awaiting_completion"
    completed = "completed"
    timed_out = "timed_out"
    failed = "failed"


_TERMINAL_STATES = {CallState.completed, CallState.timed_out, CallState.failed}


@dataclass(frozen=True)
class CallResult:
    """Outcome of one call: best-effort ``value`` plus a definite ``ok`` flag."""

    value: Any
    ok: bool
    state: CallState
    error: Optional[TelemetryError] = None


def classify_rpc_error(exc: BaseException) -> TelemetryError:
    code_getter = getattr(exc, "code", None)
    code = code_getter() if callable(code_getter) else None
    details_getter = getattr(exc, "details", None)
    details = details_getter() if callable(details_getter) else None
    message = details or str(exc) or type(exc).__name__

    if code == grpc.StatusCode.DEADLINE_EXCEEDED:
        return CallTimeoutError(message)
    if code == grpc.StatusCode.FAILED_PRECONDITION:
        return AggregationError(message)
    if code == grpc.StatusCode.INVALID_ARGUMENT:
        return ValidationError(message)
    return TransportError(message)


class PendingCall:
    """Completion signal plus result and error slots for one call."""

    def __init__(self, name: str, default: Any = None, collect: bool = False) -> None:
        self.name = name
        self._default = default
        self._collect = collect
        self._result: Any = default
        self._result_set = False
        self._responses: List[Any] = []
        self._error: Optional[TelemetryError] = None
        self._state = CallState.idle
        self._late = False
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[PendingCall], None]] = []

    @property
    def state(self) -> CallState:
        with self._lock:
            return self._state

    @property
    def late(self) -> bool:
        """True when transport callbacks arrived after the caller timed out."""
        with self._lock:
            return self._late

    def add_done_callback(self, callback: Callable[[PendingCall], None]) -> None:
        with self._lock:
            if not self._done.is_set():
                self._callbacks.append(callback)
                return
        callback(self)

    def begin_sending(self) -> None:
        with self._lock:
            if self._state is CallState.idle:
                self._state = CallState.sending

    def finish_sending(self) -> None:
        with self._lock:
            if self._state in (CallState.idle, CallState.sending):
                self._state = CallState.awaiting_completion

    def on_next(self, message: Any) -> None:
        with self._lock:
            if self._ignore_late("message"):
                return
            if self._collect:
                self._responses.append(message)
                return
            if self._result_set:
                logger.warning("Ignoring extra response", extra={"rpc": self.name})
                return
            self._result = message
            self._result_set = True

    def on_error(self, error: TelemetryError) -> None:
        with self._lock:
            if self._state is CallState.timed_out:
                callbacks = self._settle_late("error")
            elif self._ignore_late("error"):
                return
            else:
                self._error = error
                self._state = CallState.failed
                self._done.set()
                callbacks = self._take_callbacks()
                logger.warning("Call failed", extra={"rpc": self.name, "reason": str(error)})
        self._run_callbacks(callbacks)

    def on_completed(self) -> None:
        with self._lock:
            if self._state is CallState.timed_out:
                callbacks = self._settle_late("completion")
            elif self._ignore_late("completion"):
                return
            else:
                self._state = CallState.completed
                self._done.set()
                callbacks = self._take_callbacks()
        self._run_callbacks(callbacks)

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the transport to resolve the call without changing state."""
        return self._done.wait(timeout)

    def wait(self, timeout: float) -> CallResult:
        """Block until completion or ``timeout`` and snapshot the outcome."""
        finished = self._done.wait(timeout)
        with self._lock:
            if not finished and not self._done.is_set():
                self._state = CallState.timed_out
                self._error = CallTimeoutError(f"{self.name} did not complete within {timeout}s")
                timed_out = True
            else:
                timed_out = False
            result = self._snapshot()
        if timed_out:
            logger.warning(
                "Call timed out; leaving the underlying call running",
                extra={"rpc": self.name, "timeout_s": timeout},
            )
        return result

    def _snapshot(self) -> CallResult:
        if self._collect:
            value: Any = list(self._responses)
        elif self._state is CallState.completed and self._result_set:
            value = self._result
        else:
            value = self._default
        ok = self._state is CallState.completed and (self._collect or self._result_set)
        error = self._error
        if self._state is CallState.completed and not ok:
            error = TransportError(f"{self.name} completed without a response")
        return CallResult(value=value, ok=ok, state=self._state, error=error)

    def _ignore_late(self, kind: str) -> bool:
        if self._state is CallState.timed_out:
            self._late = True
            logger.debug("Late %s ignored after timeout", kind, extra={"rpc": self.name})
            return True
        if self._state in _TERMINAL_STATES:
            logger.debug("Duplicate %s ignored", kind, extra={"rpc": self.name, "state": self._state.value})
            return True
        return False

    def _settle_late(self, kind: str) -> List[Callable[[PendingCall], None]]:
        # Releases waiters and trackers only; state, result and error stay as handed back.
        self._late = True
        logger.debug("Late %s observed after timeout", kind, extra={"rpc": self.name})
        self._done.set()
        return self._take_callbacks()

    def _take_callbacks(self) -> List[Callable[[PendingCall], None]]:
        callbacks, self._callbacks = self._callbacks, []
        return callbacks

    def _run_callbacks(self, callbacks: List[Callable[[PendingCall], None]]) -> None:
        for callback in callbacks:
            callback(self)


def _feed(inputs: Iterable[Any], pending: PendingCall) -> Iterator[Any]:
    for message in inputs:
        yield message
    pending.finish_sending()


def _drain(responses: Iterable[Any], pending: PendingCall) -> None:
    try:
        for message in responses:
            pending.on_next(message)
    except grpc.RpcError as exc:
        pending.on_error(classify_rpc_error(exc))
    else:
        pending.on_completed()


def _resolve_future(pending: PendingCall, future: grpc.Future) -> None:
    if future.cancelled():
        pending.on_error(TransportError(f"{pending.name} was cancelled"))
        return
    exc = future.exception()
    if exc is not None:
        pending.on_error(classify_rpc_error(exc))
        return
    pending.on_next(future.result())
    pending.on_completed()


def _start_reader(name: str, responses: Iterable[Any], pending: PendingCall) -> None:
    reader = threading.Thread(target=_drain, args=(responses, pending), name=f"{name}-reader", daemon=True)
    reader.start()


class SyncBridge:
    """Exposes every call shape of one channel as a blocking call with timeout."""

    def __init__(self, channel: ServiceChannel) -> None:
        self._channel = channel

    def unary(self, method: RpcMethod, request: Any, timeout: float) -> CallResult:
        try:
            response = self._channel.bind(method)(request, timeout=timeout)
        except TransportError as exc:
            return _unavailable(method, exc, None)
        except grpc.RpcError as exc:
            error = classify_rpc_error(exc)
            state = CallState.timed_out if isinstance(error, CallTimeoutError) else CallState.failed
            logger.warning("Call failed", extra={"rpc": method.name, "state": state.value, "reason": str(error)})
            return CallResult(value=None, ok=False, state=state, error=error)
        return CallResult(value=response, ok=True, state=CallState.completed)

    def server_stream(self, method: RpcMethod, request: Any, timeout: float) -> CallResult:
        """Collect a finite server stream (e.g. history replay)."""
        pending = PendingCall(method.name, default=[], collect=True)
        pending.begin_sending()
        try:
            responses = self._channel.bind(method)(request)
        except TransportError as exc:
            return _unavailable(method, exc, [])
        pending.finish_sending()
        self._channel.track(pending)
        _start_reader(method.name, responses, pending)
        return pending.wait(timeout)

    def client_stream(
        self,
        method: RpcMethod,
        inputs: Iterable[Any],
        timeout: float,
        default: Any = None,
    ) -> CallResult:
        pending = PendingCall(method.name, default=default)
        pending.begin_sending()
        try:
            future = self._channel.bind(method).future(_feed(inputs, pending))
        except TransportError as exc:
            return _unavailable(method, exc, default)
        self._channel.track(pending)
        future.add_done_callback(lambda f: _resolve_future(pending, f))
        return pending.wait(timeout)

    def bidi(self, method: RpcMethod, inputs: Iterable[Any], timeout: float) -> CallResult:
        pending = PendingCall(method.name, default=[], collect=True)
        pending.begin_sending()
        try:
            responses = self._channel.bind(method)(_feed(inputs, pending))
        except TransportError as exc:
            return _unavailable(method, exc, [])
        self._channel.track(pending)
        _start_reader(method.name, responses, pending)
        return pending.wait(timeout)

    def subscribe(self, method: RpcMethod, request: Any) -> LiveStream:
        try:
            call = self._channel.bind(method)(request)
        except TransportError as exc:
            logger.warning("Stream not opened", extra={"rpc": method.name, "reason": str(exc)})
            return LiveStream(method.name, None, error=exc)
        return LiveStream(method.name, call)


def _unavailable(method: RpcMethod, error: TransportError, default: Any) -> CallResult:
    logger.warning("Call not sent", extra={"rpc": method.name, "reason": str(error)})
    return CallResult(value=default, ok=False, state=CallState.failed, error=error)


_END = object()


class LiveStream:
    """Open-ended server stream; cancelling it ends the server's generator.

    One reader thread drains the call into a queue for the stream's lifetime,
    so messages that arrive after a ``take`` gave up wait for the next one.
    """

    def __init__(self, name: str, call: Any, error: Optional[TelemetryError] = None) -> None:
        self.name = name
        self._call = call
        self._cancelled = False
        self._ended = call is None
        self.error = error
        self._buffer: Queue = Queue()
        self._reader: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def __enter__(self) -> LiveStream:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.cancel()

    def __iter__(self) -> Iterator[Any]:
        self._ensure_reader()
        while not self._ended:
            message = self._buffer.get()
            if message is _END:
                self._ended = True
                return
            yield message

    def take(self, count: int, timeout: float) -> CallResult:
        """Collect up to ``count`` messages, waiting at most ``timeout`` seconds."""
        received: List[Any] = []
        if count <= 0:
            return CallResult(value=received, ok=True, state=CallState.completed)
        self._ensure_reader()
        deadline = time.monotonic() + timeout
        while len(received) < count and not self._ended:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                message = self._buffer.get(timeout=remaining)
            except Empty:
                break
            if message is _END:
                self._ended = True
                break
            received.append(message)
        if len(received) >= count:
            return CallResult(value=received, ok=True, state=CallState.completed)
        if self._ended:
            if self.error is not None:
                return CallResult(value=received, ok=False, state=CallState.failed, error=self.error)
            return CallResult(value=received, ok=True, state=CallState.completed)
        logger.warning(
            "Stream take timed out; stream stays open",
            extra={"rpc": self.name, "timeout_s": timeout, "received": len(received)},
        )
        error = CallTimeoutError(f"{self.name} delivered {len(received)}/{count} messages within {timeout}s")
        return CallResult(value=received, ok=False, state=CallState.timed_out, error=error)

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._call is not None:
            self._call.cancel()

    def _ensure_reader(self) -> None:
        with self._lock:
            if self._reader is not None or self._call is None:
                return
            self._reader = threading.Thread(target=self._read, name=f"{self.name}-reader", daemon=True)
            self._reader.start()

    def _read(self) -> None:
        try:
            for message in self._call:
                self._buffer.put(message)
        except grpc.RpcError as exc:
            if not self._cancelled:
                self.error = classify_rpc_error(exc)
                logger.warning("Stream ended with error", extra={"rpc": self.name, "reason": str(self.error)})
        finally:
            self._buffer.put(_END)
