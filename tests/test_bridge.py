from __future__ import annotations

import threading
import time
from typing import Any, Callable, Iterable, Iterator, List, Optional

import grpc
import pytest

from models.records import Endpoint
from rpc import methods
from rpc.bridge import CallState, LiveStream, PendingCall, SyncBridge, classify_rpc_error
from rpc.channel import ServiceChannel
from services.errors import AggregationError, CallTimeoutError, TransportError, ValidationError


class FakeRpcError(grpc.RpcError):
    def __init__(self, code: grpc.StatusCode, details: str = "") -> None:
        super().__init__(details)
        self._code = code
        self._details = details

    def code(self) -> grpc.StatusCode:
        return self._code

    def details(self) -> str:
        return self._details


class FakeFuture:
    """Future that resolves only when the test says so."""

    def __init__(self) -> None:
        self._callbacks: List[Callable[[FakeFuture], None]] = []
        self._result: Any = None
        self._exception: Optional[BaseException] = None

    def add_done_callback(self, callback: Callable[[FakeFuture], None]) -> None:
        self._callbacks.append(callback)

    def cancelled(self) -> bool:
        return False

    def exception(self) -> Optional[BaseException]:
        return self._exception

    def result(self) -> Any:
        return self._result

    def resolve(self, result: Any = None, exception: Optional[BaseException] = None) -> None:
        self._result = result
        self._exception = exception
        for callback in self._callbacks:
            callback(self)


class FakeMultiCallable:
    def __init__(self, behavior: Callable[..., Any], future: Optional[FakeFuture] = None) -> None:
        self._behavior = behavior
        self._future = future
        self.consumed: List[Any] = []

    def __call__(self, request: Any, timeout: Optional[float] = None) -> Any:
        return self._behavior(request)

    def future(self, request_iterator: Iterable[Any]) -> FakeFuture:
        self.consumed.extend(request_iterator)
        assert self._future is not None
        return self._future


class FakeChannel:
    def __init__(self, callable_: FakeMultiCallable) -> None:
        self._callable = callable_
        self.tracked: List[PendingCall] = []

    def bind(self, method: methods.RpcMethod) -> FakeMultiCallable:
        return self._callable

    def track(self, pending: PendingCall) -> None:
        self.tracked.append(pending)


class FakeStreamCall:
    def __init__(self, items: Iterable[Any], block: Optional[threading.Event] = None) -> None:
        self._items = list(items)
        self._block = block
        self.cancelled = False

    def __iter__(self) -> Iterator[Any]:
        for item in self._items:
            yield item
        if self._block is not None:
            self._block.wait(2.0)
            raise FakeRpcError(grpc.StatusCode.CANCELLED, "cancelled")

    def cancel(self) -> None:
        self.cancelled = True
        if self._block is not None:
            self._block.set()


@pytest.mark.parametrize(
    "code, expected",
    [
        (grpc.StatusCode.DEADLINE_EXCEEDED, CallTimeoutError),
        (grpc.StatusCode.FAILED_PRECONDITION, AggregationError),
        (grpc.StatusCode.INVALID_ARGUMENT, ValidationError),
        (grpc.StatusCode.UNAVAILABLE, TransportError),
    ],
)
def test_classify_rpc_error(code: grpc.StatusCode, expected: type) -> None:
    error = classify_rpc_error(FakeRpcError(code, "detail text"))

    assert isinstance(error, expected)
    assert str(error) == "detail text"


def test_unary_success() -> None:
    bridge = SyncBridge(FakeChannel(FakeMultiCallable(lambda request: f"echo:{request}")))

    result = bridge.unary(methods.GET_DAILY_YIELD, "ping", timeout=1.0)

    assert result.ok is True
    assert result.state is CallState.completed
    assert result.value == "echo:ping"
    assert result.error is None


def test_unary_connection_refused_is_transport_error() -> None:
    def refuse(request: Any) -> Any:
        raise FakeRpcError(grpc.StatusCode.UNAVAILABLE, "connection refused")

    result = SyncBridge(FakeChannel(FakeMultiCallable(refuse))).unary(
        methods.GET_DAILY_YIELD, "ping", timeout=1.0
    )

    assert result.ok is False
    assert result.state is CallState.failed
    assert isinstance(result.error, TransportError)


def test_unary_deadline_is_timed_out() -> None:
    def expire(request: Any) -> Any:
        raise FakeRpcError(grpc.StatusCode.DEADLINE_EXCEEDED, "deadline")

    result = SyncBridge(FakeChannel(FakeMultiCallable(expire))).unary(
        methods.GET_DAILY_YIELD, "ping", timeout=1.0
    )

    assert result.state is CallState.timed_out
    assert isinstance(result.error, CallTimeoutError)


def test_client_stream_returns_within_timeout_when_server_never_answers() -> None:
    future = FakeFuture()
    channel = FakeChannel(FakeMultiCallable(lambda request: None, future=future))
    bridge = SyncBridge(channel)

    started = time.monotonic()
    result = bridge.client_stream(methods.GET_AVERAGE_TEMPERATURE, [1, 2, 3], timeout=0.2)
    elapsed = time.monotonic() - started

    assert elapsed < 0.2 + 0.5
    assert result.ok is False
    assert result.state is CallState.timed_out
    assert result.value is None
    assert isinstance(result.error, CallTimeoutError)

    future.resolve(result="late answer")
    pending = channel.tracked[0]
    assert pending.late is True
    assert pending.state is CallState.timed_out
    assert result.value is None


def test_client_stream_success_feeds_every_input() -> None:
    future = FakeFuture()
    callable_ = FakeMultiCallable(lambda request: None, future=future)
    bridge = SyncBridge(FakeChannel(callable_))
    threading.Timer(0.05, future.resolve, kwargs={"result": "done"}).start()

    result = bridge.client_stream(methods.GET_AVERAGE_TEMPERATURE, iter([1, 2, 3]), timeout=2.0)

    assert result.ok is True
    assert result.value == "done"
    assert callable_.consumed == [1, 2, 3]


def test_client_stream_failed_precondition_is_aggregation_error() -> None:
    future = FakeFuture()
    bridge = SyncBridge(FakeChannel(FakeMultiCallable(lambda request: None, future=future)))
    threading.Timer(
        0.05,
        future.resolve,
        kwargs={"exception": FakeRpcError(grpc.StatusCode.FAILED_PRECONDITION, "no readings")},
    ).start()

    result = bridge.client_stream(methods.GET_AVERAGE_TEMPERATURE, [], timeout=2.0)

    assert result.ok is False
    assert result.state is CallState.failed
    assert isinstance(result.error, AggregationError)


def test_bidi_collects_one_response_per_input() -> None:
    def respond(inputs: Iterable[int]) -> Iterator[int]:
        for value in inputs:
            yield value * 10

    bridge = SyncBridge(FakeChannel(FakeMultiCallable(respond)))

    result = bridge.bidi(methods.ENERGY_TRADE_NEGOTIATION, [1, 2, 3], timeout=2.0)

    assert result.ok is True
    assert result.value == [10, 20, 30]


def test_server_stream_failure_keeps_partial_responses() -> None:
    def broken(request: Any) -> Iterator[str]:
        yield "first"
        raise FakeRpcError(grpc.StatusCode.UNAVAILABLE, "peer gone")

    result = SyncBridge(FakeChannel(FakeMultiCallable(broken))).server_stream(
        methods.STREAM_TEMPERATURE_HISTORY, "req", timeout=2.0
    )

    assert result.ok is False
    assert result.state is CallState.failed
    assert result.value == ["first"]
    assert isinstance(result.error, TransportError)


def test_pending_call_state_machine() -> None:
    pending = PendingCall("Example")
    assert pending.state is CallState.idle

    pending.begin_sending()
    assert pending.state is CallState.sending
    pending.finish_sending()
    assert pending.state is CallState.awaiting_completion

    pending.on_next("value")
    pending.on_completed()
    result = pending.wait(0.1)

    assert result.state is CallState.completed
    assert result.ok is True
    assert result.value == "value"


def test_pending_call_completed_without_response_is_not_ok() -> None:
    pending = PendingCall("Example")
    pending.on_completed()

    result = pending.wait(0.1)

    assert result.ok is False
    assert isinstance(result.error, TransportError)


def test_collected_snapshot_is_a_copy() -> None:
    pending = PendingCall("Example", default=[], collect=True)
    pending.on_next(1)
    pending.on_completed()

    result = pending.wait(0.1)
    result.value.append(2)

    assert pending.wait(0.1).value == [1]


def test_error_after_completion_is_ignored() -> None:
    pending = PendingCall("Example")
    pending.on_next("value")
    pending.on_completed()
    pending.on_error(TransportError("too late"))

    result = pending.wait(0.1)

    assert result.ok is True
    assert result.error is None


def test_live_stream_take_and_cancel() -> None:
    call = FakeStreamCall(["a", "b", "c"], block=threading.Event())
    stream = LiveStream("Live", call)

    result = stream.take(2, timeout=1.0)
    stream.cancel()

    assert result.ok is True
    assert result.value == ["a", "b"]
    assert call.cancelled is True


def test_live_stream_take_times_out_with_partial_readings() -> None:
    call = FakeStreamCall(["a"], block=threading.Event())

    with LiveStream("Live", call) as stream:
        result = stream.take(5, timeout=0.1)

    assert result.state is CallState.timed_out
    assert result.value == ["a"]
    assert call.cancelled is True


def test_channel_close_abandons_unfinished_calls() -> None:
    channel = ServiceChannel(Endpoint("Svc", "localhost", 1), grace=0.05)
    finished = PendingCall("Finished")
    stuck = PendingCall("Stuck")
    channel.track(finished)
    channel.track(stuck)
    finished.on_next("x")
    finished.on_completed()

    assert channel.in_flight() == 1
    started = time.monotonic()
    channel.close()

    assert time.monotonic() - started < 1.0
    assert channel.closed is True
    with pytest.raises(TransportError):
        channel.open()


def test_late_completion_releases_tracking_after_timeout() -> None:
    channel = ServiceChannel(Endpoint("Svc", "localhost", 1), grace=1.0)
    pending = PendingCall("Slow")
    channel.track(pending)

    result = pending.wait(0.05)
    pending.on_next("late")
    pending.on_completed()

    assert result.state is CallState.timed_out
    assert pending.late is True
    assert pending.state is CallState.timed_out
    assert pending.wait(0.01).value is None
    assert channel.in_flight() == 0
    started = time.monotonic()
    channel.close()
    assert time.monotonic() - started < 0.5


def test_late_error_releases_tracking_after_timeout() -> None:
    channel = ServiceChannel(Endpoint("Svc", "localhost", 1), grace=1.0)
    pending = PendingCall("Slow", default=[], collect=True)
    channel.track(pending)
    pending.wait(0.05)

    pending.on_error(TransportError("gone"))

    assert pending.late is True
    assert isinstance(pending.wait(0.01).error, CallTimeoutError)
    assert channel.in_flight() == 0


class SlowStreamCall:
    """Yields 1, 2, 3... after ``delay`` seconds each until cancelled."""

    def __init__(self, delay: float) -> None:
        self._delay = delay
        self._stop = threading.Event()

    def __iter__(self) -> Iterator[int]:
        sequence = 0
        while not self._stop.wait(self._delay):
            sequence += 1
            yield sequence
        raise FakeRpcError(grpc.StatusCode.CANCELLED, "cancelled")

    def cancel(self) -> None:
        self._stop.set()


def test_live_stream_keeps_messages_across_timed_out_take() -> None:
    with LiveStream("Live", SlowStreamCall(delay=0.2)) as stream:
        first = stream.take(1, timeout=0.05)
        second = stream.take(1, timeout=2.0)
        third = stream.take(1, timeout=2.0)

    assert first.state is CallState.timed_out
    assert first.value == []
    assert second.ok is True
    assert second.value == [1]
    assert third.value == [2]


def test_live_stream_reports_server_error() -> None:
    class FailingCall(FakeStreamCall):
        def __iter__(self) -> Iterator[Any]:
            yield "a"
            raise FakeRpcError(grpc.StatusCode.UNAVAILABLE, "server went away")

    with LiveStream("Live", FailingCall([])) as stream:
        result = stream.take(3, timeout=1.0)

    assert result.ok is False
    assert result.state is CallState.failed
    assert result.value == ["a"]
    assert isinstance(result.error, TransportError)


def _closed_bridge() -> SyncBridge:
    channel = ServiceChannel(Endpoint("Svc", "localhost", 1), grace=0.05)
    channel.close()
    return SyncBridge(channel)


@pytest.mark.parametrize(
    "invoke, expected_value",
    [
        (lambda bridge: bridge.unary(methods.GET_DAILY_YIELD, None, timeout=0.5), None),
        (lambda bridge: bridge.server_stream(methods.STREAM_TEMPERATURE_HISTORY, None, timeout=0.5), []),
        (lambda bridge: bridge.client_stream(methods.GET_AVERAGE_TEMPERATURE, [], timeout=0.5), None),
        (lambda bridge: bridge.bidi(methods.ENERGY_TRADE_NEGOTIATION, [], timeout=0.5), []),
    ],
)
def test_closed_channel_reports_transport_failure(invoke: Callable[[SyncBridge], Any], expected_value: Any) -> None:
    result = invoke(_closed_bridge())

    assert result.ok is False
    assert result.state is CallState.failed
    assert result.value == expected_value
    assert isinstance(result.error, TransportError)


def test_closed_channel_subscription_is_already_failed() -> None:
    with _closed_bridge().subscribe(methods.STREAM_REAL_TIME_OUTPUT, None) as stream:
        result = stream.take(2, timeout=0.5)

    assert result.ok is False
    assert result.value == []
    assert isinstance(result.error, TransportError)
    assert list(stream) == []
