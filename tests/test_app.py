from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Iterable, Iterator, List

import pytest
from fastapi.testclient import TestClient

from app.api import build_default_clients, get_clients
from app.main import create_app
from models import messages as m
from rpc.bridge import CallResult, CallState
from services.errors import AggregationError, CallTimeoutError, TransportError


def _ok(value: Any) -> CallResult:
    return CallResult(value=value, ok=True, state=CallState.completed)


def _failed(error: Exception, state: CallState = CallState.failed) -> CallResult:
    return CallResult(value=None, ok=False, state=state, error=error)


class StubClimate:
    def __init__(self) -> None:
        self.set_result = _ok(True)
        self.average_calls: List[int] = []

    def set_target(self, temperature: float) -> CallResult:
        return self.set_result

    def get_history(self, start: int, end: int) -> CallResult:
        return _ok([m.TemperatureReading(temperature=20.5, timestamp=ts) for ts in range(start, end + 1, 1000)])

    def get_average(self, readings: Iterable[m.TemperatureReading]) -> CallResult:
        materialized = list(readings)
        self.average_calls.append(len(materialized))
        if not materialized:
            return _failed(AggregationError("Average is undefined: no readings were received."))
        return _ok(sum(r.temperature for r in materialized) / len(materialized))


class StubSolar:
    def __init__(self) -> None:
        self.yield_result = _ok(m.GetDailyYieldResponse(yield_kw=31.0, peak=5.2))

    def get_daily_yield(self, day: str) -> CallResult:
        return self.yield_result

    def negotiate_trades(self, offers: Iterable[m.TradeRequest]) -> CallResult:
        return _ok(
            [
                m.TradeResponse(accepted=True, agreed_price=o.price)
                if o.price <= 0.40
                else m.TradeResponse(accepted=False, counter_offer=0.40)
                for o in offers
            ]
        )


class StubLighting:
    def get_current_brightness(self, zone_id: str) -> CallResult:
        return _ok(m.GetCurrentBrightnessResponse(level=42, timestamp="t0"))

    def upload_usage(self, stats: Iterable[m.LightUsageStat]) -> CallResult:
        return _ok(0.5 * len(list(stats)))

    def adjust_brightness(self, requests: Iterable[m.AdjustBrightnessRequest]) -> CallResult:
        return _ok([m.AdjustBrightnessResponse(lux=r.desired_level * 10, timestamp=r.timestamp) for r in requests])


@pytest.fixture
def stubs() -> SimpleNamespace:
    return SimpleNamespace(climate=StubClimate(), solar=StubSolar(), lighting=StubLighting())


@pytest.fixture
def api_client(stubs: SimpleNamespace) -> Iterator[TestClient]:
    app = create_app()
    app.dependency_overrides[get_clients] = lambda: stubs
    with TestClient(app) as client:
        yield client


def test_health(api_client: TestClient) -> None:
    response = api_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_set_target(api_client: TestClient) -> None:
    response = api_client.put("/climate/target", json={"target_temp": 21.5})

    assert response.status_code == 200
    assert response.json() == {"success": True}


def test_set_target_transport_failure_is_bad_gateway(api_client: TestClient, stubs: SimpleNamespace) -> None:
    stubs.climate.set_result = _failed(TransportError("connection refused"))

    response = api_client.put("/climate/target", json={"target_temp": 21.5})

    assert response.status_code == 502
    assert "connection refused" in response.json()["detail"]


def test_history(api_client: TestClient) -> None:
    response = api_client.get("/climate/history", params={"start": 0, "end": 3000})

    assert response.status_code == 200
    assert [entry["timestamp"] for entry in response.json()] == [0, 1000, 2000, 3000]


def test_average(api_client: TestClient, stubs: SimpleNamespace) -> None:
    response = api_client.post("/climate/average", json={"start": 0, "end": 4000})

    assert response.status_code == 200
    body = response.json()
    assert body["sample_count"] == 5
    assert 20.0 <= body["average_temp"] <= 20.5
    assert stubs.climate.average_calls == [5]


def test_average_of_empty_window_is_unprocessable(api_client: TestClient) -> None:
    response = api_client.post("/climate/average", json={"start": 5000, "end": 1000})

    assert response.status_code == 422
    assert "no readings" in response.json()["detail"]


def test_daily_yield(api_client: TestClient) -> None:
    response = api_client.get("/solar/yield", params={"date": "2024-06-01"})

    assert response.status_code == 200
    assert response.json() == {"date": "2024-06-01", "yield_kw": 31.0, "peak": 5.2}


def test_daily_yield_timeout_is_gateway_timeout(api_client: TestClient, stubs: SimpleNamespace) -> None:
    stubs.solar.yield_result = _failed(CallTimeoutError("too slow"), state=CallState.timed_out)

    response = api_client.get("/solar/yield", params={"date": "2024-06-01"})

    assert response.status_code == 504


def test_trades(api_client: TestClient) -> None:
    response = api_client.post("/solar/trades", json={"prices": [0.35, 0.45]})

    assert response.status_code == 200
    assert response.json() == [
        {"accepted": True, "agreed_price": 0.35, "counter_offer": 0.0},
        {"accepted": False, "agreed_price": 0.0, "counter_offer": 0.40},
    ]


def test_trades_reject_negative_price(api_client: TestClient) -> None:
    response = api_client.post("/solar/trades", json={"prices": [-0.1]})

    assert response.status_code == 422


def test_brightness(api_client: TestClient) -> None:
    response = api_client.get("/lighting/brightness/kitchen")

    assert response.status_code == 200
    assert response.json() == {"zone_id": "kitchen", "level": 42, "timestamp": "t0"}


def test_usage(api_client: TestClient) -> None:
    response = api_client.post(
        "/lighting/usage",
        json={"stats": [{"duration_min": 30, "average_level": 80}, {"duration_min": 10, "average_level": 20}]},
    )

    assert response.status_code == 200
    assert response.json() == {"entries": 2, "total_energy_kw": 1.0}


def test_usage_rejects_level_above_hundred(api_client: TestClient) -> None:
    response = api_client.post("/lighting/usage", json={"stats": [{"duration_min": 30, "average_level": 120}]})

    assert response.status_code == 422


def test_adjust(api_client: TestClient) -> None:
    response = api_client.post(
        "/lighting/adjust",
        json={"requests": [{"desired_level": 50, "occupied": True}, {"desired_level": 20, "occupied": False}]},
    )

    assert response.status_code == 200
    assert [entry["lux"] for entry in response.json()] == [500.0, 200.0]


def test_lifespan_clears_client_cache() -> None:
    app = create_app()

    with TestClient(app):
        pass

    assert build_default_clients.cache_info().currsize == 0
