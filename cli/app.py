from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional

import typer

from cli.config import CLIConfig, load_config
from cli.render import echo_failure, echo_heading, echo_key_values, render_rows, render_trade_decisions
from clients.base import parse_number
from clients.climate import ThermostatClient, simulate_readings
from clients.lighting import LightingClient, adjust_request, usage_stat
from clients.solar import SolarClient, trade_offers
from logging_config import configure_logging
from models.records import DESCRIPTORS
from rpc.bridge import CallResult
from servers.process import ServiceProcess
from services.context import build_context
from services.errors import ValidationError
from settings import Settings, get_settings


@dataclass
class CLIState:
    config: CLIConfig
    settings: Settings
    clients: Dict[str, Any] = field(default_factory=dict)

    def client(self, domain: str, factory: Callable[[], Any]) -> Any:
        if domain not in self.clients:
            self.clients[domain] = factory()
        return self.clients[domain]

    def close(self) -> None:
        while self.clients:
            _, client = self.clients.popitem()
            client.close()


app = typer.Typer(
    help="Run and query the climate, solar and lighting telemetry services.",
    context_settings={"help_option_names": ["-h", "--help"]},
)
climate_app = typer.Typer(help="Thermostat commands.")
solar_app = typer.Typer(help="Solar panel commands.")
lighting_app = typer.Typer(help="Smart lighting commands.")
app.add_typer(climate_app, name="climate")
app.add_typer(solar_app, name="solar")
app.add_typer(lighting_app, name="lighting")


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


def _thermostat(ctx: typer.Context) -> ThermostatClient:
    state = _get_state(ctx)
    return state.client("climate", lambda: ThermostatClient(settings=state.settings))


def _solar(ctx: typer.Context) -> SolarClient:
    state = _get_state(ctx)
    return state.client("solar", lambda: SolarClient(settings=state.settings))


def _lighting(ctx: typer.Context) -> LightingClient:
    state = _get_state(ctx)
    return state.client("lighting", lambda: LightingClient(settings=state.settings))


@contextmanager
def _user_input() -> Iterator[None]:
    try:
        yield
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _require_ok(label: str, result: CallResult) -> None:
    if result.ok:
        return
    echo_failure(label, result)
    raise typer.Exit(code=1)


@app.callback()
def main(
    ctx: typer.Context,
    stream_count: Optional[int] = typer.Option(
        None,
        "--stream-count",
        "-n",
        help="Readings to collect from live streams (defaults to CLI_STREAM_COUNT env or 5).",
    ),
    stream_timeout: Optional[float] = typer.Option(
        None,
        "--stream-timeout",
        help="Maximum seconds to wait for live stream readings.",
    ),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Overrides LOG_LEVEL."),
) -> None:
    """Entry point for the CLI."""
    configure_logging(log_level)
    config = load_config(stream_count=stream_count, stream_timeout=stream_timeout)
    state = CLIState(config=config, settings=get_settings())
    ctx.obj = state
    ctx.call_on_close(state.close)


@app.command("serve")
def serve_command(
    ctx: typer.Context,
    domain: str = typer.Argument(..., help="Service to run: climate, solar or lighting."),
    host: str = typer.Option("0.0.0.0", "--host", help="Interface to bind."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind (defaults per service)."),
    advertise: bool = typer.Option(True, "--advertise/--no-advertise", help="Publish the service over mDNS."),
) -> None:
    """Run one service process until interrupted."""
    state = _get_state(ctx)
    descriptor = DESCRIPTORS.get(domain.strip().lower())
    if descriptor is None:
        raise typer.BadParameter(f"Unknown service {domain!r}; choose from {', '.join(DESCRIPTORS)}.")

    process = ServiceProcess(
        descriptor,
        build_context(state.settings),
        host=host,
        port=port,
        advertise=advertise and state.settings.discovery_enabled,
    )
    bound = process.start()
    typer.secho(f"{descriptor.instance_name} listening on {host}:{bound}", fg=typer.colors.GREEN)
    try:
        process.wait()
    except KeyboardInterrupt:
        typer.echo("Shutting down ...")
    finally:
        process.stop()


@climate_app.command("set")
def climate_set_command(
    ctx: typer.Context,
    temperature: str = typer.Argument(..., help="New target temperature in °C."),
) -> None:
    """Set the thermostat target temperature."""
    with _user_input():
        target = parse_number(temperature, "Target temperature")
        result = _thermostat(ctx).set_target(target)
    _require_ok("SetTargetTemperature", result)
    typer.secho(f"Target temperature set to {target:.1f} °C", fg=typer.colors.GREEN)


@climate_app.command("history")
def climate_history_command(
    ctx: typer.Context,
    start: int = typer.Argument(..., help="Start timestamp in epoch ms."),
    end: int = typer.Argument(..., help="End timestamp in epoch ms (inclusive)."),
) -> None:
    """Replay temperature history between two timestamps."""
    with _user_input():
        result = _thermostat(ctx).get_history(start, end)
    render_rows("Temperature History", ("timestamp", "temperature"), result.value)
    _require_ok("StreamTemperatureHistory", result)


@climate_app.command("average")
def climate_average_command(
    ctx: typer.Context,
    start: int = typer.Argument(..., help="Start timestamp in epoch ms."),
    end: int = typer.Argument(..., help="End timestamp in epoch ms (inclusive)."),
) -> None:
    """Stream simulated readings and print their average."""
    with _user_input():
        readings = simulate_readings(start, end)
        result = _thermostat(ctx).get_average(readings)
    _require_ok("GetAverageTemperature", result)
    echo_key_values([("readings", len(readings)), ("average_temp", f"{result.value:.2f} °C")])


@solar_app.command("yield")
def solar_yield_command(
    ctx: typer.Context,
    day: str = typer.Argument(..., help="Day in YYYY-MM-DD format."),
) -> None:
    """Fetch the simulated daily yield."""
    with _user_input():
        result = _solar(ctx).get_daily_yield(day)
    _require_ok("GetDailyYield", result)
    echo_heading("Daily Yield")
    echo_key_values([("yield_kw", f"{result.value.yield_kw:.2f}"), ("peak", f"{result.value.peak:.2f}")])


@solar_app.command("output")
def solar_output_command(ctx: typer.Context) -> None:
    """Show live solar output readings."""
    state = _get_state(ctx)
    with _solar(ctx).stream_real_time_output() as stream:
        result = stream.take(state.config.stream_count, state.config.stream_timeout)
    render_rows("Real-Time Output", ("timestamp", "current_kw"), result.value)
    _require_ok("StreamRealTimeOutput", result)


@solar_app.command("trade")
def solar_trade_command(
    ctx: typer.Context,
    prices: List[str] = typer.Argument(..., help="Offer prices per kWh."),
) -> None:
    """Negotiate a batch of energy trade offers."""
    with _user_input():
        offers = trade_offers(prices)
    result = _solar(ctx).negotiate_trades(offers)
    render_trade_decisions(result.value)
    _require_ok("EnergyTradeNegotiation", result)


@lighting_app.command("brightness")
def lighting_brightness_command(
    ctx: typer.Context,
    zone: str = typer.Argument(..., help="Zone identifier."),
) -> None:
    """Fetch the current brightness of a zone."""
    with _user_input():
        result = _lighting(ctx).get_current_brightness(zone)
    _require_ok("GetCurrentBrightness", result)
    echo_key_values([("zone", zone), ("level", f"{result.value.level}%"), ("timestamp", result.value.timestamp)])


@lighting_app.command("ambient")
def lighting_ambient_command(
    ctx: typer.Context,
    zone: str = typer.Argument(..., help="Zone identifier."),
) -> None:
    """Show live ambient light readings for a zone."""
    state = _get_state(ctx)
    with _user_input():
        stream = _lighting(ctx).stream_ambient_light(zone)
    with stream:
        result = stream.take(state.config.stream_count, state.config.stream_timeout)
    render_rows("Ambient Light", ("timestamp", "lux", "occupied"), result.value)
    _require_ok("StreamAmbientLightData", result)


@lighting_app.command("usage")
def lighting_usage_command(
    ctx: typer.Context,
    stats: List[str] = typer.Argument(..., help="Usage entries as MINUTES:LEVEL, e.g. 30:80."),
) -> None:
    """Upload usage statistics and print the total energy."""
    with _user_input():
        entries = [usage_stat(*_split_pair(entry, "MINUTES:LEVEL")) for entry in stats]
    result = _lighting(ctx).upload_usage(entries)
    _require_ok("UploadLightUsageStats", result)
    echo_key_values([("entries", len(entries)), ("total_energy_kwh", f"{result.value:.4f}")])


@lighting_app.command("adjust")
def lighting_adjust_command(
    ctx: typer.Context,
    requests: List[str] = typer.Argument(
        ..., help="Adjustments as LEVEL:occupied or LEVEL:vacant, e.g. 80:occupied."
    ),
) -> None:
    """Request brightness levels and print the resulting lux."""
    with _user_input():
        batch = [adjust_request(level, occupied) for level, occupied in map(_parse_adjustment, requests)]
    result = _lighting(ctx).adjust_brightness(batch)
    render_rows("Brightness Adjustments", ("timestamp", "lux"), result.value)
    _require_ok("AdjustBrightness", result)


def _split_pair(entry: str, expected: str) -> tuple[str, str]:
    left, sep, right = entry.partition(":")
    if not sep or not left.strip() or not right.strip():
        raise ValidationError(f"Entry {entry!r} must look like {expected}.")
    return left.strip(), right.strip()


def _parse_adjustment(entry: str) -> tuple[str, bool]:
    level, occupancy = _split_pair(entry, "LEVEL:occupied")
    normalized = occupancy.lower()
    if normalized not in {"occupied", "vacant"}:
        raise ValidationError(f"Occupancy {occupancy!r} must be 'occupied' or 'vacant'.")
    return level, normalized == "occupied"
