from __future__ import annotations

from typing import Any, Iterable, Sequence

import typer

from rpc.bridge import CallResult


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def echo_failure(label: str, result: CallResult) -> None:
    reason = result.error or "no detail provided."
    typer.secho(
        f"{label} failed ({result.state.value}): {reason}",
        fg=typer.colors.RED,
        err=True,
    )


def render_rows(title: str, columns: Sequence[str], rows: Iterable[Any]) -> None:
    """Print pydantic messages as a simple ``column=value`` listing."""
    echo_heading(title)
    count = 0
    for row in rows:
        fields = " ".join(f"{column}={_format(getattr(row, column))}" for column in columns)
        typer.echo(f"  - {fields}")
        count += 1
    if count == 0:
        typer.echo("No entries received.")


def render_trade_decisions(decisions: Iterable[Any]) -> None:
    echo_heading("Trade Decisions")
    for decision in decisions:
        if decision.accepted:
            typer.secho(f"  - accepted at {decision.agreed_price:.2f}", fg=typer.colors.GREEN)
        else:
            typer.secho(f"  - rejected, counter-offer {decision.counter_offer:.2f}", fg=typer.colors.YELLOW)


def _format(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)
