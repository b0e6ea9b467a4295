"""Error taxonomy shared by servers, clients and callers."""

from __future__ import annotations


class TelemetryError(Exception):
    """Base class for failures surfaced by the telemetry services."""


class TransportError(TelemetryError):
    """Connection refused, peer gone or any other non-classified RPC failure."""


class CallTimeoutError(TelemetryError):
    """A bounded wait elapsed before the call completed."""


class AggregationError(TelemetryError):
    """A stream could not be folded into a defined summary value."""


class ValidationError(TelemetryError, ValueError):
    """Malformed input rejected before it enters a stream."""
