from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_STREAM_COUNT = 5
DEFAULT_STREAM_TIMEOUT = 30.0

_STREAM_COUNT_ENV = "CLI_STREAM_COUNT"
_STREAM_TIMEOUT_ENV = "CLI_STREAM_TIMEOUT"


@dataclass(frozen=True)
class CLIConfig:
    stream_count: int = DEFAULT_STREAM_COUNT
    stream_timeout: float = DEFAULT_STREAM_TIMEOUT


def _read_float(value: Optional[str], default: float) -> float:
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_int(value: Optional[str], default: int) -> int:
    parsed = _read_float(value, float(default))
    return int(parsed) if parsed >= 1 else default


def load_config(
    stream_count: Optional[int] = None,
    stream_timeout: Optional[float] = None,
) -> CLIConfig:
    if stream_count is None:
        stream_count = _read_int(os.getenv(_STREAM_COUNT_ENV), DEFAULT_STREAM_COUNT)
    if stream_timeout is None:
        stream_timeout = _read_float(os.getenv(_STREAM_TIMEOUT_ENV), DEFAULT_STREAM_TIMEOUT)
    return CLIConfig(stream_count=stream_count, stream_timeout=stream_timeout)
