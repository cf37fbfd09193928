"""
``@traced_engine``: one TLC_ENGINE_TRACE log record per engine call.

Each record carries the engine name and version, the wall time in
milliseconds, and a 16-hex input fingerprint taken over the keyword
arguments named in ``fingerprint_fields``.  Two calls with the same
fingerprinted inputs log the same fingerprint, so a disputed adjustment can
be matched to the calculation that produced it.

Engines stay pure: the decorator only logs, and only after the call
returns.  A call that raises is not traced.

    @traced_engine("minimum_pay.per_ride", "1.0",
                   fingerprint_fields=("trip_time_minutes", "trip_distance_miles"))
    def calculate_per_ride_minimum(*, trip_time_minutes, trip_distance_miles, ...):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import time
from collections.abc import Callable, Mapping
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from tlc_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

TRACE_MESSAGE = "TLC_ENGINE_TRACE"


def _fingerprint_text(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Decimal):
        return str(value.normalize())
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        inner = ",".join(f"{k}:{_fingerprint_text(v)}" for k, v in sorted(value.items()))
        return "{" + inner + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_fingerprint_text(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: Mapping[str, Any],
) -> str:
    """First 16 hex chars of sha256 over ``field=value`` pairs; missing kwargs are ``null``."""
    text = "|".join(f"{name}={_fingerprint_text(kwargs.get(name))}" for name in fingerprint_fields)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            _logger.info(
                TRACE_MESSAGE,
                extra={
                    "trace_type": TRACE_MESSAGE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": (
                        compute_input_fingerprint(fingerprint_fields, kwargs)
                        if fingerprint_fields
                        else ""
                    ),
                    "duration_ms": elapsed_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
