"""
Structured JSON logging for the TLC compliance engine.

Every record under the ``tlc_kernel`` logger namespace is written as one
JSON object per line:

    {"ts": ..., "level": ..., "logger": ..., "message": "ride_recorded",
     "driver_id": "driver-7", "adjustment": "5.30"}

Messages are snake_case event names; details go in ``extra``.  Context
fields (correlation, driver, trip, batch and actor ids) are carried by
``LogContext`` and stamped onto every record emitted while they are bound.
Money is written as its Decimal string, never as a float.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any
from uuid import UUID

CONTEXT_FIELDS: tuple[str, ...] = (
    "correlation_id",
    "driver_id",
    "trip_id",
    "batch_id",
    "actor_id",
)

_EMPTY: Mapping[str, str] = MappingProxyType({})
_context: ContextVar[Mapping[str, str]] = ContextVar("tlc_log_context", default=_EMPTY)


def _merged(current: Mapping[str, str], fields: dict[str, str | None]) -> Mapping[str, str]:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown log context field(s): {sorted(unknown)}")
    merged = dict(current)
    merged.update({k: str(v) for k, v in fields.items() if v is not None})
    return MappingProxyType(merged)


class LogContext:
    """
    Request-scoped log fields held in a single ``ContextVar``.

    The stored mapping is replaced, never mutated, so a worker thread that
    re-binds a copied context cannot leak fields back to its caller.
    ``None`` values are ignored.
    """

    @classmethod
    def set(cls, **fields: str | None) -> None:
        _context.set(_merged(_context.get(), fields))

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set(_EMPTY)

    @classmethod
    @contextmanager
    def bind(cls, **fields: str | None) -> Iterator[type["LogContext"]]:
        """Add fields for the duration of a ``with`` block."""
        token = _context.set(_merged(_context.get(), fields))
        try:
            yield cls
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# Formatter
# ---------------------------------------------------------------------------

_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, UUID) or hasattr(obj, "__fspath__"):
        return str(obj)
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    return repr(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """Type, message, stable ``code`` and public attributes of ``exc``."""
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    for name, value in vars(exc).items():
        if name.startswith("_") or name in ("args", "code"):
            continue
        fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record: base fields, context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context.get(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and key not in payload
        )
        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_json_default)


# ---------------------------------------------------------------------------
# Loggers and configuration
# ---------------------------------------------------------------------------

_NAMESPACE = "tlc_kernel"
_config_lock = threading.Lock()
_configured = False


def get_logger(name: str) -> logging.Logger:
    """``tlc_kernel.<name>``; e.g. ``get_logger("services.session_store")``."""
    return logging.getLogger(f"{_NAMESPACE}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``tlc_kernel`` namespace.

    Only the first call has any effect until ``reset_logging()``.  Records
    do not propagate to the root logger.
    """
    global _configured
    with _config_lock:
        if _configured:
            return
        _configured = True

        namespace = logging.getLogger(_NAMESPACE)
        namespace.setLevel(level)
        namespace.propagate = False
        if handler is None:
            handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(StructuredFormatter())
        namespace.addHandler(handler)


def reset_logging() -> None:
    """Detach handlers and allow ``configure_logging()`` again (tests)."""
    global _configured
    with _config_lock:
        _configured = False
        namespace = logging.getLogger(_NAMESPACE)
        for handler in list(namespace.handlers):
            namespace.removeHandler(handler)
        namespace.setLevel(logging.WARNING)
