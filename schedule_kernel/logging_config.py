"""Structured JSON logging for the schedule kernel.

Every logger lives under the ``schedule_kernel`` namespace and emits one
JSON object per line.  ``extra=`` fields become top-level keys, and the
fields bound with ``LogContext.bind`` (the project and the service
operation being run) are added to every record inside the block.
"""

__all__ = [
    "StructuredFormatter",
    "LogContext",
    "get_logger",
    "configure_logging",
    "reset_logging",
]

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import fields, is_dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

_LOGGER_PREFIX = "schedule_kernel"

# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_context: ContextVar[dict[str, str]] = ContextVar("schedule_log_context", default={})


class LogContext:
    """Async-safe fields added to every record logged inside ``bind``."""

    FIELDS = ("project_id", "operation")

    @classmethod
    def get_all(cls) -> dict[str, str]:
        return dict(_context.get())

    @classmethod
    def clear(cls) -> None:
        _context.set({})

    @classmethod
    @contextmanager
    def bind(cls, **values: str | None) -> Iterator[dict[str, str]]:
        """
        Add ``values`` for the duration of the block.

        ``None`` values are ignored so callers can pass optional ids
        straight through.  Nested binds override outer ones and the outer
        values come back on exit.

        Raises:
            TypeError: a field outside ``FIELDS``.
        """
        unknown = sorted(set(values) - set(cls.FIELDS))
        if unknown:
            raise TypeError(f"Unknown log context fields: {unknown}")
        merged = {**_context.get(), **{k: v for k, v in values.items() if v is not None}}
        token = _context.set(merged)
        try:
            yield merged
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# JSON formatting
# ---------------------------------------------------------------------------

_RESERVED = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _json_default(obj: Any) -> Any:
    """Encode the scheduling payload types json cannot handle."""
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: getattr(obj, f.name) for f in fields(obj)}
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON line per record: ts, level, logger, message, context, extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED and key not in payload:
                payload[key] = value

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_json_default)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    """Type, code and public attributes (task ids, cycle, reason) of ``exc``."""
    out: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        out["exc_code"] = code
    for key, value in vars(exc).items():
        if not key.startswith("_"):
            out[f"exc_{key}"] = value
    return out


# ---------------------------------------------------------------------------
# Loggers
# ---------------------------------------------------------------------------


def get_logger(name: str) -> logging.Logger:
    """Logger ``schedule_kernel.<name>``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> logging.Logger:
    """
    Attach one JSON handler to the ``schedule_kernel`` logger.

    Calling again while a handler is attached changes nothing; use
    ``reset_logging`` first to reconfigure.
    """
    root = logging.getLogger(_LOGGER_PREFIX)
    if root.handlers:
        return root
    root.setLevel(level)
    root.propagate = False
    h = handler if handler is not None else logging.StreamHandler(stream or sys.stderr)
    h.setFormatter(StructuredFormatter())
    root.addHandler(h)
    return root


def reset_logging() -> None:
    """Detach all handlers. FOR TESTING ONLY."""
    root = logging.getLogger(_LOGGER_PREFIX)
    root.handlers.clear()
    root.setLevel(logging.WARNING)
    root.propagate = True
