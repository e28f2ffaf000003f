"""
Structured JSON logging for the cashbox kernel.

Every record under the ``cashbox`` logger is written as one JSON object per
line.  Four context fields follow the current unit of work and are merged
into each line:

    correlation_id  one close request (request, undo, finalize)
    branch          the branch the controller is bound to
    row_id          the shift row being edited or closed
    employee_name   the employee who owns the shift

Values passed through ``extra=`` are added after the context fields and do
not overwrite them.  Arabic text is written as-is, not escaped.
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
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any

_LOGGER_PREFIX = "cashbox"

CONTEXT_FIELDS = ("correlation_id", "branch", "row_id", "employee_name")

_context: ContextVar[Mapping[str, str] | None] = ContextVar(
    "cashbox_log_context", default=None
)


def _merged(fields: Mapping[str, Any]) -> dict[str, str]:
    unknown = set(fields) - set(CONTEXT_FIELDS)
    if unknown:
        raise TypeError(f"unknown log context field(s): {', '.join(sorted(unknown))}")
    merged = dict(_context.get() or {})
    merged.update({k: str(v) for k, v in fields.items() if v is not None})
    return merged


class LogContext:
    """Per-task log context. Fields left as None are not touched."""

    @staticmethod
    def set(**fields: Any) -> None:
        _context.set(_merged(fields))

    @staticmethod
    def get_all() -> dict[str, str]:
        current = _context.get() or {}
        return {name: current[name] for name in CONTEXT_FIELDS if name in current}

    @staticmethod
    def clear() -> None:
        _context.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: Any) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a ``with`` block."""
        token = _context.set(_merged(fields))
        try:
            yield LogContext
        finally:
            _context.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_RECORD_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "taskName"}


def _to_json(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return str(obj)


def _exception_fields(exc: BaseException) -> dict[str, Any]:
    fields: dict[str, Any] = {
        "exc_type": type(exc).__name__,
        "exc_message": str(exc),
    }
    code = getattr(exc, "code", None)
    if code is not None:
        fields["exc_code"] = code
    # CashboxKernelError subclasses carry their context as public attributes
    for name, value in vars(exc).items():
        if not name.startswith("_") and name != "code":
            fields[f"exc_{name}"] = value
    return fields


class StructuredFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **LogContext.get_all(),
        }
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS:
                payload.setdefault(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(_exception_fields(record.exc_info[1]))
            payload["traceback"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=_to_json, ensure_ascii=False)


def get_logger(name: str) -> logging.Logger:
    """Child of the ``cashbox`` logger, e.g. ``cashbox.services.lifecycle``."""
    return logging.getLogger(f"{_LOGGER_PREFIX}.{name}")


# ---------------------------------------------------------------------------
# Initialization
# ---------------------------------------------------------------------------

_configured = False
_lock = threading.Lock()


def configure_logging(
    *,
    level: int | str = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """
    Attach a JSON handler to the ``cashbox`` logger.

    ``level`` accepts a number or a name such as ``"DEBUG"``.  Only the
    first call has any effect until reset_logging() is called.
    """
    global _configured
    if isinstance(level, str):
        name = level
        level = logging.getLevelName(name.upper())
        if not isinstance(level, int):
            raise ValueError(f"unknown log level: {name}")

    with _lock:
        if _configured:
            return
        _configured = True

    if handler is None:
        # StreamHandler(None) writes to stderr
        handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())

    cashbox_logger = logging.getLogger(_LOGGER_PREFIX)
    cashbox_logger.setLevel(level)
    cashbox_logger.propagate = False
    cashbox_logger.addHandler(handler)


def reset_logging() -> None:
    """Drop handlers and allow configure_logging() to run again. Tests only."""
    global _configured
    with _lock:
        _configured = False
    cashbox_logger = logging.getLogger(_LOGGER_PREFIX)
    cashbox_logger.handlers.clear()
    cashbox_logger.setLevel(logging.WARNING)
