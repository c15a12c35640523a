"""
Structured JSON logging for the payroll engine.

Every payroll logger lives under the ``payroll`` namespace and writes one
JSON object per line.  A line carries the timestamp, level, logger and
message, the ambient batch context (cycle, run, worker, actor,
correlation id) and the record's ``extra`` fields.

Context:
    LogContext keeps the batch context in context variables, so a value
    bound in the service thread follows the work into executor threads
    that run under ``contextvars.copy_context()``.  Only the fields named
    in ``CONTEXT_FIELDS`` exist; anything else is a TypeError.

Redaction:
    Extra fields and exception attributes named in ``SENSITIVE_KEYS`` hold
    worker identifiers (tax ids, bank account numbers).  They are written
    masked to their last four characters, ``****5678``.  Mappings and
    sequences under such a key are masked item by item.
"""

__all__ = [
    "CONTEXT_FIELDS",
    "SENSITIVE_KEYS",
    "LogContext",
    "StructuredFormatter",
    "configure_logging",
    "get_logger",
    "mask_identifier",
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
from typing import Any
from uuid import UUID

CONTEXT_FIELDS = ("correlation_id", "actor_id", "cycle_id", "run_id", "worker_id")

SENSITIVE_KEYS = frozenset({
    "account_number",
    "bank_account",
    "government_id",
    "government_ids",
    "tin",
})

_VISIBLE_DIGITS = 4


def mask_identifier(value: Any) -> str:
    """``"123-456-789"`` -> ``"****6789"``; short values are fully hidden."""
    text = str(value)
    if len(text) <= _VISIBLE_DIGITS:
        return "****"
    return f"****{text[-_VISIBLE_DIGITS:]}"


def _redact(key: str, value: Any) -> Any:
    if key not in SENSITIVE_KEYS or value is None:
        return value
    if isinstance(value, Mapping):
        return {k: mask_identifier(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [mask_identifier(v) for v in value]
    return mask_identifier(value)


# ---------------------------------------------------------------------------
# Context propagation
# ---------------------------------------------------------------------------

_context: dict[str, ContextVar[str | None]] = {
    name: ContextVar(f"payroll_log_{name}", default=None) for name in CONTEXT_FIELDS
}


def _vars_for(fields: Mapping[str, str | None]) -> dict[str, ContextVar[str | None]]:
    unknown = sorted(set(fields) - _context.keys())
    if unknown:
        raise TypeError(f"Unknown log context field(s): {', '.join(unknown)}")
    return {name: _context[name] for name, value in fields.items() if value is not None}


class LogContext:
    """Batch-scoped log fields, safe across threads and tasks."""

    @staticmethod
    def set(**fields: str | None) -> None:
        """Set the given fields; ``None`` leaves a field unchanged."""
        for name, var in _vars_for(fields).items():
            var.set(fields[name])

    @staticmethod
    def get_all() -> dict[str, str]:
        return {
            name: value
            for name, var in _context.items()
            if (value := var.get()) is not None
        }

    @staticmethod
    def clear() -> None:
        for var in _context.values():
            var.set(None)

    @staticmethod
    @contextmanager
    def bind(**fields: str | None) -> Iterator[type["LogContext"]]:
        """Set fields for the duration of a ``with`` block, then restore them."""
        tokens = [(var, var.set(fields[name])) for name, var in _vars_for(fields).items()]
        try:
            yield LogContext
        finally:
            for var, token in reversed(tokens):
                var.reset(token)


# ---------------------------------------------------------------------------
# JSON Formatter
# ---------------------------------------------------------------------------

_RECORD_KEYS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "taskName"}


class _JSONEncoder(json.JSONEncoder):
    """UUID, date/datetime, Decimal and Enum as JSON strings."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (UUID, Decimal)):
            return str(obj)
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON line per record: base fields, context, extras, exception."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.threadName and record.threadName != "MainThread":
            payload["thread"] = record.threadName
        payload.update(LogContext.get_all())

        # Extras never overwrite the base or context fields.
        for key, value in vars(record).items():
            if key not in _RECORD_KEYS and key not in payload:
                payload[key] = _redact(key, value)

        if record.exc_info and record.exc_info[1] is not None:
            payload.update(self._exception_fields(record))

        return json.dumps(payload, cls=_JSONEncoder, default=str)

    def _exception_fields(self, record: logging.LogRecord) -> dict[str, Any]:
        exc = record.exc_info[1]
        fields: dict[str, Any] = {
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
        }
        code = getattr(exc, "code", None)
        if code is not None:
            fields["exc_code"] = code
        # PayrollEngineError subclasses keep their structured fields as attributes
        for key, value in vars(exc).items():
            if not key.startswith("_") and key not in ("args", "code"):
                fields[f"exc_{key}"] = _redact(key, value)
        fields["traceback"] = self.formatException(record.exc_info)
        return fields


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

_NAMESPACE = "payroll"
_configured = False
_lock = threading.Lock()


def get_logger(name: str) -> logging.Logger:
    """``get_logger("batch.executor")`` -> the ``payroll.batch.executor`` logger."""
    return logging.getLogger(f"{_NAMESPACE}.{name}")


def configure_logging(
    *,
    level: int = logging.INFO,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """Attach one JSON handler to the ``payroll`` logger.  Later calls are no-ops."""
    global _configured
    with _lock:
        if _configured:
            return
        _configured = True

    handler = handler or logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    namespace = logging.getLogger(_NAMESPACE)
    namespace.setLevel(level)
    namespace.propagate = False
    namespace.addHandler(handler)


def reset_logging() -> None:
    """Undo ``configure_logging``; used by the test suite."""
    global _configured
    with _lock:
        _configured = False
    namespace = logging.getLogger(_NAMESPACE)
    namespace.handlers.clear()
    namespace.setLevel(logging.WARNING)
    namespace.propagate = True
