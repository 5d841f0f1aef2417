"""
Structured logging for the collection tracker.

Log calls carry their structured fields on the LogRecord (``record.fields``)
and the formatters decide how to render them: one JSON object per line, or a
short human-readable line for local development.

Context (trace id, caller, job) lives in a ContextVar, so concurrent request
handlers and dispatcher tasks never see each other's context.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

# =============================================================================
# Context and record types
# =============================================================================


@dataclass(frozen=True)
class LogContext:
    """Correlation fields merged into every record logged while active."""

    trace_id: str | None = None
    request_id: str | None = None
    job_id: str | None = None
    caller_id: str | None = None
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        fields = {
            "trace_id": self.trace_id,
            "request_id": self.request_id,
            "job_id": self.job_id,
            "caller_id": self.caller_id,
            "operation": self.operation,
        }
        out = {key: value for key, value in fields.items() if value is not None}
        out.update(self.extra)
        return out

    def with_update(self, **kwargs) -> LogContext:
        """Copy with the given fields replaced; ``extra`` is merged, not replaced."""
        extra = {**self.extra, **kwargs.pop("extra", {})}
        known = {f.name for f in dataclasses.fields(self)}
        for key in list(kwargs):
            if key not in known:
                extra[key] = kwargs.pop(key)
        return dataclasses.replace(self, extra=extra, **kwargs)


@dataclass
class TransitionLog:
    """One accepted state or progress change of a job."""

    job_id: str
    from_state: str | None
    to_state: str
    timestamp: str = field(default_factory=lambda: _utc_iso())
    progress_percent: int | None = None
    records_processed: int | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in dataclasses.asdict(self).items() if v is not None}

    @property
    def summary(self) -> str:
        return f"Job {self.job_id}: {self.from_state or '-'} -> {self.to_state}"


_current_context: ContextVar[LogContext] = ContextVar("collection_log_context", default=LogContext())


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger:
    """
    Thin wrapper over a stdlib logger that attaches structured fields.

    Example:
        ```python
        logger = StructuredLogger("collection_runtime")

        with logger.trace_context(job_id=job_id, operation="cancel"):
            logger.info("cancel requested", caller_id=caller_id)
        ```
    """

    def __init__(
        self,
        name: str = "collection_runtime",
        level: str = "INFO",
        json_output: bool = True,
    ):
        self.name = name
        self.json_output = json_output

        self._logger = logging.getLogger(name)
        self._logger.setLevel(level.upper())
        self._logger.propagate = False

        formatter: logging.Formatter = JSONFormatter() if json_output else TextFormatter()
        handler = next((h for h in self._logger.handlers if getattr(h, "_collection_handler", False)), None)
        if handler is None:
            handler = logging.StreamHandler(sys.stdout)
            handler._collection_handler = True  # type: ignore[attr-defined]
            self._logger.addHandler(handler)
        handler.setFormatter(formatter)

    @property
    def context(self) -> LogContext:
        return _current_context.get()

    def set_context(self, **kwargs) -> None:
        """Update the context of the current task."""
        _current_context.set(_current_context.get().with_update(**kwargs))

    @contextmanager
    def trace_context(self, trace_id: str | None = None, **kwargs) -> Iterator[str]:
        """Scope a trace id (generated when omitted) and extra fields to a block."""
        trace_id = trace_id or generate_trace_id()
        token = _current_context.set(_current_context.get().with_update(trace_id=trace_id, **kwargs))
        try:
            yield trace_id
        finally:
            _current_context.reset(token)

    def _emit(self, level: int, message: str, fields: dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        payload = {**_current_context.get().to_dict(), **fields}
        self._logger.log(level, message, extra={"fields": payload})

    def debug(self, message: str, **kwargs) -> None:
        self._emit(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs) -> None:
        self._emit(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._emit(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._emit(logging.ERROR, message, kwargs)

    def log_transition(self, transition: TransitionLog) -> None:
        self._emit(logging.INFO, transition.summary, {"event_type": "transition", **transition.to_dict()})

    def log_error(self, error: Exception, message: str | None = None, **kwargs) -> None:
        """Log an exception; tracker errors contribute their code and context."""
        fields: dict[str, Any] = {
            "event_type": "error",
            "error_type": type(error).__name__,
            "error_message": str(error),
        }
        code = getattr(error, "code", None)
        if code is not None:
            fields["error_code"] = getattr(code, "value", str(code))
        context = getattr(error, "context", None)
        if context is not None and hasattr(context, "to_dict"):
            fields["error_context"] = context.to_dict()
        fields.update(kwargs)
        self._emit(logging.ERROR, message or f"Error: {error}", fields)


# =============================================================================
# Formatters
# =============================================================================


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    return dict(getattr(record, "fields", None) or {})


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": _utc_iso(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_record_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """``HH:MM:SS.mmm LEVEL message key=value ...`` with ANSI level colors."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        clock = datetime.now(timezone.utc).strftime("%H:%M:%S.%f")[:-3]
        color = self.COLORS.get(record.levelname, "")
        level = f"{color}{record.levelname:8}{self.RESET if color else ''}"
        pairs = " ".join(f"{key}={value}" for key, value in _record_fields(record).items())
        line = f"{clock} {level} {record.getMessage()}"
        return f"{line} {pairs}" if pairs else line


# =============================================================================
# Utilities
# =============================================================================


def generate_trace_id() -> str:
    return f"trace_{uuid.uuid4().hex[:16]}"


def generate_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


_default_logger: StructuredLogger | None = None


def get_logger(name: str = "collection_runtime") -> StructuredLogger:
    """Process-wide logger; a different ``name`` replaces it."""
    global _default_logger
    if _default_logger is None or _default_logger.name != name:
        _default_logger = StructuredLogger(name)
    return _default_logger


def configure_logging(level: str = "INFO", json_output: bool = True, **kwargs: Any) -> StructuredLogger:
    """Rebuild the process-wide logger with the given level and output format."""
    global _default_logger
    _default_logger = StructuredLogger(level=level, json_output=json_output, **kwargs)
    return _default_logger


__all__ = [
    "LogContext",
    "TransitionLog",
    "StructuredLogger",
    "JSONFormatter",
    "TextFormatter",
    "generate_trace_id",
    "generate_request_id",
    "get_logger",
    "configure_logging",
]
