"""
Structured logging for job-hierarchy.

Records are emitted as one JSON object per line (or ``key=value`` text) with:
- the message and any keyword fields given at the call site
- the job/workflow correlation fields of the active LogContext
- an ``event_type`` for typed records (status transitions, errors)
"""

from __future__ import annotations

import json
import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .errors import HierarchyError

# =============================================================================
# Log Context
# =============================================================================


@dataclass
class LogContext:
    """Correlation fields merged into every record."""

    job_id: str | None = None
    workflow_id: str | None = None
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        fields = {
            "job_id": self.job_id,
            "workflow_id": self.workflow_id,
            "operation": self.operation,
        }
        return {**{k: v for k, v in fields.items() if v is not None}, **self.extra}

    def with_update(self, **kwargs) -> LogContext:
        """Copy with the given fields replaced; ``extra`` is merged."""
        return LogContext(
            job_id=kwargs.get("job_id", self.job_id),
            workflow_id=kwargs.get("workflow_id", self.workflow_id),
            operation=kwargs.get("operation", self.operation),
            extra={**self.extra, **kwargs.get("extra", {})},
        )


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger:
    """
    Thin wrapper over a stdlib logger that emits structured records.

    Example:
        ```python
        logger = StructuredLogger("job_hierarchy")

        with logger.job_context(job_id="jid-1", operation="update_status"):
            logger.debug("status written", status="running")
        ```
    """

    def __init__(
        self,
        name: str = "job_hierarchy",
        level: str = "INFO",
        json_output: bool = True,
    ):
        self.name = name
        self.json_output = json_output
        self._context = LogContext()

        self._logger = logging.getLogger(name)
        self._logger.setLevel(level.upper())
        if not self._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(JSONFormatter() if json_output else TextFormatter())
            self._logger.addHandler(handler)

    @property
    def context(self) -> LogContext:
        return self._context

    def set_context(self, **kwargs) -> None:
        self._context = self._context.with_update(**kwargs)

    @contextmanager
    def job_context(self, **kwargs) -> Iterator[LogContext]:
        """Extend the context for the duration of the block."""
        saved = self._context
        self._context = saved.with_update(**kwargs)
        try:
            yield self._context
        finally:
            self._context = saved

    def _emit(
        self,
        level: int,
        message: str,
        fields: dict[str, Any],
        event_type: str | None = None,
    ) -> None:
        if not self._logger.isEnabledFor(level):
            return

        payload: dict[str, Any] = {"message": message, **self._context.to_dict()}
        if event_type:
            payload["event_type"] = event_type
        payload.update(fields)

        if self.json_output:
            self._logger.log(level, json.dumps(payload, default=str))
            return
        pairs = [f"{k}={v}" for k, v in payload.items() if k != "message"]
        self._logger.log(level, " ".join([message, *pairs]))

    def debug(self, message: str, **kwargs) -> None:
        self._emit(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs) -> None:
        self._emit(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._emit(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._emit(logging.ERROR, message, kwargs)

    # Typed records

    def log_transition(
        self,
        job_id: str,
        old_status: str,
        new_status: str,
        *,
        legal: bool = True,
    ) -> None:
        """Record an applied status change; illegal ones (lenient mode) at warning."""
        message = f"Job {job_id}: {old_status} -> {new_status}"
        if not legal:
            message += " (not a legal transition, applied anyway)"
        self._emit(
            logging.DEBUG if legal else logging.WARNING,
            message,
            {"job_id": job_id, "old_status": old_status, "new_status": new_status},
            event_type="transition",
        )

    def log_error(
        self,
        error: BaseException,
        message: str | None = None,
        **kwargs,
    ) -> None:
        fields: dict[str, Any] = {
            "error_type": type(error).__name__,
            "error_message": str(error),
        }
        if isinstance(error, HierarchyError):
            fields["error_code"] = error.code.value
            fields["retryable"] = error.retryable
            fields["error_context"] = error.context.to_dict()
        fields.update(kwargs)
        self._emit(logging.ERROR, message or str(error), fields, event_type="error")


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """One JSON object per record; JSON messages are merged in."""

    def format(self, record: logging.LogRecord) -> str:
        text = record.getMessage()
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            data.update(parsed)
        else:
            data["message"] = text
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data)


class TextFormatter(logging.Formatter):
    """``HH:MM:SS.mmm LEVEL message`` lines for terminals."""

    def format(self, record: logging.LogRecord) -> str:
        when = datetime.fromtimestamp(record.created, tz=timezone.utc)
        stamp = f"{when:%H:%M:%S}.{when.microsecond // 1000:03d}"
        return f"{stamp} {record.levelname:<8} {record.getMessage()}"


# =============================================================================
# Timing
# =============================================================================


@dataclass
class Timer:
    """Wall-clock stopwatch in milliseconds."""

    started: float = field(default_factory=time.perf_counter)
    stopped: float | None = None

    def stop(self) -> float:
        self.stopped = time.perf_counter()
        return self.elapsed_ms

    @property
    def elapsed_ms(self) -> float:
        end = self.stopped if self.stopped is not None else time.perf_counter()
        return (end - self.started) * 1000


# =============================================================================
# Default Logger
# =============================================================================

_default_logger: StructuredLogger | None = None


def get_logger(name: str = "job_hierarchy") -> StructuredLogger:
    """Return the shared logger, creating it on first use."""
    global _default_logger
    if _default_logger is None or _default_logger.name != name:
        _default_logger = StructuredLogger(name)
    return _default_logger


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    **kwargs: Any,
) -> StructuredLogger:
    """Replace the shared logger."""
    global _default_logger
    _default_logger = StructuredLogger(level=level, json_output=json_output, **kwargs)
    return _default_logger


__all__ = [
    "LogContext",
    "StructuredLogger",
    "JSONFormatter",
    "TextFormatter",
    "Timer",
    "get_logger",
    "configure_logging",
]
