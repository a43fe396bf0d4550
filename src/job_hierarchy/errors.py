"""
Exceptions raised by job-hierarchy.

Every library error derives from HierarchyError and carries:
- an ErrorCode, grouped by the thousands digit (2xxx caller, 3xxx store)
- a ``retryable`` flag that callers and the lifecycle adapter consult
- an ErrorContext naming the job, workflow and store key involved

Redis failures are translated into the Store* classes by the Redis store.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable identifiers for each error class."""

    # Caller errors (2xxx)
    VALIDATION_ERROR = "ERR_2000"
    INVALID_JOB_ID = "ERR_2001"
    INVALID_STATUS = "ERR_2002"
    ILLEGAL_TRANSITION = "ERR_2003"

    # Backing store (3xxx)
    STORE_ERROR = "ERR_3000"
    STORE_CONNECTION_ERROR = "ERR_3001"
    STORE_TIMEOUT = "ERR_3002"

    # Settings (6xxx)
    CONFIG_ERROR = "ERR_6000"

    # Anything else (9xxx)
    INTERNAL_ERROR = "ERR_9000"


@dataclass
class ErrorContext:
    """Where an error happened: job, workflow, store operation and key."""

    job_id: str | None = None
    workflow_id: str | None = None
    operation: str | None = None
    key: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "workflow_id": self.workflow_id,
            "operation": self.operation,
            "key": self.key,
            **self.extra,
        }


class HierarchyError(Exception):
    """
    Root of the job-hierarchy exception tree.

    ``code`` and ``retryable`` are class defaults that a single instance may
    override. ``cause`` keeps the driver exception that was translated, if any.
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        self.context = context if context is not None else ErrorContext()
        self.cause = cause

    def __str__(self) -> str:
        text = f"[{self.code.value}] {self.message}"
        if self.context.job_id:
            text += f" (job_id={self.context.job_id})"
        return text

    def to_dict(self) -> dict[str, Any]:
        """Flat representation for structured log records."""
        return {
            "error_type": type(self).__name__,
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
            "cause": None if self.cause is None else str(self.cause),
        }


# =============================================================================
# Caller errors
# =============================================================================


class ValidationError(HierarchyError):
    """Base class for caller/programming errors detected before any write."""

    code = ErrorCode.VALIDATION_ERROR
    retryable = False


class InvalidJobIdError(ValidationError):
    """Job id is empty or malformed."""

    code = ErrorCode.INVALID_JOB_ID

    def __init__(
        self,
        message: str = "Invalid job id",
        *,
        job_id: Any = None,
        **kwargs,
    ):
        if job_id is not None:
            message = f"Invalid job id: {job_id!r}"
        super().__init__(message, **kwargs)
        self.job_id = job_id


class InvalidStatusError(ValidationError):
    """Requested status is not one of the settable job statuses."""

    code = ErrorCode.INVALID_STATUS

    def __init__(
        self,
        message: str = "Invalid job status",
        *,
        status: Any = None,
        **kwargs,
    ):
        if status is not None:
            message = f"Invalid job status: {status!r}"
        super().__init__(message, **kwargs)
        self.status = status


class IllegalTransitionError(ValidationError):
    """Transition between two known statuses is not permitted."""

    code = ErrorCode.ILLEGAL_TRANSITION

    def __init__(
        self,
        message: str = "Illegal status transition",
        *,
        from_status: Any = None,
        to_status: Any = None,
        **kwargs,
    ):
        if from_status is not None and to_status is not None:
            message = f"Illegal status transition: {_value(from_status)} -> {_value(to_status)}"
        super().__init__(message, **kwargs)
        self.from_status = from_status
        self.to_status = to_status


# =============================================================================
# Backing store errors
# =============================================================================


class StoreError(HierarchyError):
    """Base class for backing-store failures."""

    code = ErrorCode.STORE_ERROR
    retryable = False


class StoreConnectionError(StoreError):
    """Connection to the backing store failed or was lost."""

    code = ErrorCode.STORE_CONNECTION_ERROR
    retryable = True


class StoreTimeoutError(StoreError):
    """A store round trip timed out."""

    code = ErrorCode.STORE_TIMEOUT
    retryable = True

    def __init__(
        self,
        message: str = "Store operation timed out",
        *,
        timeout: float | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.timeout = timeout


# =============================================================================
# Settings errors
# =============================================================================


class ConfigError(HierarchyError):
    """A setting is malformed or out of range."""

    code = ErrorCode.CONFIG_ERROR
    retryable = False


# =============================================================================
# Worker signals
# =============================================================================


class JobShutdown(Exception):
    """Raised inside a running job when its worker process is shutting down.

    The lifecycle adapter treats it as "will be retried", never as a failure.
    """


def is_retryable(error: BaseException) -> bool:
    """Whether retrying the failed call could succeed.

    Library errors answer through their ``retryable`` flag. Of the builtin
    exceptions only timeouts and dropped connections count.
    """
    if isinstance(error, HierarchyError):
        return error.retryable
    return isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError))


def _value(status: Any) -> str:
    return str(getattr(status, "value", status))


__all__ = [
    "ErrorCode",
    "ErrorContext",
    "HierarchyError",
    "ValidationError",
    "InvalidJobIdError",
    "InvalidStatusError",
    "IllegalTransitionError",
    "StoreError",
    "StoreConnectionError",
    "StoreTimeoutError",
    "ConfigError",
    "JobShutdown",
    "is_retryable",
]
