"""
Error taxonomy for the collection tracker.

Every failure the tracker reports to a caller is a TrackerError subclass.
Each class fixes three things: an ErrorCode for programmatic handling, the
HTTP status used at the API boundary, and the default message shown to
callers. An ErrorContext records which job, caller and operation failed.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    # 1xxx input
    VALIDATION_ERROR = "ERR_1000"
    # 2xxx lookup
    NOT_FOUND = "ERR_2000"
    # 3xxx authorization
    FORBIDDEN = "ERR_3000"
    # 4xxx lifecycle
    NOT_READY = "ERR_4000"
    ALREADY_TERMINAL = "ERR_4001"
    INVALID_TRANSITION = "ERR_4002"
    # 5xxx store
    ALREADY_EXISTS = "ERR_5000"
    # 9xxx internal
    INTERNAL_ERROR = "ERR_9000"
    STORAGE_ERROR = "ERR_9001"


@dataclass
class ErrorContext:
    """Where an error happened."""

    job_id: str | None = None
    caller_id: str | None = None
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        extra = data.pop("extra")
        return {**data, **extra}


class TrackerError(Exception):
    """
    Base exception for all collection tracker errors.

    Subclasses override the class attributes; instances may still pass an
    explicit ``code`` or ``message``. ``cause`` is chained as ``__cause__``.
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    http_status: int = 500
    default_message: str = "Internal tracker error"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        self.message = message or self.default_message
        super().__init__(self.message)
        if code is not None:
            self.code = code
        self.context = context if context is not None else ErrorContext()
        self.__cause__ = cause

    @property
    def cause(self) -> BaseException | None:
        return self.__cause__

    def __str__(self) -> str:
        text = f"[{self.code.value}] {self.message}"
        if self.context.job_id:
            text += f" (job_id={self.context.job_id})"
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "code": self.code.value,
            "message": self.message,
            "http_status": self.http_status,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause is not None else None,
        }


class _JobScopedError(TrackerError):
    """Error about one job; ``job_id`` is mirrored into the context."""

    def __init__(self, message: str | None = None, *, job_id: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.job_id = job_id
        if job_id and not self.context.job_id:
            self.context.job_id = job_id


# Caller-facing


class ValidationError(TrackerError):
    """Malformed input, rejected before any state change."""

    code = ErrorCode.VALIDATION_ERROR
    http_status = 400
    default_message = "Invalid request"

    def __init__(self, message: str | None = None, *, field_name: str | None = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field_name = field_name


class NotFoundError(_JobScopedError):
    code = ErrorCode.NOT_FOUND
    http_status = 404
    default_message = "Collection not found"


class ForbiddenError(TrackerError):
    """Caller is neither the owner of the job nor an admin."""

    code = ErrorCode.FORBIDDEN
    http_status = 403
    default_message = "Access denied"


# Lifecycle


class LifecycleError(TrackerError):
    """The job's current state does not allow the requested operation."""

    code = ErrorCode.INVALID_TRANSITION
    http_status = 409
    default_message = "Operation not allowed in current state"


class NotReadyError(LifecycleError):
    code = ErrorCode.NOT_READY
    http_status = 400
    default_message = "Collection not completed yet"


class AlreadyTerminalError(LifecycleError):
    code = ErrorCode.ALREADY_TERMINAL
    http_status = 400
    default_message = "Cannot cancel completed collection"


class InvalidTransitionError(LifecycleError):
    """A move outside the transition table, e.g. a report on a terminal job."""

    code = ErrorCode.INVALID_TRANSITION
    http_status = 409
    default_message = "Invalid transition"

    def __init__(
        self,
        message: str | None = None,
        *,
        from_state: str | None = None,
        to_state: str | None = None,
        **kwargs,
    ):
        if message is None and from_state and to_state:
            message = f"Invalid transition: {from_state} -> {to_state}"
        super().__init__(message, **kwargs)
        self.from_state = from_state
        self.to_state = to_state


# Store


class AlreadyExistsError(_JobScopedError):
    code = ErrorCode.ALREADY_EXISTS
    http_status = 409
    default_message = "Job already exists"

    def __init__(self, message: str | None = None, *, job_id: str | None = None, **kwargs):
        if message is None and job_id:
            message = f"Job {job_id} already exists"
        super().__init__(message, job_id=job_id, **kwargs)


class StorageError(TrackerError):
    """Unexpected storage fault; fatal, surfaced unchanged."""

    code = ErrorCode.STORAGE_ERROR
    http_status = 500
    default_message = "Storage failure"


def is_caller_error(error: BaseException) -> bool:
    """True for tracker errors that map to a 4xx response."""
    return isinstance(error, TrackerError) and 400 <= error.http_status < 500


__all__ = [
    "ErrorCode",
    "ErrorContext",
    "TrackerError",
    "ValidationError",
    "NotFoundError",
    "ForbiddenError",
    "LifecycleError",
    "NotReadyError",
    "AlreadyTerminalError",
    "InvalidTransitionError",
    "AlreadyExistsError",
    "StorageError",
    "is_caller_error",
]
