"""Custom exceptions for the offer engine.

Every business failure carries a stable ``code`` from :class:`ErrorCode` so
transport layers can map it without parsing messages.
"""

import enum
from typing import Any


class ErrorCode(str, enum.Enum):
    VALIDATION = "validation_error"
    NOT_FOUND = "not_found"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    INVALID_STATE = "invalid_state"
    CONFLICT = "conflict"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    INTERNAL = "internal"


class AppException(Exception):
    """Base exception for application errors."""

    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppException):
    code = ErrorCode.VALIDATION

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=422, details=details)


class NotFoundError(AppException):
    code = ErrorCode.NOT_FOUND

    def __init__(self, resource: str, identifier: str | None = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(
            message=message,
            status_code=404,
            details={"resource": resource, "id": identifier} if identifier else {"resource": resource},
        )


class AuthenticationError(AppException):
    code = ErrorCode.UNAUTHENTICATED

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message=message, status_code=401)


class AuthorizationError(AppException):
    code = ErrorCode.FORBIDDEN

    def __init__(self, message: str = "Access denied"):
        super().__init__(message=message, status_code=403)


class InvalidStateError(AppException):
    """The action is not valid for the entity's current status."""

    code = ErrorCode.INVALID_STATE

    def __init__(self, message: str, current_status: str | None = None):
        details = {"current_status": current_status} if current_status else {}
        super().__init__(message=message, status_code=400, details=details)
        self.current_status = current_status


class ConflictError(AppException):
    """A concurrent writer got there first."""

    code = ErrorCode.CONFLICT

    def __init__(self, message: str, current_status: str | None = None):
        details = {"current_status": current_status} if current_status else {}
        super().__init__(message=message, status_code=409, details=details)
        self.current_status = current_status


class DeadlineExceededError(AppException):
    code = ErrorCode.DEADLINE_EXCEEDED

    def __init__(self, timeout_seconds: float):
        super().__init__(
            message=f"Operation did not complete within {timeout_seconds}s",
            status_code=504,
            details={"timeout_seconds": timeout_seconds},
        )
