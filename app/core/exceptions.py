"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_SERVER_ERROR",
        details: dict[str, Any] | None = None,
    ):
        """Initialize exception with message, status code and a stable error code."""
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        self.headers: dict[str, str] | None = None
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(
        self,
        message: str = "Resource not found",
        error_code: str = "NOT_FOUND",
        details: dict[str, Any] | None = None,
    ):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404, error_code=error_code, details=details)


class UnauthorizedException(AppException):
    """Missing or invalid bearer credentials."""

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code and a Bearer challenge."""
        super().__init__(message, status_code=401, error_code="UNAUTHORIZED")
        self.headers = {"WWW-Authenticate": "Bearer"}


class ForbiddenException(AppException):
    """Forbidden access exception (ownership or role violation)."""

    def __init__(self, message: str = "Forbidden", error_code: str = "FORBIDDEN"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403, error_code=error_code)


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(
        self,
        message: str = "Bad request",
        error_code: str = "BAD_REQUEST",
        details: dict[str, Any] | None = None,
    ):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400, error_code=error_code, details=details)


class InvalidStateException(BadRequestException):
    """Transition disallowed or precondition on current status not met."""

    def __init__(
        self,
        message: str = "Invalid state",
        error_code: str = "INVALID_STATE",
        details: dict[str, Any] | None = None,
    ):
        """Initialize with 400 status code and the offending state in details."""
        super().__init__(message, error_code=error_code, details=details)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(
        self,
        message: str = "Conflict",
        error_code: str = "CONFLICT",
        details: dict[str, Any] | None = None,
    ):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409, error_code=error_code, details=details)


class ValidationException(AppException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation error", details: dict[str, Any] | None = None):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422, error_code="VALIDATION_ERROR", details=details)


class TransientNotificationError(Exception):
    """Mail or document side effect failed.

    Never surfaced as an HTTP error: callers catch it and fold the message into
    the response metadata.
    """

    def __init__(self, message: str):
        """Initialize with a human-readable failure message."""
        self.message = message
        super().__init__(message)
