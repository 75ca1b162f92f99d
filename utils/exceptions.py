"""
Custom exceptions for the task manager with consistent HTTP semantics.
Every error carries the status code and the client-safe message it renders as.
"""
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum


class ErrorCategory(Enum):
    """Error categorization for handling and monitoring."""
    CLIENT_INPUT = "client_input"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    RATE_LIMIT = "rate_limit"
    UPLOAD = "upload"
    NOT_FOUND = "not_found"
    SYSTEM = "system"


class TaskGuardError(Exception):
    """Base exception for all application errors."""

    status_code: int = 500
    category: ErrorCategory = ErrorCategory.SYSTEM

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        self.headers = headers or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Client-facing body: the message plus any safe detail keys."""
        body = {"error": self.message}
        body.update(self.details)
        return body


class ClientInputError(TaskGuardError):
    """Malformed, invalid, oversized or suspicious input."""
    status_code = 400
    category = ErrorCategory.CLIENT_INPUT


class AuthError(TaskGuardError):
    """Missing, expired, malformed or invalid credentials."""
    status_code = 401
    category = ErrorCategory.AUTHENTICATION

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(message, **kwargs)


class PermissionDeniedError(TaskGuardError):
    """Authenticated, but the role is not permitted."""
    status_code = 403
    category = ErrorCategory.AUTHORIZATION


class NotFoundError(TaskGuardError):
    status_code = 404
    category = ErrorCategory.NOT_FOUND


class RateExceededError(TaskGuardError):
    """Too many requests; self-heals after the window."""
    status_code = 429
    category = ErrorCategory.RATE_LIMIT

    def __init__(self, message: str, retry_after: int, **kwargs):
        kwargs.setdefault("headers", {"Retry-After": str(retry_after)})
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
        self.details.setdefault("retry_after", retry_after)


class UploadRejectedError(TaskGuardError):
    """File failed upload validation."""
    status_code = 400
    category = ErrorCategory.UPLOAD

    def __init__(self, message: str, reason: str, **kwargs):
        super().__init__(message, **kwargs)
        self.reason = reason
        self.details.setdefault("reason", reason)


class InternalError(TaskGuardError):
    """Unexpected failure; rendered as a generic 500."""
    status_code = 500
    category = ErrorCategory.SYSTEM

    def to_dict(self) -> Dict[str, Any]:
        return {"error": "Internal server error"}
