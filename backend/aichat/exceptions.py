"""
Custom exceptions for the application.
"""

from typing import Any, Optional


class AIChatError(Exception):
    """Base exception for aiChat."""

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundError(AIChatError):
    """Session, message or answer version not found."""

    pass


class ValidationError(AIChatError):
    """Missing or invalid request fields."""

    pass


class ForbiddenError(AIChatError):
    """Resource is absent or owned by another user."""

    pass


class ConfigurationError(AIChatError):
    """AI provider credentials are missing."""

    pass


class UpstreamError(AIChatError):
    """AI provider answered with a non-2xx status or the transport failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message, details={"status_code": status_code, "body": body})
        self.status_code = status_code
        self.body = body


class PersistenceError(AIChatError):
    """Store write failed."""

    pass


class DuplicateAccountError(AIChatError):
    """Username, email or phone already registered."""

    pass


class InvalidCredentialsError(AIChatError):
    """Unknown account or wrong password."""

    pass
