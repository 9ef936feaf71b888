"""Error taxonomy shared by the directory operations and the HTTP layer."""
from __future__ import annotations

from typing import Optional


class DirectoryError(RuntimeError):
    """Base class for request-terminating failures.

    ``message`` may be ``None`` for denials that are reported without a body.
    """

    status_code = 500

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message


class BadRequestError(DirectoryError):
    """Raised when a request is absent, malformed or out of range."""

    status_code = 400


class UnauthenticatedError(DirectoryError):
    """Raised when no caller identity could be resolved."""

    status_code = 401


class ForbiddenError(DirectoryError):
    """Raised when the caller lacks the rights for the requested action."""

    status_code = 403


class NotFoundError(DirectoryError):
    """Raised when the referenced login does not exist."""

    status_code = 404


class ConflictError(DirectoryError):
    """Raised on duplicate logins or when a record is already in the requested state."""

    status_code = 409


class ConfigurationError(RuntimeError):
    """Raised when the service is started with invalid settings."""


__all__ = [
    "BadRequestError",
    "ConfigurationError",
    "ConflictError",
    "DirectoryError",
    "ForbiddenError",
    "NotFoundError",
    "UnauthenticatedError",
]
