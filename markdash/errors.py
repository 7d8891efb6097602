"""
Error taxonomy shared by repositories, credentials and HTTP handlers.

Every error carries the HTTP status it maps to; the application-level
exception handlers turn them into the `{success: false, error}` envelope.
"""

from __future__ import annotations


class MarkdashError(Exception):
    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(MarkdashError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(MarkdashError):
    status_code = 401
    default_message = "Unauthorized"


class NotFoundError(MarkdashError):
    status_code = 404
    default_message = "Not found"


class AccessDeniedError(NotFoundError):
    """The entity exists for someone else; reported exactly like a miss."""


class ConflictError(MarkdashError):
    status_code = 409
    default_message = "Conflict"


class StorageError(MarkdashError):
    """Fault raised by a key-value backend (I/O, connectivity, capacity)."""

    status_code = 500
    default_message = "Storage failure"
