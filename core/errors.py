"""
core/errors.py -- Domain error taxonomy shared by every layer.

Services and dependencies raise these; api/main.py owns the single exception
handler that turns them into the JSON envelope. Each class pins the HTTP
status it maps to so route handlers never pick status codes for domain
failures themselves.

Messages for credential and token failures are deliberately non-specific.
InvalidCredentialsError never says whether the email exists, and
InvalidOrExpiredTokenError never says whether the token expired or never
existed.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for every error that maps to a client-facing response."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, *, errors: list[dict] | None = None) -> None:
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(ServiceError):
    status_code = 400
    default_message = "Validation failed"


class ConflictError(ServiceError):
    status_code = 409
    default_message = "Resource already exists"


class DuplicateAccountError(ConflictError):
    default_message = "Email already exists"


class InvalidCredentialsError(ServiceError):
    status_code = 401
    default_message = "Invalid credentials"


class EmailNotVerifiedError(ServiceError):
    status_code = 401
    default_message = "Please verify your email address before logging in"


class InvalidOrExpiredTokenError(ServiceError):
    status_code = 400
    default_message = "Invalid or expired token"


class UnauthenticatedError(ServiceError):
    status_code = 401
    default_message = "Not authorized"


class ForbiddenError(ServiceError):
    status_code = 403
    default_message = "You do not have permission to perform this action"


class NotFoundError(ServiceError):
    status_code = 404
    default_message = "Resource not found"


class UpstreamFailureError(ServiceError):
    """An external dependency (mail server, database) failed the request."""

    status_code = 500
