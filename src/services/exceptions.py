"""
Shared exceptions for service layer operations.

Every failure a flow can report is an AppError subclass carrying the HTTP status
and a stable machine-readable code. Services raise these; only the central
handlers in api/errors.py turn them into responses.
"""
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from core.rate_limit_config import RateLimitResult


class AppError(Exception):
    """Base class for failures that map to a known response."""

    status_code: int = 500
    code: str = "INTERNAL"
    default_message: str = "Internal server error"
    headers: dict[str, str] | None = None

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    """Raised when input is missing or malformed."""

    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Bad request"


class AuthError(AppError):
    """
    Raised when credentials or a bearer token are rejected.

    Login uses a single message for every credential failure so callers cannot
    tell an unknown account from a wrong password.
    """

    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Invalid credentials"
    headers = {"WWW-Authenticate": "Bearer"}


class VerificationRequiredError(AppError):
    """Raised when a password login targets an account whose email is unverified."""

    status_code = 403
    code = "EMAIL_NOT_VERIFIED"
    default_message = "Email not verified"


class InvalidTokenError(AppError):
    """Raised for unknown, consumed, malformed or tampered tokens."""

    status_code = 400
    code = "INVALID_TOKEN"
    default_message = "Invalid or expired token"


class ExpiredTokenError(AppError):
    """Raised when an email verification token is older than the expiry window."""

    status_code = 400
    code = "TOKEN_EXPIRED"
    default_message = "Token expired"


class NotFoundError(AppError):
    """Raised when a resource does not exist or is not visible to the caller."""

    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class ConflictError(AppError):
    """Raised when a write would violate a uniqueness rule."""

    status_code = 409
    code = "CONFLICT"
    default_message = "Conflict"


class RateLimitedError(AppError):
    """Raised when a client exceeds the request budget for a route."""

    status_code = 429
    code = "RATE_LIMITED"
    default_message = "Too many requests, please try again later."

    def __init__(
        self,
        result: "RateLimitResult",
        message: str | None = None,
    ) -> None:
        self.result = result
        super().__init__(message)


class InternalError(AppError):
    """Catch-all for unexpected failures."""


class ServiceUnavailableError(AppError):
    """Raised when a collaborator required by the flow (e.g. Redis) is down."""

    status_code = 503
    code = "SERVICE_UNAVAILABLE"
    default_message = "Service temporarily unavailable"
