"""Pydantic schemas for user and account endpoints."""
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import EmailStr, Field, field_validator

from schemas.base import CamelModel


def _blank_to_none(value: Any) -> Any:
    """Treat empty or whitespace-only strings as absent."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


class UserCreate(CamelModel):
    """
    Registration request.

    username and password are optional here so that missing values are reported
    by the registration flow with its own message.
    """

    username: str | None = Field(default=None, max_length=255)
    email: EmailStr | None = None
    password: str | None = None

    @field_validator("username", "email", mode="before")
    @classmethod
    def blank_as_missing(cls, value: Any) -> Any:
        """Empty strings are treated as not provided."""
        return _blank_to_none(value)


class UserLogin(CamelModel):
    """
    Login request.

    The account is looked up by username if given, else by email, else by
    identifier (email if it contains '@', username otherwise).
    """

    username: str | None = None
    email: str | None = None
    identifier: str | None = None
    password: str | None = None


class UserUpdate(CamelModel):
    """
    Partial update of the current user.

    Sending email=null (or "") removes the email; omitting it leaves it unchanged.
    """

    email: EmailStr | None = None
    password: str | None = None

    @field_validator("email", mode="before")
    @classmethod
    def blank_as_missing(cls, value: Any) -> Any:
        """Empty strings clear the email."""
        return _blank_to_none(value)


class UserResponse(CamelModel):
    """
    Sanitized user returned by every endpoint.

    Never includes the password hash or verification token fields.
    """

    id: UUID
    username: str
    email: str | None
    provider: str | None
    provider_id: str | None
    email_verified_at: datetime | None
    created_at: datetime
    updated_at: datetime


class RegistrationResponse(CamelModel):
    """
    Registration outcome.

    user is only present when no verification is pending.
    """

    pending_verification: bool
    user: UserResponse | None = None


class LoginResponse(CamelModel):
    """Successful login: sanitized user plus bearer token."""

    user: UserResponse
    token: str


class VerificationStatusResponse(CamelModel):
    """Polling response for the frontend verification page."""

    exists: bool
    verified: bool
