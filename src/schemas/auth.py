"""Pydantic schemas for authentication endpoints."""
from pydantic import EmailStr

from schemas.base import CamelModel


class VerifyEmailResponse(CamelModel):
    """JSON response of a successful email verification."""

    success: bool = True
    username: str
    verified: bool = True


class ResendVerificationRequest(CamelModel):
    """Request a new verification email for an address."""

    email: EmailStr


class ResendVerificationResponse(CamelModel):
    """Identical for known and unknown addresses."""

    message: str = "If the account exists and is unverified, a new email has been sent."
