"""Password hashing and bearer token signing."""
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import bcrypt
import jwt

from core.config import Settings
from services.exceptions import InvalidTokenError, ValidationError

if TYPE_CHECKING:
    from models.user import User

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
# bcrypt only reads the first 72 bytes of its input and rejects longer values
MAX_PASSWORD_BYTES = 72
DEFAULT_BCRYPT_ROUNDS = 10


def hash_password(plain_password: str | None, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """
    Hash a password with bcrypt.

    Raises:
        ValidationError: If the password is missing, shorter than 6 characters,
            or longer than bcrypt's 72 byte input limit.
    """
    if not plain_password or len(plain_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )
    encoded = plain_password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str | None, hashed_password: str | None) -> bool:
    """Check a password against a bcrypt hash. Returns False on any mismatch."""
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            hashed_password.encode("utf-8"),
        )
    except ValueError:
        # Malformed stored hash or over-long input
        return False


@dataclass
class TokenClaims:
    """Identity claims carried by a bearer token."""

    id: str
    username: str
    provider: str | None
    exp: int


def create_access_token(user: "User", settings: Settings) -> str:
    """Sign a short-lived bearer token for the user."""
    now = datetime.now(UTC)
    payload = {
        "id": str(user.id),
        "username": user.username,
        "provider": user.provider,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_expires_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> TokenClaims:
    """
    Verify a bearer token and return its claims.

    Raises:
        InvalidTokenError: For every failure (bad signature, bad encoding, expired,
            missing claims). The cause is only logged, never returned.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "id", "username"]},
        )
    except jwt.PyJWTError as e:
        logger.info("bearer_token_rejected", extra={"reason": type(e).__name__})
        raise InvalidTokenError("Invalid token") from e

    return TokenClaims(
        id=str(payload["id"]),
        username=payload["username"],
        provider=payload.get("provider"),
        exp=int(payload["exp"]),
    )
