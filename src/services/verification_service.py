"""Service layer for the email verification token lifecycle."""
import logging
import secrets
from datetime import UTC, datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from models.user import User
from services.email_service import EmailSender, dispatch_verification_email
from services.exceptions import ExpiredTokenError, InvalidTokenError, ValidationError

logger = logging.getLogger(__name__)

VERIFICATION_TOKEN_BYTES = 32


def generate_verification_token() -> str:
    """
    Generate an unguessable single-use verification token.

    Returns:
        64 lowercase hex characters (256 bits of randomness). The token carries no
        account information and no expiry; expiry is tracked server-side.
    """
    return secrets.token_hex(VERIFICATION_TOKEN_BYTES)


def issue_verification(user: User, now: datetime | None = None) -> str:
    """
    Attach a fresh verification token to the user, superseding any previous one.

    Does not flush. The caller persists the user.
    """
    token = generate_verification_token()
    user.email_verified_at = None
    user.email_verification_token = token
    user.email_verification_sent_at = now or datetime.now(UTC)
    return token


def clear_verification(user: User) -> None:
    """Drop verification state entirely (used when an email is removed)."""
    user.email_verified_at = None
    user.email_verification_token = None
    user.email_verification_sent_at = None


def is_expired(sent_at: datetime | None, settings: Settings, now: datetime | None = None) -> bool:
    """True if a token issued at sent_at is older than the configured window."""
    if sent_at is None:
        return False
    now = now or datetime.now(UTC)
    return now - sent_at > timedelta(hours=settings.email_verification_expires_hours)


async def verify_email(
    db: AsyncSession,
    token: str | None,
    settings: Settings,
) -> User:
    """
    Consume a verification token and mark the owning account verified.

    Args:
        db: Database session.
        token: Token from the verification link.
        settings: Application settings (expiry window).

    Returns:
        The verified user.

    Raises:
        ValidationError: If the token is missing.
        InvalidTokenError: If no account holds the token (including consumed tokens).
        ExpiredTokenError: If the token is older than the expiry window.

    Note:
        The verified timestamp and the cleared token are written by a single UPDATE
        guarded on the token value, so a concurrent consumer sees zero rows and
        fails with InvalidTokenError.
    """
    if not token:
        raise ValidationError("Missing token")

    result = await db.execute(
        select(User).where(User.email_verification_token == token),
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise InvalidTokenError("Invalid or expired token")

    now = datetime.now(UTC)
    if is_expired(user.email_verification_sent_at, settings, now):
        raise ExpiredTokenError("Token expired")

    updated = await db.execute(
        update(User)
        .where(User.id == user.id, User.email_verification_token == token)
        .values(
            email_verified_at=now,
            email_verification_token=None,
            email_verification_sent_at=None,
        )
        .returning(User.id)
        .execution_options(synchronize_session=False),
    )
    if updated.scalar_one_or_none() is None:
        raise InvalidTokenError("Invalid or expired token")

    await db.refresh(user)
    logger.info("email_verified", extra={"user_id": str(user.id)})
    return user


async def resend_verification(
    db: AsyncSession,
    email: str,
    settings: Settings,
    email_sender: EmailSender,
) -> bool:
    """
    Issue a fresh token to an unverified account and dispatch it.

    Returns:
        True if an email was dispatched. Unknown or already verified addresses
        return False; callers must not reveal which case occurred.
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None or user.email_verified_at is not None:
        return False

    token = issue_verification(user)
    await db.flush()
    return await dispatch_verification_email(email_sender, email, token, settings)
