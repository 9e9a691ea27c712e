"""Service layer for password accounts: registration, login and profile updates."""
import asyncio
import logging
from dataclasses import dataclass
from functools import lru_cache
from uuid import UUID

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from core.security import create_access_token, hash_password, verify_password
from models.user import User
from services.email_service import EmailSender, dispatch_verification_email
from services.exceptions import (
    AuthError,
    ConflictError,
    ValidationError,
    VerificationRequiredError,
)
from services.verification_service import clear_verification, issue_verification

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 25


@dataclass
class RegistrationResult:
    """Outcome of a registration. pending_verification gates login until verified."""

    user: User
    pending_verification: bool


@dataclass
class LoginResult:
    """Authenticated user and their bearer token."""

    user: User
    token: str


@lru_cache
def _dummy_hash(rounds: int) -> str:
    return hash_password("timing-equalizer", rounds)


def normalize_email(email: str) -> str:
    """
    Normalize an address the way request validation does (lowercased domain).

    Values that do not parse as an address are returned unchanged; they simply
    match no account.
    """
    try:
        return validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError:
        return email


async def get_user_by_id(db: AsyncSession, user_id: UUID) -> User | None:
    """Get a user by primary key."""
    return await db.get(User, user_id)


async def get_user_by_username(db: AsyncSession, username: str) -> User | None:
    """Get a user by exact (case-sensitive) username."""
    result = await db.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Get a user by email address."""
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def list_users(
    db: AsyncSession,
    take: int = DEFAULT_PAGE_SIZE,
    skip: int = 0,
) -> list[User]:
    """List users, newest first. take is capped at 100."""
    take = max(1, min(take, MAX_PAGE_SIZE))
    result = await db.execute(
        select(User)
        .order_by(User.created_at.desc())
        .offset(max(0, skip))
        .limit(take),
    )
    return list(result.scalars().all())


async def register_user(  # noqa: PLR0913
    db: AsyncSession,
    username: str | None,
    email: str | None,
    password: str | None,
    settings: Settings,
    email_sender: EmailSender,
) -> RegistrationResult:
    """
    Create a password account.

    Without an email the account is usable immediately. With an email the account
    is created pending verification and a verification email is dispatched; a
    failed dispatch is logged and does not fail registration.

    Raises:
        ValidationError: If username or password is missing, or the password is invalid.
        ConflictError: If the username or email is already registered.

    Note:
        Does not commit. Caller (session generator) handles commit at request end.
    """
    if not username or not password:
        raise ValidationError("username and password required")

    email = normalize_email(email) if email else None
    password_hash = await asyncio.to_thread(hash_password, password, settings.bcrypt_rounds)

    if await get_user_by_username(db, username) is not None:
        raise ConflictError("Username already taken")
    if email and await get_user_by_email(db, email) is not None:
        raise ConflictError("Email already registered")

    user = User(username=username, email=email, password_hash=password_hash)
    token = issue_verification(user) if email else None

    try:
        async with db.begin_nested():
            db.add(user)
    except IntegrityError as e:
        # Another request registered the same username/email after our checks
        raise ConflictError("Username or email already registered") from e

    logger.info(
        "user_registered",
        extra={"user_id": str(user.id), "pending_verification": token is not None},
    )

    if token is None:
        return RegistrationResult(user=user, pending_verification=False)

    await dispatch_verification_email(email_sender, email, token, settings)
    return RegistrationResult(user=user, pending_verification=True)


async def _resolve_login_user(
    db: AsyncSession,
    username: str | None,
    email: str | None,
    identifier: str | None,
) -> User | None:
    if username:
        return await get_user_by_username(db, username)
    if email:
        return await get_user_by_email(db, normalize_email(email))
    if identifier and "@" in identifier:
        return await get_user_by_email(db, normalize_email(identifier))
    if identifier:
        return await get_user_by_username(db, identifier)
    return None


async def login(  # noqa: PLR0913
    db: AsyncSession,
    username: str | None,
    email: str | None,
    identifier: str | None,
    password: str | None,
    settings: Settings,
) -> LoginResult:
    """
    Authenticate with username/email and password.

    Raises:
        ValidationError: If no identifier or no password is given.
        AuthError: For an unknown account, an account without a password, or a
            wrong password. The message is identical in every case.
        VerificationRequiredError: If the account has an unverified email.
    """
    if not (username or email or identifier) or not password:
        raise ValidationError("identifier and password required")

    user = await _resolve_login_user(db, username, email, identifier)

    if user is None or user.password_hash is None:
        # Hash anyway so response time does not reveal whether the account exists
        dummy = await asyncio.to_thread(_dummy_hash, settings.bcrypt_rounds)
        await asyncio.to_thread(verify_password, password, dummy)
        raise AuthError("Invalid credentials")

    valid = await asyncio.to_thread(verify_password, password, user.password_hash)
    if not valid:
        raise AuthError("Invalid credentials")

    if user.requires_email_verification:
        raise VerificationRequiredError("Email not verified")

    return LoginResult(user=user, token=create_access_token(user, settings))


async def get_verification_status(db: AsyncSession, username: str) -> tuple[bool, bool]:
    """
    Report whether an account exists and whether its email is verified.

    Returns:
        Tuple of (exists, verified).
    """
    if not username:
        raise ValidationError("username required")
    user = await get_user_by_username(db, username)
    if user is None:
        return False, False
    return True, user.email_verified_at is not None


async def update_user(  # noqa: PLR0913
    db: AsyncSession,
    user: User,
    settings: Settings,
    email_sender: EmailSender,
    *,
    email_provided: bool = False,
    email: str | None = None,
    password: str | None = None,
) -> User:
    """
    Update a user's email and/or password.

    A changed email starts a new verification (superseding any outstanding token)
    and dispatches it. Removing the email clears all verification state.

    Raises:
        ValidationError: If nothing updatable is given or the password is invalid.
        ConflictError: If the new email belongs to another account.
    """
    if not email_provided and not password:
        raise ValidationError("No updatable fields")

    if email:
        email = normalize_email(email)
    email_changed = email_provided and email != user.email
    if email_changed and email:
        existing = await get_user_by_email(db, email)
        if existing is not None and existing.id != user.id:
            raise ConflictError("Email already registered")

    password_hash = None
    if password:
        password_hash = await asyncio.to_thread(hash_password, password, settings.bcrypt_rounds)

    token = None
    try:
        async with db.begin_nested():
            if email_changed and email:
                user.email = email
                token = issue_verification(user)
            elif email_changed:
                user.email = None
                clear_verification(user)
            if password_hash is not None:
                user.password_hash = password_hash
    except IntegrityError as e:
        raise ConflictError("Email already registered") from e
    await db.refresh(user)

    if token is not None and user.email:
        await dispatch_verification_email(email_sender, user.email, token, settings)
    return user


async def delete_user(db: AsyncSession, user: User) -> None:
    """
    Delete a user. Suggestions keep existing with their user reference nulled.

    Note:
        Does not commit. Caller (session generator) handles commit at request end.
    """
    await db.delete(user)
    await db.flush()
    logger.info("user_deleted", extra={"user_id": str(user.id)})
