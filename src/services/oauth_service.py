"""Service layer for linking external OAuth identities to local accounts."""
import logging
import re
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.oauth import ExternalProfile
from models.user import User
from services.exceptions import ConflictError, ValidationError
from services.user_service import get_user_by_email

logger = logging.getLogger(__name__)

USERNAME_BASE_MAX_LENGTH = 24
USERNAME_MAX_LENGTH = 30
MAX_USERNAME_ATTEMPTS = 50
MAX_CREATE_ATTEMPTS = 3

_DISALLOWED_USERNAME_CHARS = re.compile(r"[^A-Za-z0-9_]")


def sanitize_username(value: str) -> str:
    """Replace disallowed characters with '_' and truncate to the base length."""
    return _DISALLOWED_USERNAME_CHARS.sub("_", value.strip())[:USERNAME_BASE_MAX_LENGTH]


def derive_base_username(profile: ExternalProfile) -> str:
    """
    Pick a username from the profile hints.

    Order: provider login, display name, email local-part, then
    '<provider>_<external id>'. A hint that sanitizes to nothing but
    underscores is skipped.
    """
    local_part = profile.email.split("@", 1)[0] if profile.email else None
    for hint in (profile.username, profile.display_name, local_part):
        if not hint:
            continue
        candidate = sanitize_username(hint)
        if candidate.strip("_"):
            return candidate
    return sanitize_username(f"{profile.provider}_{profile.external_id}")


def candidate_usernames(base: str) -> list[str]:
    """base, base_1, base_2, ... bounded by MAX_USERNAME_ATTEMPTS."""
    candidates = [base]
    candidates.extend(
        f"{base}_{n}"[:USERNAME_MAX_LENGTH] for n in range(1, MAX_USERNAME_ATTEMPTS)
    )
    return candidates


async def find_available_username(db: AsyncSession, base: str) -> str:
    """
    Return the first free candidate for base.

    Raises:
        ConflictError: If every candidate is taken.
    """
    candidates = candidate_usernames(base)
    result = await db.execute(select(User.username).where(User.username.in_(candidates)))
    taken = set(result.scalars().all())
    for candidate in candidates:
        if candidate not in taken:
            return candidate
    raise ConflictError("Could not find an available username")


async def get_user_by_provider(
    db: AsyncSession,
    provider: str,
    provider_id: str,
) -> User | None:
    """Get the account linked to an external identity."""
    result = await db.execute(
        select(User).where(User.provider == provider, User.provider_id == provider_id),
    )
    return result.scalar_one_or_none()


async def _claimable_email(db: AsyncSession, email: str | None) -> str | None:
    """The profile email, unless another account already owns it."""
    if email and await get_user_by_email(db, email) is not None:
        logger.info("oauth_email_already_registered")
        return None
    return email


async def upsert_oauth_user(db: AsyncSession, profile: ExternalProfile) -> User:
    """
    Find or create the account for an external identity.

    Re-login returns the existing account unchanged. A new account gets a
    username derived from the profile and, if the provider supplied an email,
    is marked verified immediately.

    Concurrent first logins for the same identity race on the unique
    provider_id constraint. The loser's insert fails inside a savepoint, which
    is rolled back without touching the rest of the session, and the winner's
    row is returned.

    Raises:
        ValidationError: If the profile has no external id.
        ConflictError: If no username could be allocated.

    Note:
        Does not commit. Caller (session generator) handles commit at request end.
    """
    if not profile.external_id:
        raise ValidationError("OAuth profile is missing an id")

    existing = await get_user_by_provider(db, profile.provider, profile.external_id)
    if existing is not None:
        return existing

    base = derive_base_username(profile)
    email = await _claimable_email(db, profile.email)

    for _ in range(MAX_CREATE_ATTEMPTS):
        user = User(
            username=await find_available_username(db, base),
            email=email,
            provider=profile.provider,
            provider_id=profile.external_id,
            email_verified_at=datetime.now(UTC) if email else None,
        )
        try:
            async with db.begin_nested():
                db.add(user)
        except IntegrityError:
            existing = await get_user_by_provider(db, profile.provider, profile.external_id)
            if existing is not None:
                logger.info(
                    "oauth_link_race_resolved",
                    extra={"provider": profile.provider, "user_id": str(existing.id)},
                )
                return existing
            # Lost a race on username or email instead; pick again
            email = await _claimable_email(db, email)
            continue

        logger.info(
            "oauth_user_created",
            extra={"provider": profile.provider, "user_id": str(user.id)},
        )
        return user

    raise ConflictError("Could not create account")
