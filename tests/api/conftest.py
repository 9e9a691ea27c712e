"""Shared fixtures for API tests."""
from datetime import UTC, datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings
from core.security import create_access_token, hash_password
from models.user import User

# Constant for non-existent entity ID
FAKE_UUID = "00000000-0000-0000-0000-000000000000"
PASSWORD = "secret123"


async def create_user(
    db_session: AsyncSession,
    username: str,
    email: str | None = None,
    verified: bool = True,
) -> User:
    """Insert a password account directly, bypassing registration."""
    user = User(
        username=username,
        email=email,
        password_hash=hash_password(PASSWORD, rounds=4),
        email_verified_at=datetime.now(UTC) if email and verified else None,
    )
    db_session.add(user)
    await db_session.flush()
    return user


def bearer(user: User, settings: Settings) -> dict[str, str]:
    """Authorization header for the user."""
    return {"Authorization": f"Bearer {create_access_token(user, settings)}"}


@pytest.fixture
async def user(db_session: AsyncSession) -> User:
    """A verified password account."""
    return await create_user(db_session, "demo", email="demo@example.com")


@pytest.fixture
def auth_headers(user: User, settings: Settings) -> dict[str, str]:
    """Bearer headers for the default user."""
    return bearer(user, settings)
