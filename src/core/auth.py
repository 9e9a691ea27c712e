"""Bearer token authentication dependency."""
import logging
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, get_settings
from core.security import decode_access_token
from db.session import get_async_session
from models.user import User
from services.exceptions import AuthError, InvalidTokenError, NotFoundError

logger = logging.getLogger(__name__)


# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


async def authenticate_token(db: AsyncSession, token: str, settings: Settings) -> User:
    """
    Resolve a bearer token to its user.

    Raises:
        AuthError: If the token fails verification or carries a malformed id.
        NotFoundError: If the token is valid but the account no longer exists.
    """
    try:
        claims = decode_access_token(token, settings)
        user_id = UUID(claims.id)
    except (InvalidTokenError, ValueError) as e:
        raise AuthError("Invalid token") from e

    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> User:
    """Dependency that validates the bearer token and returns the current user."""
    if credentials is None:
        raise AuthError("Missing token")
    return await authenticate_token(db, credentials.credentials, settings)
