"""User registration, login and account endpoints."""
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user, get_email_sender, get_settings
from core.config import Settings
from core.rate_limit_config import RateLimitedRoute
from core.rate_limiter import rate_limit
from models.user import User
from schemas.user import (
    LoginResponse,
    RegistrationResponse,
    UserCreate,
    UserLogin,
    UserResponse,
    UserUpdate,
    VerificationStatusResponse,
)
from services import user_service
from services.email_service import EmailSender
from services.exceptions import NotFoundError

router = APIRouter(prefix="/users", tags=["users"])


@router.post(
    "",
    response_model=RegistrationResponse,
    response_model_exclude_unset=True,
    status_code=201,
    dependencies=[Depends(rate_limit(RateLimitedRoute.REGISTER))],
)
async def register(
    data: UserCreate,
    response: Response,
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
    email_sender: EmailSender = Depends(get_email_sender),
) -> RegistrationResponse:
    """
    Register a password account.

    With an email the account is pending verification: the response is 202 and
    carries no user. Without an email the account is usable at once (201).
    """
    result = await user_service.register_user(
        db, data.username, data.email, data.password, settings, email_sender,
    )
    if result.pending_verification:
        response.status_code = 202
        return RegistrationResponse(pending_verification=True)
    return RegistrationResponse(
        pending_verification=False,
        user=UserResponse.model_validate(result.user),
    )


@router.post("/login", response_model=LoginResponse)
async def login(
    data: UserLogin,
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
) -> LoginResponse:
    """Exchange credentials for a bearer token."""
    result = await user_service.login(
        db, data.username, data.email, data.identifier, data.password, settings,
    )
    return LoginResponse(user=UserResponse.model_validate(result.user), token=result.token)


@router.get("", response_model=list[UserResponse])
async def list_users(
    take: int = Query(default=user_service.DEFAULT_PAGE_SIZE, ge=1),
    skip: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_async_session),
) -> list[UserResponse]:
    """List users, newest first. take is capped at 100."""
    users = await user_service.list_users(db, take=take, skip=skip)
    return [UserResponse.model_validate(u) for u in users]


@router.get(
    "/verification-status",
    response_model=VerificationStatusResponse,
    dependencies=[Depends(rate_limit(RateLimitedRoute.VERIFICATION_STATUS))],
)
async def verification_status(
    username: str | None = Query(default=None),
    db: AsyncSession = Depends(get_async_session),
) -> VerificationStatusResponse:
    """Polled by the frontend while a user waits for their verification email."""
    exists, verified = await user_service.get_verification_status(db, username or "")
    return VerificationStatusResponse(exists=exists, verified=verified)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: UUID,
    db: AsyncSession = Depends(get_async_session),
) -> UserResponse:
    """Get a single user."""
    user = await user_service.get_user_by_id(db, user_id)
    if user is None:
        raise NotFoundError("Not found")
    return UserResponse.model_validate(user)


def _require_self(user_id: UUID, current_user: User) -> None:
    # Other accounts are reported as missing rather than forbidden
    if current_user.id != user_id:
        raise NotFoundError("Not found")


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: UUID,
    data: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
    settings: Settings = Depends(get_settings),
    email_sender: EmailSender = Depends(get_email_sender),
) -> UserResponse:
    """
    Update the current user's email and/or password.

    Changing the email restarts verification; sending null removes it.
    """
    _require_self(user_id, current_user)
    user = await user_service.update_user(
        db,
        current_user,
        settings,
        email_sender,
        email_provided="email" in data.model_fields_set,
        email=data.email,
        password=data.password,
    )
    return UserResponse.model_validate(user)


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> None:
    """Delete the current user. Their suggestions are kept without the link."""
    _require_self(user_id, current_user)
    await user_service.delete_user(db, current_user)
