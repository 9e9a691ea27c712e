"""Suggestion endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_current_user
from models.user import User
from schemas.suggestion import SuggestionCreate, SuggestionCreateResponse
from services import suggestion_service

router = APIRouter(prefix="/suggestions", tags=["suggestions"])


@router.post("", response_model=SuggestionCreateResponse, status_code=201)
async def create_suggestion(
    data: SuggestionCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_session),
) -> SuggestionCreateResponse:
    """Leave a suggestion (1-2000 characters after trimming)."""
    suggestion = await suggestion_service.create_suggestion(db, current_user, data.message)
    return SuggestionCreateResponse.model_validate(suggestion)
