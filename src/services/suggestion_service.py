"""Service layer for user suggestions."""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from models.suggestion import Suggestion
from models.user import User
from schemas.suggestion import MAX_SUGGESTION_LENGTH
from services.exceptions import ValidationError

logger = logging.getLogger(__name__)


async def create_suggestion(db: AsyncSession, user: User, message: str | None) -> Suggestion:
    """
    Store a suggestion from the current user.

    The message is trimmed first; it must then be 1-2000 characters. The
    author's username and email are copied onto the row so the suggestion
    stays readable after the account is deleted.

    Raises:
        ValidationError: If the trimmed message is empty or too long.
    """
    text = (message or "").strip()
    if not text:
        raise ValidationError("Message is required")
    if len(text) > MAX_SUGGESTION_LENGTH:
        raise ValidationError(f"Message must be at most {MAX_SUGGESTION_LENGTH} characters")

    suggestion = Suggestion(
        message=text,
        name=user.username,
        email=user.email,
        user_id=user.id,
    )
    db.add(suggestion)
    await db.flush()
    await db.refresh(suggestion)
    logger.info("suggestion_created", extra={"user_id": str(user.id)})
    return suggestion
