"""Pydantic schemas for suggestion endpoints."""
from datetime import datetime
from uuid import UUID

from pydantic import Field

from schemas.base import CamelModel

MAX_SUGGESTION_LENGTH = 2000


class SuggestionCreate(CamelModel):
    """Create a suggestion. The message is trimmed before length checks."""

    message: str | None = Field(default=None, description="Suggestion text (1-2000 chars)")


class SuggestionCreateResponse(CamelModel):
    """Created suggestion reference."""

    id: UUID
    created_at: datetime
