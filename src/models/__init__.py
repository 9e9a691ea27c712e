"""SQLAlchemy models."""
from models.base import Base, TimestampMixin, UUIDv7Mixin
from models.suggestion import Suggestion
from models.user import User

__all__ = [
    "Base",
    "Suggestion",
    "TimestampMixin",
    "UUIDv7Mixin",
    "User",
]
