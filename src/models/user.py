"""User model for local and OAuth-linked accounts."""
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from models.base import Base, TimestampMixin, UUIDv7Mixin

if TYPE_CHECKING:
    from models.suggestion import Suggestion


class User(Base, UUIDv7Mixin, TimestampMixin):
    """
    User account.

    An account is created either by password registration or by the first
    successful OAuth login. email_verification_token is non-null exactly while a
    verification is outstanding.
    """

    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_provider_provider_id", "provider", "provider_id"),
    )

    username: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    email: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
    )
    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="bcrypt hash; null for OAuth-only accounts",
    )
    provider: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
        comment="OAuth provider name, e.g. 'google', 'github'",
    )
    provider_id: Mapped[str | None] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
        comment="Account id at the OAuth provider",
    )
    email_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    email_verification_token: Mapped[str | None] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
    )
    email_verification_sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="Issuance time of the outstanding verification token",
    )

    suggestions: Mapped[list["Suggestion"]] = relationship(
        back_populates="user",
        passive_deletes=True,
    )

    @property
    def requires_email_verification(self) -> bool:
        """Password login is gated until an attached email is verified."""
        return self.email is not None and self.email_verified_at is None
