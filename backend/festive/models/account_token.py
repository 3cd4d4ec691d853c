"""Single-use account tokens (email verification and password reset).

Only the SHA-256 of each token is stored. A token is active while ``used_at``
is null and ``expires_at`` lies in the future; consuming it sets ``used_at``.
"""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from festive.database import Base

if TYPE_CHECKING:
    from festive.models.user import User


class SingleUseTokenMixin:
    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(id={self.id}, user_id={self.user_id}, used={self.used_at is not None})>"


class EmailVerificationToken(SingleUseTokenMixin, Base):
    """Confirms ownership of the email address given at registration."""

    __tablename__ = "email_verification_tokens"

    user: Mapped["User"] = relationship(back_populates="email_verification_tokens")


class PasswordResetToken(SingleUseTokenMixin, Base):
    """Authorizes one password change. Issuing a new one retires the previous ones."""

    __tablename__ = "password_reset_tokens"

    user: Mapped["User"] = relationship(back_populates="password_reset_tokens")
