"""User backup code model."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from festive.database import Base

if TYPE_CHECKING:
    from festive.models.user import User


class UserRecoveryCode(Base):
    """Single-use backup code for 2FA login. Only the hash is stored."""

    __tablename__ = "user_recovery_codes"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    code_hash: Mapped[str] = mapped_column(String(64), index=True)  # SHA-256 hex
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())

    user: Mapped["User"] = relationship(back_populates="recovery_codes")

    def __repr__(self) -> str:
        return f"<UserRecoveryCode(id={self.id}, user_id={self.user_id}, used={self.used_at is not None})>"
