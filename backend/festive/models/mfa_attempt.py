"""Two-factor verification attempt log."""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from festive.database import Base

if TYPE_CHECKING:
    from festive.models.user import User


class MfaCodeType:
    TOTP = "totp"
    BACKUP = "backup"


class MfaAttempt(Base):
    """One 2FA code submission. Insert-only; feeds the brute-force window."""

    __tablename__ = "mfa_attempts"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    user_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), index=True
    )
    success: Mapped[bool] = mapped_column(Boolean, default=False)
    ip_address: Mapped[str | None] = mapped_column(String(45), index=True)
    user_agent: Mapped[str | None] = mapped_column(String(500))
    code_type: Mapped[str] = mapped_column(String(10))
    # Set client-side so window queries compare like with like on every backend
    attempted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), index=True
    )

    user: Mapped["User | None"] = relationship(back_populates="mfa_attempts")

    def __repr__(self) -> str:
        return f"<MfaAttempt(user_id={self.user_id}, type={self.code_type}, success={self.success})>"
