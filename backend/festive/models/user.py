"""User model for authentication."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from festive.database import Base
from festive.security.encryption import decrypt_value, encrypt_value, normalize_email, searchable_hash

if TYPE_CHECKING:
    from festive.models.account_token import EmailVerificationToken, PasswordResetToken
    from festive.models.mfa_attempt import MfaAttempt
    from festive.models.subscription import Subscription
    from festive.models.user_mfa import UserMfa
    from festive.models.user_recovery_code import UserRecoveryCode


class User(Base):
    """User model representing authenticated users.

    The email is stored encrypted. ``email_hash`` is the deterministic lookup
    key used for equality search and the uniqueness constraint.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid4())
    )
    email_encrypted: Mapped[str] = mapped_column(Text)
    email_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String(255))
    password_hash: Mapped[str] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    email_verification_tokens: Mapped[list["EmailVerificationToken"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    password_reset_tokens: Mapped[list["PasswordResetToken"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    mfa: Mapped["UserMfa | None"] = relationship(
        back_populates="user", cascade="all, delete-orphan", uselist=False
    )
    recovery_codes: Mapped[list["UserRecoveryCode"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    mfa_attempts: Mapped[list["MfaAttempt"]] = relationship(back_populates="user")
    subscriptions: Mapped[list["Subscription"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def email(self) -> str:
        return decrypt_value(self.email_encrypted)

    @email.setter
    def email(self, value: str) -> None:
        normalized = normalize_email(value)
        self.email_encrypted = encrypt_value(normalized)
        self.email_hash = searchable_hash(normalized)

    @property
    def two_factor_enabled(self) -> bool:
        return bool(self.mfa and self.mfa.totp_enabled)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email_hash='{self.email_hash[:12]}')>"
