"""Account lifecycle: registration, email verification and password reset.

Link tokens are random 32-byte hex strings. Only their SHA-256 is stored, and
each is consumed with a conditional update so it works at most once. The
returned plaintext tokens are handed to ``EmailService`` by the caller.
"""

import logging
import re
from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Session

from festive.config import settings
from festive.errors import Conflict, InvalidInput
from festive.models import EmailVerificationToken, PasswordResetToken, User
from festive.security.client_info import ClientInfo
from festive.services.auth_service import AuthService
from festive.services.repositories import DuplicateError, TokenRepository, UserRepository
from festive.services.security_audit_service import SecurityAuditService, SecurityEventType

logger = logging.getLogger(__name__)

LINK_TOKEN_RE = re.compile(r"[a-f0-9]{64}")


class AccountService:
    """Account operations scoped to one request's database session."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.users = UserRepository(db)
        self.verification_tokens = TokenRepository(db, EmailVerificationToken)
        self.reset_tokens = TokenRepository(db, PasswordResetToken)

    @staticmethod
    def _check_token_format(token: str, message: str) -> str:
        token = token.strip().lower()
        if not LINK_TOKEN_RE.fullmatch(token):
            raise InvalidInput(message, reason="invalid_token")
        return token

    def _issue_verification_token(self, user: User) -> str:
        token = AuthService.generate_token()
        self.verification_tokens.issue(
            user.id,
            AuthService.hash_token(token),
            datetime.now(UTC) + timedelta(hours=settings.email_verification_expire_hours),
        )
        return token

    def register(
        self, email: str, password: str, name: str | None, client: ClientInfo
    ) -> tuple[User, str]:
        """Create an unverified account and its first verification token.

        Raises:
            Conflict: If the email is already registered.
        """
        if self.users.email_exists(email):
            raise Conflict("An account with this email already exists")

        try:
            user = self.users.create(email, AuthService.hash_password(password), name)
        except DuplicateError as e:
            raise Conflict("An account with this email already exists") from e

        token = self._issue_verification_token(user)
        SecurityAuditService.log_event(
            self.db, SecurityEventType.REGISTERED, user_id=user.id, client=client
        )
        self.db.commit()
        logger.info(f"User registered (pending verification): {user.id}")
        return user, token

    def verify_email(self, token: str, client: ClientInfo | None = None) -> User:
        """Consume a verification token and mark the account verified."""
        message = "Invalid or expired verification link"
        token = self._check_token_format(token, message)

        record = self.verification_tokens.find_active(AuthService.hash_token(token))
        if record is None or not self.verification_tokens.consume(record.id):
            raise InvalidInput(message, reason="invalid_token")

        self.users.mark_email_verified(record.user_id)
        SecurityAuditService.log_event(
            self.db, SecurityEventType.EMAIL_VERIFIED, user_id=record.user_id, client=client
        )
        self.db.commit()

        user = self.users.find_by_id(record.user_id)
        self.db.refresh(user)
        logger.info(f"Email verified for user {record.user_id}")
        return user

    def resend_verification(self, email: str) -> tuple[User, str] | None:
        """Issue a fresh verification token for an active, unverified account.

        Returns None (without revealing why) in every other case.
        """
        user = self.users.find_by_email(email)
        if user is None or not user.is_active or user.email_verified:
            return None

        token = self._issue_verification_token(user)
        self.db.commit()
        return user, token

    def request_password_reset(self, email: str, client: ClientInfo) -> tuple[User, str] | None:
        """Issue a reset token if the account exists and is active.

        Callers must respond identically whether or not a token was issued.
        """
        user = self.users.find_by_email(email)
        if user is None or not user.is_active:
            logger.debug("Password reset requested for unknown or inactive account")
            return None

        token = AuthService.generate_token()
        self.reset_tokens.issue(
            user.id,
            AuthService.hash_token(token),
            datetime.now(UTC) + timedelta(hours=settings.password_reset_expire_hours),
        )
        SecurityAuditService.log_event(
            self.db, SecurityEventType.PASSWORD_RESET_REQUESTED, user_id=user.id, client=client
        )
        self.db.commit()
        return user, token

    def validate_reset_token(self, token: str) -> bool:
        try:
            token = self._check_token_format(token, "Invalid token")
        except InvalidInput:
            return False
        record = self.reset_tokens.find_active(AuthService.hash_token(token))
        if record is None:
            return False
        return self.users.find_active_by_id(record.user_id) is not None

    def reset_password(self, token: str, new_password: str, client: ClientInfo) -> User:
        """Consume a reset token and set the new password."""
        message = "Invalid or expired reset link"
        token = self._check_token_format(token, message)

        record = self.reset_tokens.find_active(AuthService.hash_token(token))
        if record is None or self.users.find_active_by_id(record.user_id) is None:
            raise InvalidInput(message, reason="invalid_token")
        if not self.reset_tokens.consume(record.id):
            raise InvalidInput(message, reason="invalid_token")

        self.users.update_password(record.user_id, AuthService.hash_password(new_password))
        SecurityAuditService.log_event(
            self.db,
            SecurityEventType.PASSWORD_RESET_COMPLETED,
            user_id=record.user_id,
            client=client,
        )
        self.db.commit()

        user = self.users.find_by_id(record.user_id)
        self.db.refresh(user)
        logger.info(f"Password reset completed for user {record.user_id}")
        return user
