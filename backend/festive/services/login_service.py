"""Login state machine: password check, optional 2FA challenge, token issuance.

A login moves through ``LoginState`` in a fixed order. The password is
verified before any 2FA code is looked at, and tokens are only ever issued as
an access/refresh pair once the final state is reached. Every failure raises a
``FestiveError``; there is no partially authenticated result.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy.orm import Session

from festive.config import settings
from festive.errors import (
    AccountNotUsable,
    FestiveError,
    InvalidCredentials,
    InvalidInput,
    RateLimited,
)
from festive.models import MfaCodeType, User
from festive.security.client_info import ClientInfo
from festive.security.event_log import SecurityEventCategory, SecurityEventLog
from festive.services.auth_service import AuthService
from festive.services.mfa_service import MfaService
from festive.services.repositories import MfaRepository, UserRepository
from festive.services.security_audit_service import SecurityAuditService, SecurityEventType

logger = logging.getLogger(__name__)

INVALID_CODE_MESSAGE = "Invalid code"


class LoginState(str, Enum):
    AWAITING_CREDENTIALS = "awaiting_credentials"
    PASSWORD_VERIFIED = "password_verified"
    TWO_FACTOR_REQUIRED = "two_factor_required"
    TWO_FACTOR_VERIFIED = "two_factor_verified"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


@dataclass
class LoginOutcome:
    """Result of a successful login step.

    Tokens are set only in the ``AUTHENTICATED`` state.
    """

    state: LoginState
    user: User
    access_token: str | None = None
    refresh_token: str | None = None
    remember: bool = False
    used_backup_code: bool = False

    @property
    def requires_two_factor(self) -> bool:
        return self.state == LoginState.TWO_FACTOR_REQUIRED


class LoginService:
    """Drives one login attempt for a single request."""

    def __init__(self, db: Session, events: SecurityEventLog, endpoint: str = "") -> None:
        self.db = db
        self.events = events
        self.endpoint = endpoint
        self.users = UserRepository(db)
        self.mfa = MfaRepository(db)
        self.state = LoginState.AWAITING_CREDENTIALS

    def _transition(self, state: LoginState) -> None:
        logger.debug(f"Login {self.state.value} -> {state.value}")
        self.state = state

    def _reject(self, error: FestiveError) -> FestiveError:
        self._transition(LoginState.REJECTED)
        return error

    def _audit(self, event_type: str, client: ClientInfo, user_id: str | None = None, **details) -> None:
        SecurityAuditService.log_event(
            self.db,
            event_type,
            user_id=user_id,
            client=client,
            endpoint=self.endpoint,
            details=details or None,
        )

    def _authenticate(self, user: User, remember: bool, used_backup_code: bool = False) -> LoginOutcome:
        self._transition(LoginState.AUTHENTICATED)
        email = user.email
        return LoginOutcome(
            state=LoginState.AUTHENTICATED,
            user=user,
            access_token=AuthService.create_access_token(user.id, email),
            refresh_token=AuthService.create_refresh_token(user.id, email, remember=remember),
            remember=remember,
            used_backup_code=used_backup_code,
        )

    def login(self, email: str, password: str, remember: bool, client: ClientInfo) -> LoginOutcome:
        """Verify the password and either authenticate or issue a 2FA challenge."""
        user = self.users.find_by_email(email)

        if user is None:
            # Timing-consistent with a wrong password
            AuthService.verify_password(password, AuthService.get_dummy_hash())
            self._audit(SecurityEventType.LOGIN_FAILED, client, reason="user_not_found")
            self.db.commit()
            raise self._reject(InvalidCredentials())

        if not AuthService.verify_password(password, user.password_hash) or not user.is_active:
            reason = "invalid_password" if user.is_active else "account_inactive"
            self._audit(SecurityEventType.LOGIN_FAILED, client, user.id, reason=reason)
            self.db.commit()
            raise self._reject(InvalidCredentials())

        if not user.email_verified:
            self._audit(SecurityEventType.LOGIN_BLOCKED_UNVERIFIED, client, user.id)
            self.db.commit()
            raise self._reject(
                AccountNotUsable(
                    "Please verify your email before logging in",
                    reason="email_not_verified",
                )
            )

        self._transition(LoginState.PASSWORD_VERIFIED)
        self.users.touch_last_login(user)

        if user.two_factor_enabled:
            self._transition(LoginState.TWO_FACTOR_REQUIRED)
            self._audit(SecurityEventType.LOGIN_TWO_FACTOR_REQUIRED, client, user.id)
            self.db.commit()
            logger.info(f"Password verified for user {user.id}, awaiting 2FA code")
            return LoginOutcome(state=LoginState.TWO_FACTOR_REQUIRED, user=user, remember=remember)

        outcome = self._authenticate(user, remember)
        self._audit(SecurityEventType.LOGIN_SUCCESS, client, user.id, remember=remember)
        self.db.commit()
        logger.info(f"User {user.id} logged in")
        return outcome

    def verify_two_factor(
        self,
        email: str,
        code: str,
        use_backup_code: bool,
        remember: bool,
        client: ClientInfo,
    ) -> LoginOutcome:
        """Resume a challenged login with a TOTP or backup code."""
        self._transition(LoginState.TWO_FACTOR_REQUIRED)
        code = code.strip()
        code_type = MfaCodeType.BACKUP if use_backup_code else MfaCodeType.TOTP
        valid_format = (
            MfaService.is_valid_backup_code_format(code)
            if use_backup_code
            else MfaService.is_valid_totp_format(code)
        )
        if not valid_format:
            self.events.log(
                SecurityEventCategory.INVALID_INPUT,
                client.ip_address,
                self.endpoint,
                f"Malformed {code_type} code",
                client.user_agent,
            )
            expected = "8 letters or digits" if use_backup_code else "6 digits"
            raise self._reject(InvalidInput(f"Invalid code format. Expected {expected}."))

        user = self.users.find_by_email(email)
        config = self.mfa.find_config(user.id) if user is not None else None
        if (
            user is None
            or not user.is_active
            or config is None
            or not config.totp_enabled
            or not config.totp_secret_encrypted
        ):
            raise self._reject(InvalidCredentials(INVALID_CODE_MESSAGE))

        window = settings.mfa_failure_window_minutes
        recent_failures = self.mfa.count_recent_failures(user.id, client.ip_address, window)
        if recent_failures >= settings.mfa_max_failed_attempts:
            self.events.log(
                SecurityEventCategory.SUSPICIOUS_ACTIVITY,
                client.ip_address,
                self.endpoint,
                f"Repeated failed 2FA attempts for user {user.id}",
                client.user_agent,
            )
            self._audit(SecurityEventType.TWO_FACTOR_BLOCKED, client, user.id, failures=recent_failures)
            self.db.commit()
            raise self._reject(
                RateLimited(
                    f"Too many failed attempts. Please wait {window} minutes.",
                    retry_after=window * 60,
                )
            )

        if use_backup_code:
            valid = MfaService.verify_backup_code(code, self.mfa.list_unused_code_hashes(user.id))
            # Losing a concurrent consume counts as a failure
            if valid:
                valid = self.mfa.consume_backup_code(user.id, MfaService.hash_backup_code(code))
        else:
            secret = MfaService.decrypt_secret(config.totp_secret_encrypted)
            valid = MfaService.verify_totp(secret, code)

        if not valid:
            self.mfa.record_attempt(user.id, False, code_type, client.ip_address, client.user_agent)
            self._audit(SecurityEventType.TWO_FACTOR_FAILED, client, user.id, code_type=code_type)
            self.db.commit()
            self.events.log(
                SecurityEventCategory.SUSPICIOUS_ACTIVITY,
                client.ip_address,
                self.endpoint,
                f"Invalid 2FA code for user {user.id}",
                client.user_agent,
            )
            raise self._reject(InvalidCredentials(INVALID_CODE_MESSAGE))

        self._transition(LoginState.TWO_FACTOR_VERIFIED)
        self.mfa.record_attempt(user.id, True, code_type, client.ip_address, client.user_agent)
        self.mfa.touch_last_used(user.id)
        self._audit(SecurityEventType.TWO_FACTOR_VERIFIED, client, user.id, code_type=code_type)
        if use_backup_code:
            self._audit(SecurityEventType.BACKUP_CODE_USED, client, user.id)

        outcome = self._authenticate(user, remember, used_backup_code=use_backup_code)
        self.db.commit()
        logger.info(f"User {user.id} completed 2FA login ({code_type})")
        return outcome
