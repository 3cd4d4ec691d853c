"""SQLAlchemy ORM models."""

from festive.models.account_token import EmailVerificationToken, PasswordResetToken
from festive.models.mfa_attempt import MfaAttempt, MfaCodeType
from festive.models.security_audit_log import SecurityAuditLog
from festive.models.subscription import Subscription
from festive.models.user import User
from festive.models.user_mfa import UserMfa
from festive.models.user_recovery_code import UserRecoveryCode

__all__ = [
    "EmailVerificationToken",
    "MfaAttempt",
    "MfaCodeType",
    "PasswordResetToken",
    "SecurityAuditLog",
    "Subscription",
    "User",
    "UserMfa",
    "UserRecoveryCode",
]
