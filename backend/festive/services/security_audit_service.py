"""Service for recording durable security audit events."""

import json
import logging

from sqlalchemy.orm import Session

from festive.models.security_audit_log import SecurityAuditLog
from festive.schemas.admin import AuditLogFilters
from festive.security.client_info import ClientInfo

logger = logging.getLogger(__name__)


class SecurityEventType:
    """Constants for security event types."""

    REGISTERED = "registered"
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    LOGIN_BLOCKED_UNVERIFIED = "login_blocked_unverified"
    LOGIN_TWO_FACTOR_REQUIRED = "login_2fa_required"
    LOGOUT = "logout"
    TOKEN_REFRESHED = "token_refreshed"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET_COMPLETED = "password_reset_completed"
    EMAIL_VERIFIED = "email_verified"
    TWO_FACTOR_SETUP_STARTED = "2fa_setup_started"
    TWO_FACTOR_ENABLED = "2fa_enabled"
    TWO_FACTOR_DISABLED = "2fa_disabled"
    TWO_FACTOR_VERIFIED = "2fa_verified"
    TWO_FACTOR_FAILED = "2fa_failed"
    TWO_FACTOR_BLOCKED = "2fa_blocked"
    BACKUP_CODE_USED = "backup_code_used"
    BACKUP_CODES_REGENERATED = "backup_codes_regenerated"


_SEVERITY = {
    SecurityEventType.LOGIN_FAILED: "warning",
    SecurityEventType.TWO_FACTOR_FAILED: "warning",
    SecurityEventType.TWO_FACTOR_BLOCKED: "critical",
    SecurityEventType.TWO_FACTOR_DISABLED: "warning",
}


class SecurityAuditService:
    """Service for recording security audit events."""

    @staticmethod
    def log_event(
        db: Session,
        event_type: str,
        user_id: str | None = None,
        client: ClientInfo | None = None,
        endpoint: str | None = None,
        details: dict | None = None,
    ) -> None:
        """Log a security event to the database."""
        severity = _SEVERITY.get(event_type, "info")
        log_entry = SecurityAuditLog(
            user_id=user_id,
            event_type=event_type,
            severity=severity,
            endpoint=endpoint,
            ip_address=client.ip_address if client else None,
            user_agent=client.user_agent if client else None,
            details=json.dumps(details) if details else None,
        )
        db.add(log_entry)
        # Note: Caller is responsible for committing the transaction

        # Also log to application logger for monitoring
        logger.info(
            f"Security event: {event_type} ({severity}) | user_id={user_id} | "
            f"ip={client.ip_address if client else None}"
        )

    @staticmethod
    def find_events(
        db: Session, filters: AuditLogFilters
    ) -> tuple[list[SecurityAuditLog], int]:
        """Page of audit entries matching ``filters``, newest first, and the total match count."""
        query = db.query(SecurityAuditLog)
        if filters.user_id:
            query = query.filter(SecurityAuditLog.user_id == filters.user_id)
        if filters.event_type:
            query = query.filter(SecurityAuditLog.event_type == filters.event_type)
        if filters.ip_address:
            query = query.filter(SecurityAuditLog.ip_address == filters.ip_address)
        if filters.start:
            query = query.filter(SecurityAuditLog.created_at >= filters.start)
        if filters.end:
            query = query.filter(SecurityAuditLog.created_at <= filters.end)

        total = query.count()
        entries = (
            query.order_by(SecurityAuditLog.created_at.desc(), SecurityAuditLog.id)
            .offset(filters.offset)
            .limit(filters.limit)
            .all()
        )
        return entries, total
