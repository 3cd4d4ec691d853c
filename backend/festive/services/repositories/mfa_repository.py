"""Two-factor data access layer: TOTP config, backup codes and attempt log."""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from festive.models import MfaAttempt, UserMfa, UserRecoveryCode

logger = logging.getLogger(__name__)


class MfaRepository:
    """Persistence for a user's 2FA state.

    Backup-code consumption is a conditional UPDATE (``used_at IS NULL``), so a
    code can be consumed at most once even when attempts race.
    """

    def __init__(self, db: Session) -> None:
        self._db = db

    # TOTP configuration

    def find_config(self, user_id: str) -> UserMfa | None:
        return self._db.query(UserMfa).filter(UserMfa.user_id == user_id).first()

    def save_pending_secret(self, user_id: str, encrypted_secret: str) -> UserMfa:
        """Store a new secret without enabling 2FA (setup started)."""
        config = self.find_config(user_id)
        if config is None:
            config = UserMfa(user_id=user_id)
            self._db.add(config)
        config.totp_secret_encrypted = encrypted_secret
        config.totp_enabled = False
        config.enabled_at = None
        return config

    def enable(self, config: UserMfa) -> None:
        if not config.totp_secret_encrypted:
            raise ValueError("Cannot enable 2FA without a secret")
        config.totp_enabled = True
        config.enabled_at = datetime.now(UTC)

    def disable(self, config: UserMfa) -> None:
        """Clear the secret and delete every backup code."""
        config.totp_enabled = False
        config.totp_secret_encrypted = None
        config.enabled_at = None
        self.delete_backup_codes(config.user_id)

    def touch_last_used(self, user_id: str) -> None:
        self._db.query(UserMfa).filter(UserMfa.user_id == user_id).update(
            {UserMfa.last_used_at: datetime.now(UTC)}, synchronize_session=False
        )

    # Backup codes

    def delete_backup_codes(self, user_id: str) -> int:
        return (
            self._db.query(UserRecoveryCode)
            .filter(UserRecoveryCode.user_id == user_id)
            .delete(synchronize_session=False)
        )

    def replace_backup_codes(self, user_id: str, code_hashes: list[str]) -> None:
        """Delete all previous codes and insert a fresh batch."""
        removed = self.delete_backup_codes(user_id)
        self._db.add_all(
            UserRecoveryCode(user_id=user_id, code_hash=code_hash) for code_hash in code_hashes
        )
        logger.info(f"Replaced {removed} backup codes with {len(code_hashes)} for user {user_id}")

    def list_unused_code_hashes(self, user_id: str) -> list[str]:
        rows = (
            self._db.query(UserRecoveryCode.code_hash)
            .filter(UserRecoveryCode.user_id == user_id, UserRecoveryCode.used_at.is_(None))
            .all()
        )
        return [row.code_hash for row in rows]

    def count_unused(self, user_id: str) -> int:
        return (
            self._db.query(UserRecoveryCode)
            .filter(UserRecoveryCode.user_id == user_id, UserRecoveryCode.used_at.is_(None))
            .count()
        )

    def consume_backup_code(self, user_id: str, code_hash: str) -> bool:
        """Mark a code used only if it is currently unused.

        Returns False when another request consumed it first.
        """
        result = self._db.execute(
            update(UserRecoveryCode)
            .where(
                UserRecoveryCode.user_id == user_id,
                UserRecoveryCode.code_hash == code_hash,
                UserRecoveryCode.used_at.is_(None),
            )
            .values(used_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    # Attempt log

    def record_attempt(
        self,
        user_id: str | None,
        success: bool,
        code_type: str,
        ip_address: str | None,
        user_agent: str | None,
    ) -> None:
        self._db.add(
            MfaAttempt(
                user_id=user_id,
                success=success,
                code_type=code_type,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )

    def count_recent_failures(self, user_id: str, ip_address: str, minutes: int) -> int:
        """Failed attempts in the trailing window for this account or this source IP."""
        cutoff = datetime.now(UTC) - timedelta(minutes=minutes)
        return (
            self._db.query(MfaAttempt)
            .filter(
                or_(MfaAttempt.user_id == user_id, MfaAttempt.ip_address == ip_address),
                MfaAttempt.success.is_(False),
                MfaAttempt.attempted_at >= cutoff,
            )
            .count()
        )
