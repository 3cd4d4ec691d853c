"""TOTP engine: secrets, provisioning URIs, code verification and backup codes."""

import base64
import hashlib
import hmac
import logging
import re
import secrets
import string
from dataclasses import dataclass
from datetime import datetime
from io import BytesIO

import pyotp
import qrcode

from festive.config import settings
from festive.security.encryption import decrypt_value, encrypt_value

logger = logging.getLogger(__name__)

# ASCII only; matched with fullmatch so a trailing newline never passes
TOTP_CODE_RE = re.compile(r"[0-9]{6}")
BACKUP_CODE_RE = re.compile(r"[A-Z0-9]{8}")
SECRET_RE = re.compile(r"[A-Z2-7]{16,}")

BACKUP_CODE_ALPHABET = string.ascii_uppercase + string.digits
BACKUP_CODE_LENGTH = 8


@dataclass(frozen=True)
class BackupCode:
    """A freshly generated backup code. ``code`` is shown to the user once."""

    code: str
    code_hash: str


class MfaService:
    """Service for TOTP two-factor operations."""

    @staticmethod
    def generate_totp_secret() -> str:
        """Generate a new TOTP secret (base32 encoded, 32 characters, 160 bits)."""
        return pyotp.random_base32()

    @staticmethod
    def get_totp_uri(secret: str, email: str, issuer: str | None = None) -> str:
        """Get otpauth:// URI for QR code scanning."""
        totp = pyotp.TOTP(secret)
        return totp.provisioning_uri(name=email, issuer_name=issuer or settings.totp_issuer)

    @staticmethod
    def generate_qr_code_base64(uri: str) -> str:
        """Generate QR code as base64 PNG for embedding in responses."""
        qr = qrcode.make(uri)
        buffer = BytesIO()
        qr.save(buffer, format="PNG")
        return base64.b64encode(buffer.getvalue()).decode()

    @staticmethod
    def is_valid_totp_format(code: str | None) -> bool:
        return bool(code) and TOTP_CODE_RE.fullmatch(code) is not None

    @staticmethod
    def is_valid_backup_code_format(code: str | None) -> bool:
        """Backup codes are case-insensitive."""
        if not code or not code.isascii():
            return False
        return BACKUP_CODE_RE.fullmatch(code.upper()) is not None

    @staticmethod
    def is_valid_secret_format(secret: str | None) -> bool:
        return bool(secret) and SECRET_RE.fullmatch(secret) is not None

    @staticmethod
    def verify_totp(
        secret: str,
        code: str,
        window: int | None = None,
        for_time: datetime | None = None,
    ) -> bool:
        """Verify a TOTP code against the current 30 s step and +/- ``window`` steps.

        Never raises: malformed codes and unusable secrets simply fail.
        """
        if not MfaService.is_valid_totp_format(code):
            return False
        if window is None:
            window = settings.totp_valid_window
        try:
            return pyotp.TOTP(secret).verify(code, for_time=for_time, valid_window=window)
        except (ValueError, TypeError) as e:
            logger.error(f"TOTP verification error: {e}")
            return False

    @staticmethod
    def hash_backup_code(code: str) -> str:
        """SHA-256 hex of the upper-cased code."""
        return hashlib.sha256(code.upper().encode("utf-8")).hexdigest()

    @staticmethod
    def generate_backup_codes(count: int | None = None) -> list[BackupCode]:
        """Generate a batch of distinct 8-character [A-Z0-9] backup codes."""
        if count is None:
            count = settings.backup_code_count

        codes: list[str] = []
        while len(codes) < count:
            code = "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(BACKUP_CODE_LENGTH))
            if code not in codes:
                codes.append(code)
        return [BackupCode(code=code, code_hash=MfaService.hash_backup_code(code)) for code in codes]

    @staticmethod
    def verify_backup_code(candidate: str, stored_hashes: list[str]) -> bool:
        """True if the candidate matches one of the stored (unused) hashes.

        Compares against every hash in constant time. Consumption is up to the
        caller.
        """
        if not MfaService.is_valid_backup_code_format(candidate):
            return False
        candidate_hash = MfaService.hash_backup_code(candidate)
        matched = False
        for stored in stored_hashes:
            if hmac.compare_digest(candidate_hash, stored):
                matched = True
        return matched

    @staticmethod
    def encrypt_secret(secret: str) -> str:
        """Encrypt TOTP secret for storage using Fernet."""
        return encrypt_value(secret)

    @staticmethod
    def decrypt_secret(encrypted: str) -> str:
        """Decrypt TOTP secret from storage."""
        return decrypt_value(encrypted)
