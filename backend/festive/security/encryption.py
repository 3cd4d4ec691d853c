"""Field encryption for personal data and TOTP secrets at rest."""

import hashlib

from cryptography.fernet import Fernet, InvalidToken

from festive.config import settings


def _get_fernet() -> Fernet:
    """Get Fernet cipher for field encryption/decryption."""
    if not settings.encryption_key:
        raise ValueError("Encryption key not configured")
    return Fernet(settings.encryption_key.encode())


def encrypt_value(value: str) -> str:
    """Encrypt a string with Fernet (AES-128-CBC + HMAC)."""
    return _get_fernet().encrypt(value.encode()).decode()


def decrypt_value(encrypted: str) -> str:
    """Decrypt a value produced by :func:`encrypt_value`.

    Raises:
        ValueError: If the ciphertext was tampered with or the key changed.
    """
    try:
        return _get_fernet().decrypt(encrypted.encode()).decode()
    except InvalidToken as e:
        raise ValueError("Unable to decrypt value") from e


def normalize_email(email: str) -> str:
    return email.strip().lower()


def searchable_hash(value: str) -> str:
    """Deterministic SHA-256 of a normalized value, for equality lookups on encrypted columns."""
    return hashlib.sha256(normalize_email(value).encode("utf-8")).hexdigest()

