"""Credential store and session issuer: bcrypt passwords and JWT session tokens."""

import hashlib
import logging
import secrets
from datetime import UTC, datetime, timedelta

import bcrypt
import jwt

from festive.config import settings

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class AuthService:
    """Service for authentication operations."""

    # Pre-computed bcrypt hash for timing-consistent password verification
    # Used when user doesn't exist to prevent email enumeration via timing attacks
    _DUMMY_HASH = "$2b$12$LQv3c1yqBWVHxkd0LHAkCOYz6TtxMQJqhN8/X4.VTtYA9dWQ6E3Ky"

    @staticmethod
    def get_dummy_hash() -> str:
        """Get a dummy password hash for timing-consistent verification."""
        return AuthService._DUMMY_HASH

    @staticmethod
    def hash_password(password: str) -> str:
        """Hash a password using bcrypt with a fresh per-password salt."""
        salt = bcrypt.gensalt()
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
        return hashed.decode("utf-8")

    @staticmethod
    def verify_password(password: str, hashed: str) -> bool:
        """Verify a password against its hash. Any internal error counts as a mismatch."""
        try:
            return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
        except (ValueError, TypeError) as e:
            logger.error(f"Password verification error: {e}")
            return False

    @staticmethod
    def generate_token() -> str:
        """Random 32-byte hex token for email verification and password reset links."""
        return secrets.token_hex(32)

    @staticmethod
    def hash_token(token: str) -> str:
        """Hash a link token with SHA-256 for storage."""
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    @staticmethod
    def refresh_token_lifetime(remember: bool) -> timedelta:
        days = settings.remember_refresh_token_expire_days if remember else settings.refresh_token_expire_days
        return timedelta(days=days)

    @staticmethod
    def create_access_token(
        user_id: str,
        email: str,
        expires_delta: timedelta | None = None,
    ) -> str:
        """Create a short-lived JWT access token bound to user id and email."""
        if expires_delta is None:
            expires_delta = timedelta(minutes=settings.access_token_expire_minutes)

        now = datetime.now(UTC)
        payload = {
            "sub": user_id,
            "email": email,
            "exp": now + expires_delta,
            "iat": now,
            "type": ACCESS_TOKEN_TYPE,
        }
        return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

    @staticmethod
    def create_refresh_token(
        user_id: str,
        email: str,
        remember: bool = False,
        expires_delta: timedelta | None = None,
    ) -> str:
        """Create a JWT refresh token.

        The ``remember`` claim lets a later refresh reproduce the same cookie
        lifetime (7 days, or 30 when remembered).
        """
        if expires_delta is None:
            expires_delta = AuthService.refresh_token_lifetime(remember)

        now = datetime.now(UTC)
        payload = {
            "sub": user_id,
            "email": email,
            "remember": remember,
            "exp": now + expires_delta,
            "iat": now,
            "type": REFRESH_TOKEN_TYPE,
        }
        return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

    @staticmethod
    def verify_token(token: str | None, expected_type: str | None = None) -> dict | None:
        """Decode and validate a JWT token.

        Returns None on any failure (expired, malformed, bad signature, wrong
        type) so callers can treat every failure as "no token".
        """
        if not token:
            return None
        try:
            payload = jwt.decode(
                token,
                settings.jwt_secret_key,
                algorithms=[settings.jwt_algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            logger.debug("Token expired")
            return None
        except jwt.InvalidTokenError as e:
            logger.debug(f"Invalid token: {e}")
            return None

        if expected_type is not None and payload.get("type") != expected_type:
            logger.debug(f"Unexpected token type: {payload.get('type')}")
            return None
        return payload
