"""Helpers shared by the API tests."""

from unittest.mock import patch

import pyotp
from fastapi.testclient import TestClient

from festive.security.counter_store import CounterStore
from festive.security.rate_limiter import LimiterPolicy, RateLimiterName, RateLimiterService
from festive.services.auth_service import AuthService
from festive.services.mfa_service import MfaService
from festive.services.repositories import MfaRepository, UserRepository

DEFAULT_PASSWORD = "Password123"


def make_rate_limiter(points: int = 1000) -> RateLimiterService:
    """Memory-backed limiter with ``points`` per tier. The default is never exhausted by tests."""
    return RateLimiterService(
        CounterStore.from_url(),
        [
            LimiterPolicy(RateLimiterName.GENERAL, 1000, 60, 60),
            LimiterPolicy(RateLimiterName.AUTH, points, 60, 300),
            LimiterPolicy(RateLimiterName.STRICT, points, 60, 600),
        ],
    )


def create_user(
    db_session_maker,
    email: str,
    password: str = DEFAULT_PASSWORD,
    verified: bool = True,
    is_admin: bool = False,
    name: str | None = None,
) -> str:
    """Insert a user directly and return its id."""
    db = db_session_maker()
    try:
        user = UserRepository(db).create(email, AuthService.hash_password(password), name)
        user.email_verified = verified
        user.is_admin = is_admin
        db.commit()
        return user.id
    finally:
        db.close()


def enable_two_factor(db_session_maker, user_id: str) -> tuple[str, list[str]]:
    """Turn 2FA on for a user. Returns (totp secret, plaintext backup codes)."""
    secret = MfaService.generate_totp_secret()
    batch = MfaService.generate_backup_codes()
    db = db_session_maker()
    try:
        repo = MfaRepository(db)
        config = repo.save_pending_secret(user_id, MfaService.encrypt_secret(secret))
        repo.enable(config)
        repo.replace_backup_codes(user_id, [backup.code_hash for backup in batch])
        db.commit()
    finally:
        db.close()
    return secret, [backup.code for backup in batch]


def current_code(secret: str) -> str:
    return pyotp.TOTP(secret).now()


def wrong_code(secret: str) -> str:
    """A well-formed code that is not valid anywhere in the accepted window."""
    totp = pyotp.TOTP(secret)
    for candidate in ("000000", "111111", "222222", "333333"):
        if not totp.verify(candidate, valid_window=1):
            return candidate
    raise AssertionError("Could not find an invalid TOTP code")


def login(test_client: TestClient, email: str, password: str = DEFAULT_PASSWORD, **extra):
    return test_client.post("/api/auth/login", json={"email": email, "password": password, **extra})


def login_with_code(test_client: TestClient, email: str, code: str, **extra):
    return test_client.post(
        "/api/auth/2fa/verify-login", json={"email": email, "code": code, **extra}
    )


def register(test_client: TestClient, email: str, password: str = DEFAULT_PASSWORD) -> str:
    """Register through the API and return the emailed verification token."""
    with patch("festive.routers.auth.EmailService.send_verification_email") as send:
        response = test_client.post(
            "/api/auth/register", json={"email": email, "password": password}
        )
    assert response.status_code == 201, response.text
    return send.call_args.args[1]
