"""Tests for the login state machine."""

import pyotp
import pytest

from festive.errors import AccountNotUsable, InvalidCredentials, InvalidInput
from festive.security.client_info import ClientInfo
from festive.security.event_log import SecurityEventLog
from festive.services.auth_service import ACCESS_TOKEN_TYPE, AuthService
from festive.services.login_service import LoginService, LoginState
from festive.services.mfa_service import MfaService
from festive.services.repositories import MfaRepository, UserRepository

CLIENT = ClientInfo(ip_address="1.2.3.4", user_agent="pytest")
PASSWORD = "Password123"


@pytest.fixture
def user(db_session):
    user = UserRepository(db_session).create(
        "host@example.com", AuthService.hash_password(PASSWORD)
    )
    user.email_verified = True
    db_session.commit()
    return user


@pytest.fixture
def service(db_session):
    return LoginService(db_session, SecurityEventLog(), "/api/auth/login")


def _enable_two_factor(db_session, user) -> str:
    secret = MfaService.generate_totp_secret()
    repo = MfaRepository(db_session)
    repo.enable(repo.save_pending_secret(user.id, MfaService.encrypt_secret(secret)))
    db_session.commit()
    db_session.refresh(user)
    return secret


def test_login_without_2fa_is_authenticated(service, user):
    outcome = service.login("host@example.com", PASSWORD, False, CLIENT)

    assert service.state == LoginState.AUTHENTICATED
    assert outcome.state == LoginState.AUTHENTICATED
    assert AuthService.verify_token(outcome.access_token, ACCESS_TOKEN_TYPE)["sub"] == user.id
    assert outcome.refresh_token
    assert user.last_login_at is not None


def test_login_with_2fa_stops_at_challenge(service, db_session, user):
    _enable_two_factor(db_session, user)

    outcome = service.login("host@example.com", PASSWORD, True, CLIENT)

    assert service.state == LoginState.TWO_FACTOR_REQUIRED
    assert outcome.requires_two_factor
    assert outcome.access_token is None
    assert outcome.refresh_token is None


def test_wrong_password_is_rejected(service, user):
    with pytest.raises(InvalidCredentials):
        service.login("host@example.com", "WrongPassword", False, CLIENT)

    assert service.state == LoginState.REJECTED


def test_unverified_email_is_surfaced_distinctly(service, db_session, user):
    user.email_verified = False
    db_session.commit()

    with pytest.raises(AccountNotUsable) as exc_info:
        service.login("host@example.com", PASSWORD, False, CLIENT)

    assert exc_info.value.reason == "email_not_verified"
    assert service.state == LoginState.REJECTED


def test_two_factor_code_completes_login(service, db_session, user):
    secret = _enable_two_factor(db_session, user)

    outcome = service.verify_two_factor(
        "host@example.com", pyotp.TOTP(secret).now(), False, False, CLIENT
    )

    assert service.state == LoginState.AUTHENTICATED
    assert outcome.access_token
    assert MfaRepository(db_session).find_config(user.id).last_used_at is not None


def test_malformed_code_rejected_before_lookup(service, db_session, user):
    _enable_two_factor(db_session, user)

    with pytest.raises(InvalidInput):
        service.verify_two_factor("host@example.com", "abc", False, False, CLIENT)

    assert service.state == LoginState.REJECTED
    assert MfaRepository(db_session).count_recent_failures(user.id, CLIENT.ip_address, 15) == 0
