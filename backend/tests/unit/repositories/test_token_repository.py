"""Tests for single-use account tokens."""

from datetime import UTC, datetime, timedelta

import pytest

from festive.models import EmailVerificationToken, PasswordResetToken
from festive.services.auth_service import AuthService
from festive.services.repositories import TokenRepository, UserRepository


@pytest.fixture
def user_id(db_session):
    user = UserRepository(db_session).create("host@example.com", "hash")
    db_session.commit()
    return user.id


def _expires(hours: float = 1) -> datetime:
    return datetime.now(UTC) + timedelta(hours=hours)


@pytest.mark.parametrize("model", [EmailVerificationToken, PasswordResetToken])
def test_issue_and_find_active(db_session, user_id, model):
    repo = TokenRepository(db_session, model)
    token_hash = AuthService.hash_token(AuthService.generate_token())
    repo.issue(user_id, token_hash, _expires())
    db_session.commit()

    found = repo.find_active(token_hash)
    assert found is not None
    assert found.user_id == user_id


def test_expired_token_is_not_active(db_session, user_id):
    repo = TokenRepository(db_session, PasswordResetToken)
    repo.issue(user_id, "a" * 64, _expires(-1))
    db_session.commit()

    assert repo.find_active("a" * 64) is None


def test_issuing_retires_earlier_tokens(db_session, user_id):
    repo = TokenRepository(db_session, PasswordResetToken)
    repo.issue(user_id, "a" * 64, _expires())
    db_session.commit()

    repo.issue(user_id, "b" * 64, _expires())
    db_session.commit()

    assert repo.find_active("a" * 64) is None
    assert repo.find_active("b" * 64) is not None


def test_consume_works_once(db_session, user_id):
    repo = TokenRepository(db_session, EmailVerificationToken)
    token = repo.issue(user_id, "c" * 64, _expires())
    db_session.commit()

    assert repo.consume(token.id) is True
    assert repo.consume(token.id) is False
    db_session.commit()
    assert repo.find_active("c" * 64) is None
