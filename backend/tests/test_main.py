"""Tests for app wiring: health endpoints and error envelopes."""

from unittest.mock import patch

from fastapi.testclient import TestClient

from festive.config import settings
from festive.security.event_log import SecurityEventCategory
from tests.helpers import create_user, current_code, login


def _assert_no_store_headers(response) -> None:
    assert response.headers["Cache-Control"] == "no-store, no-cache, must-revalidate, proxy-revalidate"
    assert response.headers["Pragma"] == "no-cache"
    assert response.headers["Expires"] == "0"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"


def test_root(auth_client):
    test_client, _ = auth_client

    response = test_client.get("/")

    assert response.status_code == 200
    assert response.json()["message"] == "Festive API"


def test_health_reports_rate_limit_engine(auth_client):
    test_client, _ = auth_client

    response = test_client.get("/health")

    assert response.json() == {"status": "healthy", "rate_limit_engine": "memory"}


def test_unhandled_error_returns_generic_envelope(auth_client, monkeypatch):
    test_client, _ = auth_client
    monkeypatch.setattr(settings, "debug", False)
    client = TestClient(test_client.app, raise_server_exceptions=False)

    with patch(
        "festive.routers.auth.AccountService.validate_reset_token",
        side_effect=RuntimeError("database exploded"),
    ):
        response = client.get(f"/api/auth/validate-reset-token?token={'a' * 64}")

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "internal"
    assert "exploded" not in body["message"]
    assert "detail" not in body
    events = test_client.app.state.security_events.by_category(SecurityEventCategory.API_ERROR)
    assert len(events) == 1


def test_debug_mode_includes_detail(auth_client, monkeypatch):
    test_client, _ = auth_client
    monkeypatch.setattr(settings, "debug", True)
    monkeypatch.setattr(settings, "environment", "development")
    client = TestClient(test_client.app, raise_server_exceptions=False)

    with patch(
        "festive.routers.auth.AccountService.validate_reset_token",
        side_effect=RuntimeError("database exploded"),
    ):
        response = client.get(f"/api/auth/validate-reset-token?token={'a' * 64}")

    assert response.json()["detail"] == "RuntimeError: database exploded"


def test_login_response_carries_security_headers(auth_client):
    test_client, db_session_maker = auth_client
    create_user(db_session_maker, "host@example.com")

    response = login(test_client, "host@example.com")

    assert response.status_code == 200
    _assert_no_store_headers(response)
    assert "Strict-Transport-Security" not in response.headers


def test_failed_login_carries_security_headers(auth_client):
    test_client, db_session_maker = auth_client
    create_user(db_session_maker, "host@example.com")

    response = login(test_client, "host@example.com", password="WrongPassword1!")

    assert response.status_code == 401
    _assert_no_store_headers(response)


def test_backup_codes_response_is_not_cacheable(auth_client):
    test_client, db_session_maker = auth_client
    create_user(db_session_maker, "host@example.com")
    login(test_client, "host@example.com")
    secret = test_client.post("/api/auth/2fa/setup").json()["secret"]

    response = test_client.post("/api/auth/2fa/verify-setup", json={"code": current_code(secret)})

    assert response.status_code == 200
    assert response.json()["backupCodes"]
    _assert_no_store_headers(response)


def test_hsts_only_in_production(auth_client, monkeypatch):
    test_client, _ = auth_client
    monkeypatch.setattr(settings, "environment", "production")

    response = test_client.get("/health")

    assert response.headers["Strict-Transport-Security"] == "max-age=31536000; includeSubDomains"


def test_error_envelope_carries_security_headers(auth_client, monkeypatch):
    test_client, _ = auth_client
    monkeypatch.setattr(settings, "debug", False)
    client = TestClient(test_client.app, raise_server_exceptions=False)

    with patch(
        "festive.routers.auth.AccountService.validate_reset_token",
        side_effect=RuntimeError("database exploded"),
    ):
        response = client.get(f"/api/auth/validate-reset-token?token={'a' * 64}")

    assert response.status_code == 500
    _assert_no_store_headers(response)
