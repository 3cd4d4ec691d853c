"""Tests for the in-memory security event log."""

import threading
from unittest.mock import patch

import httpx

from festive.security.event_log import (
    SecurityEventCategory,
    SecurityEventLog,
    mask_ip,
    sanitize_details,
)


def test_log_stores_event():
    log = SecurityEventLog(capacity=10)

    event = log.log(SecurityEventCategory.RATE_LIMIT, "1.2.3.4", "/api/auth/login", "too many", "ua")

    assert len(log) == 1
    assert log.recent() == [event]
    assert event.user_agent == "ua"
    assert event.timestamp.tzinfo is not None


def test_capacity_evicts_oldest_first():
    log = SecurityEventLog(capacity=3)
    for i in range(5):
        log.log(SecurityEventCategory.INVALID_INPUT, "1.2.3.4", "/x", f"event {i}")

    assert len(log) == 3
    assert [e.details for e in log.recent()] == ["event 2", "event 3", "event 4"]


def test_recent_limit():
    log = SecurityEventLog(capacity=10)
    for i in range(5):
        log.log(SecurityEventCategory.INVALID_INPUT, "1.2.3.4", "/x", f"event {i}")

    assert [e.details for e in log.recent(2)] == ["event 3", "event 4"]
    assert log.recent(0) == []


def test_query_by_category_and_source():
    log = SecurityEventLog(capacity=10)
    log.log(SecurityEventCategory.RATE_LIMIT, "1.1.1.1", "/a", "a")
    log.log(SecurityEventCategory.SUSPICIOUS_ACTIVITY, "2.2.2.2", "/b", "b")
    log.log(SecurityEventCategory.RATE_LIMIT, "2.2.2.2", "/c", "c")

    assert [e.details for e in log.by_category(SecurityEventCategory.RATE_LIMIT)] == ["a", "c"]
    assert [e.details for e in log.by_source("2.2.2.2")] == ["b", "c"]


def test_details_are_sanitized_before_storage():
    log = SecurityEventLog()

    event = log.log(
        SecurityEventCategory.INVALID_INPUT,
        "1.2.3.4",
        "/x",
        f"host@example.com sent password=hunter22 with token {'ab' * 32}",
    )

    assert "host@example.com" not in event.details
    assert "hunter22" not in event.details
    assert "[EMAIL]" in event.details
    assert "password=[REDACTED]" in event.details
    assert "[TOKEN]" in event.details


def test_sanitize_leaves_plain_text_alone():
    assert sanitize_details("Rate limit 'auth' exceeded") == "Rate limit 'auth' exceeded"


def test_mask_ip():
    assert mask_ip("192.168.10.20") == "192.168.xxx.xxx"
    assert mask_ip("testclient") == "testclient"
    assert mask_ip("::1") == "::1"


def test_to_dict_serializes_timestamp():
    event = SecurityEventLog().log(SecurityEventCategory.API_ERROR, "1.2.3.4", "/x", "boom")

    data = event.to_dict()
    assert data["category"] == "api_error"
    assert isinstance(data["timestamp"], str)


def test_webhook_only_in_production():
    with patch.object(SecurityEventLog, "_dispatch") as dispatch:
        SecurityEventLog(webhook_url="https://hooks.example.com/x").log(
            SecurityEventCategory.RATE_LIMIT, "1.2.3.4", "/x", "dev"
        )
        dispatch.assert_not_called()

        SecurityEventLog(webhook_url="https://hooks.example.com/x", production=True).log(
            SecurityEventCategory.RATE_LIMIT, "1.2.3.4", "/x", "prod"
        )
        dispatch.assert_called_once()


def test_webhook_failure_is_logged_not_raised(caplog):
    log = SecurityEventLog(webhook_url="https://hooks.example.com/x", production=True)
    with patch.object(SecurityEventLog, "_dispatch"):
        event = log.log(SecurityEventCategory.RATE_LIMIT, "1.2.3.4", "/x", "prod")

    with patch("festive.security.event_log.httpx.Client") as client_cls:
        client_cls.return_value.__enter__.return_value.post.side_effect = httpx.ConnectError("down")
        log._post(event)

    assert "Failed to deliver security event" in caplog.text


@patch("festive.security.event_log.ThreadPoolExecutor")
def test_concurrent_logging_shares_one_webhook_executor(executor_cls):
    log = SecurityEventLog(webhook_url="https://hooks.example.com/x", production=True)
    start = threading.Barrier(8)

    def worker(n):
        start.wait()
        log.log(SecurityEventCategory.RATE_LIMIT, "1.2.3.4", "/x", f"burst {n}")

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    executor_cls.assert_called_once()
    assert executor_cls.return_value.submit.call_count == 8
    assert len(log) == 8


@patch("festive.security.event_log.ThreadPoolExecutor")
def test_no_executor_without_webhook(executor_cls):
    log = SecurityEventLog(webhook_url="https://hooks.example.com/x")
    log.log(SecurityEventCategory.RATE_LIMIT, "1.2.3.4", "/x", "dev")
    log.shutdown()

    executor_cls.assert_not_called()
