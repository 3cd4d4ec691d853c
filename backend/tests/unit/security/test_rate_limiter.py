"""Tests for named rate limiters."""

import time
from unittest.mock import patch

import pytest
from limits.storage import storage_from_string

from festive.config import Settings
from festive.security.counter_store import CounterStore, FallbackCounterStore
from festive.security.rate_limiter import (
    LimiterPolicy,
    RateLimiterName,
    RateLimiterService,
    RateLimitResult,
    build_rate_limiter,
    default_policies,
)


class SteppedClock:
    def __init__(self):
        self.now = 1_000_000.0

    def __call__(self) -> float:
        return self.now

    def time(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __getattr__(self, name):
        return getattr(time, name)


@pytest.fixture
def clock():
    stepped = SteppedClock()
    with patch("limits.storage.memory.time", stepped):
        yield stepped


@pytest.fixture
def limiter(clock):
    return RateLimiterService(
        CounterStore(storage_from_string("memory://"), clock=clock),
        [LimiterPolicy(RateLimiterName.STRICT, points=5, duration=60, block_duration=600)],
    )


def test_allows_until_budget_is_spent(limiter):
    results = [limiter.check(RateLimiterName.STRICT, "ip:1.2.3.4") for _ in range(5)]

    assert all(r.allowed for r in results)
    assert [r.remaining for r in results] == [4, 3, 2, 1, 0]


def test_sixth_request_is_blocked_for_block_duration(limiter):
    for _ in range(5):
        limiter.check(RateLimiterName.STRICT, "ip:1.2.3.4")

    result = limiter.check(RateLimiterName.STRICT, "ip:1.2.3.4")

    assert not result.allowed
    assert result.remaining == 0
    assert result.retry_after_seconds == 600


def test_block_outlasts_the_window(limiter, clock):
    for _ in range(6):
        limiter.check(RateLimiterName.STRICT, "ip:1.2.3.4")

    clock.advance(120)
    assert not limiter.check(RateLimiterName.STRICT, "ip:1.2.3.4").allowed

    clock.advance(600)
    assert limiter.check(RateLimiterName.STRICT, "ip:1.2.3.4").allowed


def test_identifiers_have_separate_budgets(limiter):
    for _ in range(6):
        limiter.check(RateLimiterName.STRICT, "ip:1.2.3.4")

    assert limiter.check(RateLimiterName.STRICT, "ip:5.6.7.8").allowed
    assert limiter.check(RateLimiterName.STRICT, "user:abc").allowed


def test_reset_restores_budget(limiter):
    for _ in range(6):
        limiter.check(RateLimiterName.STRICT, "ip:1.2.3.4")

    limiter.reset(RateLimiterName.STRICT, "ip:1.2.3.4")

    assert limiter.check(RateLimiterName.STRICT, "ip:1.2.3.4").allowed


def test_unknown_limiter_raises(limiter):
    with pytest.raises(ValueError):
        limiter.check("nonexistent", "ip:1.2.3.4")


def test_retry_after_rounds_up():
    assert RateLimitResult(False, 0, 1001).retry_after_seconds == 2
    assert RateLimitResult(False, 0, 1000).retry_after_seconds == 1
    assert RateLimitResult(True, 3, 0).retry_after_seconds == 0


def test_default_policies_match_settings():
    policies = {p.name: p for p in default_policies(Settings())}

    assert policies[RateLimiterName.GENERAL] == LimiterPolicy("general", 100, 60, 60)
    assert policies[RateLimiterName.AUTH] == LimiterPolicy("auth", 10, 60, 300)
    assert policies[RateLimiterName.STRICT] == LimiterPolicy("strict", 5, 60, 600)


def test_status_reports_engine_and_budgets(limiter):
    status = limiter.status()

    assert status["engine"] == "memory"
    assert status["degraded"] is False
    assert status["limiters"]["strict"] == {"points": 5, "duration": 60, "block_duration": 600}


def test_build_without_redis_uses_memory():
    service = build_rate_limiter(Settings(redis_url=""))

    assert isinstance(service.store, CounterStore)
    assert service.store.name == "memory"


def test_build_with_redis_wraps_in_fallback():
    with patch(
        "festive.security.counter_store.storage_from_string", wraps=storage_from_string
    ) as from_string:
        service = build_rate_limiter(Settings(redis_url="redis://localhost:6379/0"))

    assert isinstance(service.store, FallbackCounterStore)
    from_string.assert_any_call(
        "redis://localhost:6379/0",
        wrap_exceptions=True,
        socket_timeout=0.5,
        socket_connect_timeout=0.5,
    )
    from_string.assert_any_call("memory://", wrap_exceptions=True)
