"""Named point-budget rate limiters.

Each identifier gets ``points`` requests per ``duration`` seconds. Once a key
exhausts its budget it stays blocked for ``block_duration`` seconds, which may
be longer than the window itself.
"""

import logging
from dataclasses import dataclass

from festive.config import Settings
from festive.security.counter_store import CounterStore, FallbackCounterStore

logger = logging.getLogger(__name__)


class RateLimiterName:
    """Limiter tiers, from broad to strict."""

    GENERAL = "general"
    AUTH = "auth"
    STRICT = "strict"


@dataclass(frozen=True)
class LimiterPolicy:
    name: str
    points: int
    duration: int  # seconds
    block_duration: int  # seconds


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time_ms: int

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds until the key is usable again (rounded up)."""
        return -(-self.reset_time_ms // 1000)


class RateLimiterService:
    """Consumes points from named limiters backed by a single counter store.

    Constructed once at startup and shared by all requests through
    ``app.state.rate_limiter``.
    """

    def __init__(self, store: CounterStore | FallbackCounterStore, policies: list[LimiterPolicy]):
        self.store = store
        self.policies = {policy.name: policy for policy in policies}

    def _policy(self, limiter: str) -> LimiterPolicy:
        try:
            return self.policies[limiter]
        except KeyError:
            raise ValueError(f"Unknown rate limiter: {limiter}") from None

    def check(self, limiter: str, identifier: str) -> RateLimitResult:
        """Consume one point for ``identifier`` and report whether it was allowed.

        Exhaustion is reported through ``allowed=False``, never raised.
        """
        policy = self._policy(limiter)
        result = self.store.consume(
            f"{policy.name}:{identifier}",
            policy.points,
            policy.duration,
            policy.block_duration,
        )

        if not result.allowed:
            logger.info(
                f"Rate limit '{policy.name}' exceeded for {identifier}, "
                f"retry in {result.ms_before_next}ms"
            )

        return RateLimitResult(
            allowed=result.allowed, remaining=result.remaining, reset_time_ms=result.ms_before_next
        )

    def reset(self, limiter: str, identifier: str) -> None:
        policy = self._policy(limiter)
        self.store.reset(f"{policy.name}:{identifier}", policy.points, policy.duration)

    def status(self) -> dict:
        """Engine and policy summary for operators."""
        return {
            "engine": self.store.name,
            "degraded": getattr(self.store, "degraded", False),
            "limiters": {
                name: {
                    "points": policy.points,
                    "duration": policy.duration,
                    "block_duration": policy.block_duration,
                }
                for name, policy in self.policies.items()
            },
        }


def default_policies(settings: Settings) -> list[LimiterPolicy]:
    return [
        LimiterPolicy(
            RateLimiterName.GENERAL,
            settings.general_rate_limit_points,
            settings.general_rate_limit_duration,
            settings.general_rate_limit_block,
        ),
        LimiterPolicy(
            RateLimiterName.AUTH,
            settings.auth_rate_limit_points,
            settings.auth_rate_limit_duration,
            settings.auth_rate_limit_block,
        ),
        LimiterPolicy(
            RateLimiterName.STRICT,
            settings.strict_rate_limit_points,
            settings.strict_rate_limit_duration,
            settings.strict_rate_limit_block,
        ),
    ]


def build_rate_limiter(settings: Settings) -> RateLimiterService:
    """Build the process-wide limiter.

    With ``redis_url`` set, counters live in Redis and fall back to process
    memory whenever Redis is unreachable. Without it, memory only.
    """
    if settings.redis_url:
        store: CounterStore | FallbackCounterStore = FallbackCounterStore(
            CounterStore.from_url(settings.redis_url, settings.redis_timeout_seconds),
            CounterStore.from_url(),
            retry_interval=settings.redis_retry_interval_seconds,
        )
        logger.info("Rate limiter using Redis with in-memory fallback")
    else:
        store = CounterStore.from_url()
        logger.info("Rate limiter using in-memory counters (single process only)")

    return RateLimiterService(store, default_policies(settings))
