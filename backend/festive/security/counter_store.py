"""Point-budget counters on ``limits`` storage: Redis primary, in-memory fallback.

A tier is a fixed window of ``points`` hits per ``duration`` seconds. The hit
that first spends past the budget also sets a block key that lives for
``block_duration`` seconds, which is how a key stays blocked after its window
has reset.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from limits import RateLimitItemPerSecond
from limits.errors import StorageError
from limits.storage import Storage, storage_from_string
from limits.strategies import FixedWindowRateLimiter

logger = logging.getLogger(__name__)

MEMORY_URL = "memory://"


@dataclass(frozen=True)
class ConsumeResult:
    """Outcome of spending one point, and ms until the key is usable again."""

    allowed: bool
    remaining: int
    ms_before_next: int


class CounterStore:
    """Fixed-window counters with a block key, over a single ``limits`` storage."""

    def __init__(
        self,
        storage: Storage,
        key_prefix: str = "festive",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage
        self._window = FixedWindowRateLimiter(storage)
        self._key_prefix = key_prefix
        self._clock = clock

    @classmethod
    def from_url(cls, url: str = MEMORY_URL, timeout: float | None = None) -> "CounterStore":
        """Build a store from a ``limits`` storage URI.

        For Redis, ``timeout`` bounds both connecting and every command.
        Backend errors surface as ``limits.errors.StorageError``.
        """
        options = {}
        if timeout is not None and url != MEMORY_URL:
            options = {"socket_timeout": timeout, "socket_connect_timeout": timeout}
        return cls(storage_from_string(url, wrap_exceptions=True, **options))

    @property
    def name(self) -> str:
        return self.storage.STORAGE_SCHEME[0]

    def _block_key(self, key: str) -> str:
        return f"{self._key_prefix}/block/{key}"

    def _ms_until(self, reset_at: float) -> int:
        return max(0, int(round((reset_at - self._clock()) * 1000)))

    def consume(self, key: str, points: int, duration: int, block_duration: int) -> ConsumeResult:
        block_key = self._block_key(key)
        if block_duration > 0 and self.storage.get(block_key):
            return ConsumeResult(False, 0, self._ms_until(self.storage.get_expiry(block_key)))

        item = RateLimitItemPerSecond(points, duration)
        allowed = self._window.hit(item, self._key_prefix, key)
        if not allowed and block_duration > 0:
            self.storage.incr(block_key, expiry=block_duration)
            return ConsumeResult(False, 0, self._ms_until(self.storage.get_expiry(block_key)))

        stats = self._window.get_window_stats(item, self._key_prefix, key)
        return ConsumeResult(allowed, stats.remaining, self._ms_until(stats.reset_time))

    def reset(self, key: str, points: int, duration: int) -> None:
        self._window.clear(RateLimitItemPerSecond(points, duration), self._key_prefix, key)
        self.storage.clear(self._block_key(key))

    def ping(self) -> bool:
        return bool(self.storage.check())


class FallbackCounterStore:
    """Uses ``primary`` while it is healthy, ``fallback`` while it is not.

    A primary failure demotes the store for ``retry_interval`` seconds. After
    that, the next call health-checks the primary storage and promotes it back
    if the check passes. Requests never fail because the primary is unreachable.
    """

    def __init__(
        self,
        primary: CounterStore,
        fallback: CounterStore,
        retry_interval: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._primary = primary
        self._fallback = fallback
        self._retry_interval = retry_interval
        self._clock = clock
        self._degraded_since: float | None = None
        self._lock = threading.Lock()

    @property
    def degraded(self) -> bool:
        return self._degraded_since is not None

    @property
    def name(self) -> str:
        return self._fallback.name if self.degraded else self._primary.name

    def consume(self, key: str, points: int, duration: int, block_duration: int) -> ConsumeResult:
        if self._use_primary():
            try:
                return self._primary.consume(key, points, duration, block_duration)
            except StorageError as e:
                self._demote(e)
        return self._fallback.consume(key, points, duration, block_duration)

    def reset(self, key: str, points: int, duration: int) -> None:
        self._fallback.reset(key, points, duration)
        if self._use_primary():
            try:
                self._primary.reset(key, points, duration)
            except StorageError as e:
                self._demote(e)

    def ping(self) -> bool:
        return True

    def _use_primary(self) -> bool:
        with self._lock:
            if self._degraded_since is None:
                return True
            if self._clock() - self._degraded_since < self._retry_interval:
                return False
        return self._try_promote()

    def _try_promote(self) -> bool:
        try:
            healthy = self._primary.ping()
        except StorageError as e:
            logger.debug(f"Rate-limit storage health check failed: {e}")
            healthy = False

        with self._lock:
            if healthy:
                self._degraded_since = None
                logger.info(f"Rate-limit storage promoted back to {self._primary.name}")
            else:
                self._degraded_since = self._clock()
        return healthy

    def _demote(self, error: Exception) -> None:
        with self._lock:
            if self._degraded_since is None:
                logger.warning(
                    f"Rate-limit storage {self._primary.name} unavailable ({error}), "
                    f"falling back to {self._fallback.name}"
                )
            self._degraded_since = self._clock()
