"""In-memory security event log.

A bounded, per-process ring buffer of security-relevant rejections (rate
limits, malformed input, bad 2FA codes). It is an operator aid, not an audit
of record; durable auditing goes through ``SecurityAuditService``.
"""

import logging
import re
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime

import httpx

logger = logging.getLogger(__name__)


class SecurityEventCategory:
    """Constants for security event categories."""

    RATE_LIMIT = "rate_limit"
    INVALID_INPUT = "invalid_input"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    API_ERROR = "api_error"
    UNAUTHORIZED = "unauthorized"


@dataclass(frozen=True)
class SecurityEvent:
    category: str
    ip_address: str
    endpoint: str
    details: str
    user_agent: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_TOKEN_RE = re.compile(r"[a-f0-9]{32,}", re.IGNORECASE)
_PASSWORD_RE = re.compile(r"password[=:]\s*\S+", re.IGNORECASE)


def sanitize_details(details: str) -> str:
    """Strip emails, long hex tokens and password values from free text."""
    sanitized = _EMAIL_RE.sub("[EMAIL]", details)
    sanitized = _TOKEN_RE.sub("[TOKEN]", sanitized)
    return _PASSWORD_RE.sub("password=[REDACTED]", sanitized)


def mask_ip(ip_address: str) -> str:
    """Hide the last two octets of an IPv4 address."""
    parts = ip_address.split(".")
    if len(parts) == 4:
        return f"{parts[0]}.{parts[1]}.xxx.xxx"
    return ip_address


class SecurityEventLog:
    """Fixed-capacity, thread-safe log of security events (oldest evicted first)."""

    def __init__(
        self,
        capacity: int = 1000,
        webhook_url: str = "",
        production: bool = False,
        webhook_timeout: float = 5.0,
    ):
        self.capacity = capacity
        self._events: deque[SecurityEvent] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._webhook_url = webhook_url if production else ""
        self._webhook_timeout = webhook_timeout
        self._executor: ThreadPoolExecutor | None = None
        if self._webhook_url:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="security-webhook")

    def log(
        self,
        category: str,
        ip_address: str,
        endpoint: str,
        details: str,
        user_agent: str | None = None,
    ) -> SecurityEvent:
        """Record an event. Details are sanitized before they are stored or sent."""
        event = SecurityEvent(
            category=category,
            ip_address=ip_address,
            endpoint=endpoint,
            details=sanitize_details(details),
            user_agent=user_agent,
        )
        with self._lock:
            self._events.append(event)

        logger.warning(
            f"[SECURITY EVENT] {category} | ip={mask_ip(ip_address)} | "
            f"endpoint={endpoint} | {event.details}"
        )

        if self._webhook_url:
            self._dispatch(event)
        return event

    def recent(self, limit: int = 100) -> list[SecurityEvent]:
        """Most recent events, oldest first."""
        with self._lock:
            events = list(self._events)
        return events[-limit:] if limit > 0 else []

    def by_category(self, category: str) -> list[SecurityEvent]:
        with self._lock:
            return [e for e in self._events if e.category == category]

    def by_source(self, ip_address: str) -> list[SecurityEvent]:
        with self._lock:
            return [e for e in self._events if e.ip_address == ip_address]

    def __len__(self) -> int:
        return len(self._events)

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)

    def _dispatch(self, event: SecurityEvent) -> None:
        self._executor.submit(self._post, event)

    def _post(self, event: SecurityEvent) -> None:
        try:
            with httpx.Client(timeout=self._webhook_timeout) as client:
                response = client.post(self._webhook_url, json=event.to_dict())
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to deliver security event to webhook: {e}")
