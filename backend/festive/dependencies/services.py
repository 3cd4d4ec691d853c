"""Dependencies for the process-wide rate limiter and security event log.

Both are built once in ``festive.main`` and stored on ``app.state``.
"""

from collections.abc import Callable

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials

from festive.dependencies.auth import bearer_scheme, extract_access_token
from festive.errors import RateLimited
from festive.security.client_info import get_client_info, rate_limit_identifier
from festive.security.event_log import SecurityEventCategory, SecurityEventLog
from festive.security.rate_limiter import RateLimiterService
from festive.services.auth_service import ACCESS_TOKEN_TYPE, AuthService


def get_rate_limiter(request: Request) -> RateLimiterService:
    return request.app.state.rate_limiter


def get_security_events(request: Request) -> SecurityEventLog:
    return request.app.state.security_events


def rate_limit(limiter: str) -> Callable[..., None]:
    """Build a dependency that spends one point of ``limiter`` per request.

    Authenticated callers are counted per user, everyone else per client IP.
    """

    def dependency(
        request: Request,
        bearer: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    ) -> None:
        client = get_client_info(request)
        payload = AuthService.verify_token(extract_access_token(request, bearer), ACCESS_TOKEN_TYPE)
        identifier = rate_limit_identifier(client.ip_address, payload["sub"] if payload else None)

        result = get_rate_limiter(request).check(limiter, identifier)
        if result.allowed:
            return

        get_security_events(request).log(
            SecurityEventCategory.RATE_LIMIT,
            client.ip_address,
            request.url.path,
            f"Rate limit '{limiter}' exceeded for {identifier}",
            client.user_agent,
        )
        raise RateLimited(retry_after=result.retry_after_seconds)

    dependency.__name__ = f"rate_limit_{limiter}"
    return dependency
