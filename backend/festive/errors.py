"""Typed failures raised by the auth core.

Every expected failure is one of these. The exception handlers registered in
``festive.main`` turn them into the standard JSON error envelope, so nothing
but a generic ``internal`` error ever crosses the HTTP boundary untyped.
"""

from fastapi import status


class FestiveError(Exception):
    """Base exception for expected, client-visible failures."""

    category = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None, *, reason: str | None = None):
        self.message = message or self.default_message
        self.reason = reason
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"success": False, "error": self.category, "message": self.message}
        if self.reason:
            body["reason"] = self.reason
        return body


class InvalidInput(FestiveError):
    """Malformed email, password, code or token. Raised before any DB access."""

    category = "invalid_input"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


class Unauthenticated(FestiveError):
    """Missing, invalid or expired session token."""

    category = "unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Authentication required"


class Forbidden(FestiveError):
    """Valid session that failed an ownership or entitlement check."""

    category = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Access denied"


class InvalidCredentials(FestiveError):
    """Unknown user, wrong password or wrong 2FA code.

    Deliberately coarse so responses cannot be used to enumerate accounts.
    """

    category = "invalid_credentials"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid email or password"


class AccountNotUsable(FestiveError):
    """Account exists but cannot log in yet (e.g. email not verified)."""

    category = "account_not_usable"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Account cannot be used to log in"


class RateLimited(FestiveError):
    """Request budget exhausted."""

    category = "rate_limited"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many attempts. Please wait a few minutes."

    def __init__(self, message: str | None = None, *, retry_after: int = 0, reason: str | None = None):
        super().__init__(message, reason=reason)
        self.retry_after = max(0, int(retry_after))


class Conflict(FestiveError):
    """Resource already exists (duplicate registration)."""

    category = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class Internal(FestiveError):
    """Unexpected failure, surfaced with a generic message only."""
