"""Authorization gate and authentication dependencies for protected routes.

Every check runs before the protected operation: an invalid session raises
``Unauthenticated``, an ownership or entitlement failure raises ``Forbidden``,
and only then is the operation invoked with the resolved identity.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from festive.database import get_db
from festive.errors import Forbidden, InvalidInput, Unauthenticated
from festive.models.user import User
from festive.security.client_info import get_client_info
from festive.security.event_log import SecurityEventCategory, SecurityEventLog
from festive.services.auth_service import ACCESS_TOKEN_TYPE, AuthService
from festive.services.repositories import UserRepository
from festive.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "access-token"
REFRESH_TOKEN_COOKIE = "refresh-token"

T = TypeVar("T")

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, resolved from a valid access token."""

    user_id: str
    email: str
    user: User


def extract_access_token(
    request: Request, bearer: HTTPAuthorizationCredentials | None = None
) -> str | None:
    """Access token from the ``access-token`` cookie, else the parsed ``Authorization: Bearer`` credentials."""
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if token:
        return token
    return bearer.credentials if bearer else None


def validate_uuid(value: str, field: str = "user_id") -> str:
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise InvalidInput(f"Invalid {field}") from None


class AuthorizationGate:
    """Resolves the caller and enforces ownership and subscription predicates."""

    def __init__(
        self,
        db: Session,
        events: SecurityEventLog | None = None,
        bearer: HTTPAuthorizationCredentials | None = None,
    ) -> None:
        self.db = db
        self.events = events
        self.bearer = bearer

    def _deny(self, request: Request, details: str) -> None:
        if self.events is None:
            return
        client = get_client_info(request)
        self.events.log(
            SecurityEventCategory.UNAUTHORIZED,
            client.ip_address,
            request.url.path,
            details,
            client.user_agent,
        )

    def authenticate(self, request: Request) -> Identity:
        payload = AuthService.verify_token(extract_access_token(request, self.bearer), ACCESS_TOKEN_TYPE)
        if payload is None:
            raise Unauthenticated()

        user = UserRepository(self.db).find_active_by_id(payload["sub"])
        if user is None:
            logger.debug(f"Valid token for missing or inactive user {payload['sub']}")
            raise Unauthenticated()

        return Identity(user_id=user.id, email=payload.get("email") or user.email, user=user)

    def authorize(
        self,
        request: Request,
        owner_id: str | None = None,
        require_subscription: bool = False,
    ) -> Identity:
        identity = self.authenticate(request)

        if owner_id is not None and identity.user_id != validate_uuid(owner_id):
            self._deny(request, f"User {identity.user_id} denied access to resources of {owner_id}")
            raise Forbidden(reason="forbidden")

        if require_subscription and not SubscriptionService.has_active_subscription(
            self.db, identity.user_id
        ):
            raise Forbidden("An active subscription is required", reason="subscription_required")

        return identity

    def run(
        self,
        request: Request,
        operation: Callable[[Identity], T],
        owner_id: str | None = None,
        require_subscription: bool = False,
    ) -> T:
        """Invoke ``operation`` with the caller's identity once every check passes."""
        identity = self.authorize(request, owner_id=owner_id, require_subscription=require_subscription)
        return operation(identity)


def get_authorization_gate(
    request: Request,
    db: Session = Depends(get_db),
    bearer: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthorizationGate:
    return AuthorizationGate(db, getattr(request.app.state, "security_events", None), bearer)


def get_current_identity(
    request: Request, gate: AuthorizationGate = Depends(get_authorization_gate)
) -> Identity:
    """
    Resolve the authenticated caller from the access token.

    Usage:
        @router.get("/protected")
        def protected_route(identity: Identity = Depends(get_current_identity)):
            return {"user_id": identity.user_id}
    """
    return gate.authorize(request)


def get_current_user(identity: Identity = Depends(get_current_identity)) -> User:
    return identity.user


def require_owner(
    user_id: str,
    request: Request,
    gate: AuthorizationGate = Depends(get_authorization_gate),
) -> Identity:
    """Caller must be the owner named by the ``user_id`` path parameter."""
    return gate.authorize(request, owner_id=user_id)


def require_subscription(
    user_id: str,
    request: Request,
    gate: AuthorizationGate = Depends(get_authorization_gate),
) -> Identity:
    """Caller must own ``user_id`` and hold an active subscription."""
    return gate.authorize(request, owner_id=user_id, require_subscription=True)
