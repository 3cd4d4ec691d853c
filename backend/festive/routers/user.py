"""Per-user router. Every route runs behind the authorization gate."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from festive.database import get_db
from festive.dependencies.auth import Identity, require_owner, require_subscription
from festive.dependencies.services import rate_limit
from festive.schemas.user import SubscriptionInfo, SubscriptionResponse, UserSettingsResponse
from festive.security.rate_limiter import RateLimiterName
from festive.services.subscription_service import SubscriptionService

router = APIRouter(
    prefix="/user",
    tags=["user"],
    dependencies=[Depends(rate_limit(RateLimiterName.GENERAL))],
)


@router.get("/{user_id}/settings", response_model=UserSettingsResponse)
def get_settings(identity: Identity = Depends(require_owner)) -> dict:
    """Account settings. Only the owner may read them."""
    user = identity.user
    return {
        "user_id": user.id,
        "name": user.name,
        "email": identity.email,
        "email_verified": user.email_verified,
        "two_factor_enabled": user.two_factor_enabled,
    }


@router.get("/{user_id}/subscription", response_model=SubscriptionResponse)
def get_subscription(
    identity: Identity = Depends(require_subscription),
    db: Session = Depends(get_db),
) -> dict:
    """Active subscription details. Owner only, and only with an active plan."""
    subscription = SubscriptionService.find_active(db, identity.user_id)
    return {"subscription": SubscriptionInfo.model_validate(subscription)}
