"""Entitlement lookups for subscription-gated operations."""

from datetime import UTC, datetime

from sqlalchemy import or_
from sqlalchemy.orm import Session

from festive.models import Subscription

ACTIVE_STATUS = "active"


class SubscriptionService:
    """Read-only view over a user's subscriptions. Billing lives elsewhere."""

    @staticmethod
    def find_active(db: Session, user_id: str) -> Subscription | None:
        return (
            db.query(Subscription)
            .filter(
                Subscription.user_id == user_id,
                Subscription.status == ACTIVE_STATUS,
                or_(Subscription.expires_at.is_(None), Subscription.expires_at > datetime.now(UTC)),
            )
            .order_by(Subscription.created_at.desc())
            .first()
        )

    @staticmethod
    def has_active_subscription(db: Session, user_id: str) -> bool:
        return SubscriptionService.find_active(db, user_id) is not None
