"""Schemas for per-user endpoints."""

from datetime import datetime

from pydantic import BaseModel


class UserSettingsResponse(BaseModel):
    success: bool = True
    user_id: str
    name: str | None = None
    email: str
    email_verified: bool
    two_factor_enabled: bool


class SubscriptionInfo(BaseModel):
    plan: str
    status: str
    expires_at: datetime | None = None

    model_config = {"from_attributes": True}


class SubscriptionResponse(BaseModel):
    success: bool = True
    subscription: SubscriptionInfo
