"""Schemas for admin endpoints."""

import json
from datetime import UTC, datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from festive.schemas.common import PaginatedResponse


class SecurityEventOut(BaseModel):
    category: str
    ip_address: str
    endpoint: str
    details: str
    user_agent: str | None = None
    timestamp: datetime

    model_config = {"from_attributes": True}


class SecurityEventsResponse(BaseModel):
    success: bool = True
    total: int
    capacity: int
    events: list[SecurityEventOut]


class LimiterPolicyOut(BaseModel):
    points: int
    duration: int
    block_duration: int


class RateLimitStatusResponse(BaseModel):
    success: bool = True
    engine: str
    degraded: bool
    limiters: dict[str, LimiterPolicyOut]


class AuditLogFilters(BaseModel):
    """Optional filters for the durable audit log. Unset fields match everything."""

    user_id: str | None = Field(None, max_length=36)
    event_type: str | None = Field(None, max_length=50)
    ip_address: str | None = Field(None, max_length=45)
    start: datetime | None = Field(None, description="Events at or after this time")
    end: datetime | None = Field(None, description="Events at or before this time")
    limit: int = Field(50, ge=1, le=500)
    offset: int = Field(0, ge=0)

    @field_validator("start", "end")
    @classmethod
    def as_utc(cls, v: datetime | None) -> datetime | None:
        # Naive timestamps are taken as UTC
        if v is None:
            return None
        return v.replace(tzinfo=UTC) if v.tzinfo is None else v.astimezone(UTC)

    @model_validator(mode="after")
    def check_range(self) -> "AuditLogFilters":
        if self.start and self.end and self.start > self.end:
            raise ValueError("start must not be after end")
        return self


class AuditLogOut(BaseModel):
    id: str
    user_id: str | None = None
    event_type: str
    severity: str
    endpoint: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    details: dict | None = None
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("details", mode="before")
    @classmethod
    def parse_details(cls, v):
        if isinstance(v, str):
            return json.loads(v)
        return v


class AuditLogsResponse(PaginatedResponse[AuditLogOut]):
    pass
