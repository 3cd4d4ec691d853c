"""Admin router: operator views of security events, the audit log and rate limiting."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from festive.database import get_db
from festive.dependencies.admin import get_admin_user
from festive.dependencies.services import get_rate_limiter, get_security_events, rate_limit
from festive.models.user import User
from festive.schemas.admin import (
    AuditLogFilters,
    AuditLogsResponse,
    RateLimitStatusResponse,
    SecurityEventsResponse,
)
from festive.security.event_log import SecurityEventLog
from festive.security.rate_limiter import RateLimiterName, RateLimiterService
from festive.services.security_audit_service import SecurityAuditService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(rate_limit(RateLimiterName.GENERAL))],
)


@router.get("/security-events", response_model=SecurityEventsResponse)
def list_security_events(
    category: str | None = Query(None, max_length=50),
    ip: str | None = Query(None, max_length=45),
    limit: int = Query(100, ge=1, le=1000),
    events: SecurityEventLog = Depends(get_security_events),
    admin: User = Depends(get_admin_user),
) -> dict:
    """Recent in-memory security events, optionally filtered by category or source IP."""
    if category:
        selected = events.by_category(category)
        if ip:
            selected = [event for event in selected if event.ip_address == ip]
    elif ip:
        selected = events.by_source(ip)
    else:
        selected = events.recent(limit)

    logger.info(f"Admin {admin.id} viewed security events (category={category}, ip={ip})")
    return {
        "total": len(events),
        "capacity": events.capacity,
        "events": selected[-limit:],
    }


@router.get("/audit-logs", response_model=AuditLogsResponse)
def list_audit_logs(
    filters: Annotated[AuditLogFilters, Query()],
    db: Session = Depends(get_db),
    admin: User = Depends(get_admin_user),
) -> dict:
    """Durable audit trail, newest first, filtered by user, event type, IP and time range."""
    entries, total = SecurityAuditService.find_events(db, filters)
    logger.info(f"Admin {admin.id} viewed audit logs ({filters.model_dump(exclude_none=True)})")
    return {
        "items": entries,
        "total": total,
        "offset": filters.offset,
        "limit": filters.limit,
        "has_more": filters.offset + len(entries) < total,
    }


@router.get("/rate-limit-status", response_model=RateLimitStatusResponse)
def rate_limit_status(
    limiter: RateLimiterService = Depends(get_rate_limiter),
    admin: User = Depends(get_admin_user),
) -> dict:
    """Active counter engine (redis or memory) and the configured limiter budgets."""
    return limiter.status()
