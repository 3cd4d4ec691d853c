"""Client identification from inbound requests."""

from dataclasses import dataclass

from fastapi import Request
from slowapi.util import get_remote_address

UNKNOWN_IP = "unknown"
MAX_USER_AGENT_LENGTH = 500


@dataclass(frozen=True)
class ClientInfo:
    """Source address and user agent of a request."""

    ip_address: str
    user_agent: str | None = None


def get_client_ip(request: Request | None) -> str:
    """Resolve the real client IP.

    Order: CF-Connecting-IP, first X-Forwarded-For hop, X-Real-IP, socket peer.
    """
    if request is None:
        return UNKNOWN_IP

    headers = request.headers
    cf_ip = headers.get("CF-Connecting-IP")
    if cf_ip:
        return cf_ip.strip()

    forwarded_for = headers.get("X-Forwarded-For")
    if forwarded_for:
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop

    real_ip = headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return get_remote_address(request)
    return UNKNOWN_IP


def get_client_info(request: Request | None) -> ClientInfo:
    """Extract IP address and user agent from a FastAPI request."""
    if request is None:
        return ClientInfo(ip_address=UNKNOWN_IP)
    user_agent = request.headers.get("User-Agent", "")[:MAX_USER_AGENT_LENGTH] or None
    return ClientInfo(ip_address=get_client_ip(request), user_agent=user_agent)


def rate_limit_identifier(client_ip: str, user_id: str | None = None) -> str:
    """Counter key for a caller: ``user:<id>`` when authenticated, else ``ip:<address>``."""
    if user_id:
        return f"user:{user_id}"
    return f"ip:{client_ip}"
