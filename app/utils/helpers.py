"""Helper utilities (server clock, request metadata)."""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fastapi import Request


def utcnow() -> datetime:
    """The single server-side clock: naive UTC, matching stored timestamps."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class ClientInfo:
    """Device/network metadata recorded on a session. Never used for authorization."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    device_id: Optional[str] = None


def get_client_ip(request: Request) -> str:
    """Return client's IP address from request headers or connection info.

    Checks `X-Forwarded-For` first (comma-separated), then falls back to
    `request.client.host`. Returns 'unknown' if not found.
    """
    x_forwarded_for = request.headers.get("x-forwarded-for")
    if x_forwarded_for:
        # X-Forwarded-For can contain a list of IPs
        return x_forwarded_for.split(",")[0].strip()[:45]

    client = getattr(request, "client", None)
    if client and getattr(client, "host", None):
        return client.host

    return "unknown"


def client_info(request: Request, device_id: Optional[str] = None) -> ClientInfo:
    user_agent = request.headers.get("user-agent") or None
    return ClientInfo(
        ip_address=get_client_ip(request),
        user_agent=user_agent[:512] if user_agent else None,
        device_id=(device_id or request.headers.get("x-device-id") or None),
    )
