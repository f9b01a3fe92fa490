"""
Client identity for quota accounting.

There are no user accounts: a client is its network address. Behind
reverse proxies the socket address is the proxy's, so the address is
taken from X-Forwarded-For, counting TRUSTED_PROXY_HOPS entries from the
right (entries further left are client-supplied and spoofable).

This is coarse by design — it throttles casual abuse, it does not
authenticate anyone.
"""

from __future__ import annotations

from fastapi import Request

from playlistmaker.core.config import settings

_UNKNOWN_CLIENT = "unknown"


def resolve_client_id(request: Request, trusted_hops: int) -> str:
    socket_host = request.client.host if request.client else _UNKNOWN_CLIENT
    if trusted_hops <= 0:
        return socket_host

    forwarded = request.headers.get("x-forwarded-for", "")
    hops = [entry.strip() for entry in forwarded.split(",") if entry.strip()]
    if not hops:
        return socket_host

    # Fewer entries than trusted proxies — the leftmost is the best we have.
    return hops[-trusted_hops] if len(hops) >= trusted_hops else hops[0]


async def get_client_id(request: Request) -> str:
    """
    FastAPI dependency — the caller's identity for usage tracking.

    Usage in routers:
        ClientId = Annotated[str, Depends(get_client_id)]
    """
    return resolve_client_id(request, settings.TRUSTED_PROXY_HOPS)
