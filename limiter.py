"""
Kaspa Faucet: Requester identity + flood guard (shared instance)
The identity returned by get_client_ip keys both the per-route slowapi limits and
the claim cooldown. Imported by main.py and the routers that apply @limiter.limit().
"""
from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

CLAIM_LIMIT  = "10/minute"
STATUS_LIMIT = "60/minute"


def get_client_ip(request: Request) -> str:
    """
    Use the configured proxy header (CF-Connecting-IP, X-Forwarded-For, ...) when
    the faucet sits behind a trusted proxy, fall back to the remote address.
    """
    settings = getattr(request.app.state, "settings", None)
    header = settings.trusted_proxy_header if settings else ""
    if header:
        forwarded = request.headers.get(header, "")
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return get_remote_address(request)


limiter = Limiter(key_func=get_client_ip)
