"""Per-client rate limits for CryptoCadet's public endpoints (slowapi).

Shopify calls the payment session endpoint from its own infrastructure and
local development runs behind an ngrok tunnel, so the client is identified
by the forwarded address rather than the socket peer.
"""

from slowapi import Limiter
from starlette.requests import Request

DEFAULT_LIMIT = "120/minute"
PAYMENT_SESSION_LIMIT = "30/minute"


def client_ip(request: Request) -> str:
    """First forwarded address, falling back to the connection's peer."""
    return (
        request.headers.get("CF-Connecting-IP")
        or request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
        or request.headers.get("X-Real-IP", "")
        or (request.client.host if request.client else "127.0.0.1")
    )


limiter = Limiter(key_func=client_ip, default_limits=[DEFAULT_LIMIT])
