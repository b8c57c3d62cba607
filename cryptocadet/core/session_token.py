"""App Bridge session token verification for the embedded admin page."""

from typing import Annotated, Any
from urllib.parse import urlparse

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from cryptocadet.core.config import settings

# HTTP Bearer token security scheme
bearer_scheme = HTTPBearer(auto_error=False)

# Clock skew tolerated between Shopify and this server
LEEWAY_SECONDS = 10


def decode_session_token(token: str) -> dict[str, Any]:
    """Verify an App Bridge session token.

    Session tokens are HS256 JWTs signed with the app's API secret, with the
    API key as audience and the shop URL in ``dest``.

    Args:
        token: The raw JWT from the Authorization header.

    Returns:
        The decoded payload.

    Raises:
        HTTPException: If the token is invalid or expired.
    """
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.shopify_api_secret,
            algorithms=["HS256"],
            audience=settings.shopify_api_key,
            leeway=LEEWAY_SECONDS,
            options={
                "verify_exp": True,
                "verify_nbf": True,
                "verify_aud": True,
                "require": ["exp", "nbf", "dest", "aud"],
            },
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid session token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # iss is the shop admin URL; it must live on the same host as dest
    iss_host = urlparse(str(payload.get("iss", ""))).hostname
    if iss_host and iss_host != shop_from_payload(payload):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid session token: issuer does not match destination",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload


def shop_from_payload(payload: dict[str, Any]) -> str:
    """Extract the shop domain from a session token's ``dest`` claim."""
    return urlparse(str(payload["dest"])).hostname or ""


async def get_session_shop(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str | None:
    """Return the shop the session token was issued for.

    When session tokens are not required (local development outside the
    admin iframe) a missing header yields None.
    """
    if credentials is None:
        if settings.require_session_token:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return None

    payload = decode_session_token(credentials.credentials)
    return shop_from_payload(payload)


SessionShop = Annotated[str | None, Depends(get_session_shop)]
