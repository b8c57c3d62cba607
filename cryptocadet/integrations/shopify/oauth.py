"""Shopify OAuth helpers for HMAC verification and token exchange."""

import hashlib
import hmac
import re
from urllib.parse import urlencode

import httpx

from cryptocadet.core.config import settings

SHOP_DOMAIN_RE = re.compile(r"^[a-z0-9][a-z0-9\-]*\.myshopify\.com$")


def is_valid_shop_domain(shop: str) -> bool:
    """Check that a shop parameter is a bare ``*.myshopify.com`` host.

    Anything else (custom domains, paths, ports) is rejected so the OAuth
    redirect and token exchange can only ever target Shopify.
    """
    return bool(SHOP_DOMAIN_RE.match(shop))


def verify_hmac(query_params: dict[str, str], secret: str) -> bool:
    """Verify Shopify OAuth callback HMAC signature.

    Args:
        query_params: All query parameters from the callback URL.
        secret: The Shopify API secret.

    Returns:
        True if HMAC is valid.
    """
    received_hmac = query_params.get("hmac", "")
    if not received_hmac:
        return False

    # Build message from sorted params excluding 'hmac'
    params = {k: v for k, v in sorted(query_params.items()) if k != "hmac"}
    message = urlencode(params)

    computed = hmac.new(
        secret.encode("utf-8"),
        message.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()

    return hmac.compare_digest(computed, received_hmac)


def build_redirect_uri() -> str:
    """The OAuth callback URL registered with Shopify."""
    return f"{settings.app_url.rstrip('/')}/auth/callback"


def build_auth_url(shop: str, nonce: str) -> str:
    """Build the Shopify OAuth authorization URL.

    Args:
        shop: The shop domain (e.g. mystore.myshopify.com).
        nonce: Random state parameter for CSRF protection.

    Returns:
        The full authorization URL to redirect the merchant to.
    """
    params = urlencode({
        "client_id": settings.shopify_api_key,
        "scope": settings.shopify_scopes,
        "redirect_uri": build_redirect_uri(),
        "state": nonce,
    })
    return f"https://{shop}/admin/oauth/authorize?{params}"


async def exchange_code_for_token(shop: str, code: str) -> tuple[str, str]:
    """Exchange the OAuth authorization code for a permanent access token.

    The code is single-use; Shopify rejects a second exchange.

    Args:
        shop: The shop domain.
        code: The authorization code from Shopify.

    Returns:
        Tuple of (access token, granted scopes).

    Raises:
        httpx.HTTPStatusError: If the token exchange fails.
    """
    url = f"https://{shop}/admin/oauth/access_token"
    async with httpx.AsyncClient(timeout=15.0) as client:
        response = await client.post(url, json={
            "client_id": settings.shopify_api_key,
            "client_secret": settings.shopify_api_secret,
            "code": code,
        })
        response.raise_for_status()
        data = response.json()
        return data["access_token"], data.get("scope", "")
