"""Shopify OAuth install flow."""

import logging
import secrets

import httpx
from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse

from cryptocadet.core.config import settings
from cryptocadet.core.deps import DBSession, RedisClient, require_shop_domain
from cryptocadet.integrations.shopify.oauth import build_auth_url, exchange_code_for_token, verify_hmac
from cryptocadet.services.merchant_service import MerchantService
from cryptocadet.workers.tasks.shopify import register_app_webhooks

logger = logging.getLogger(__name__)

router = APIRouter()

NONCE_TTL_SECONDS = 600  # 10 minutes
NONCE_KEY_PREFIX = "shopify_oauth:"


def embedded_app_url(shop: str) -> str:
    """Where the merchant lands after install: the app inside Shopify admin."""
    return f"https://{shop}/admin/apps/{settings.shopify_api_key}"


@router.get("/auth")
async def install(
    request: Request,
    r: RedisClient,
    shop: str | None = Query(None),
) -> RedirectResponse:
    """Start the OAuth flow.

    Shopify's install launch carries an ``hmac``; when present it must verify.
    A one-time nonce is stored in Redis and sent as ``state``.
    """
    shop = require_shop_domain(shop)

    params = dict(request.query_params)
    if "hmac" in params and not verify_hmac(params, settings.shopify_api_secret):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid HMAC signature")

    nonce = secrets.token_urlsafe(16)
    await r.set(f"{NONCE_KEY_PREFIX}{nonce}", shop, ex=NONCE_TTL_SECONDS)

    logger.info("Starting OAuth for %s", shop)
    return RedirectResponse(build_auth_url(shop, nonce))


@router.get("/auth/callback")
async def callback(
    request: Request,
    db: DBSession,
    r: RedisClient,
    code: str | None = Query(None),
    shop: str | None = Query(None),
    state: str | None = Query(None),
) -> RedirectResponse:
    """Handle the OAuth callback: verify, exchange the code, store the merchant.

    A missing ``hmac`` fails verification like a wrong one.
    """
    shop = require_shop_domain(shop)

    # Verify HMAC
    params = dict(request.query_params)
    if not verify_hmac(params, settings.shopify_api_secret):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid HMAC signature")
    if not code:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Missing code parameter")
    if not state:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid or expired state")

    # Consume nonce (one-time)
    expected_shop = await r.getdel(f"{NONCE_KEY_PREFIX}{state}")

    if not expected_shop:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid or expired state")
    if expected_shop != shop:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Shop mismatch")

    # Exchange code for access token
    try:
        access_token, granted_scopes = await exchange_code_for_token(shop, code)
    except httpx.HTTPError as e:
        logger.warning("Token exchange failed for %s: %s", shop, e)
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, "Token exchange failed")

    await MerchantService(db).record_installation(shop, access_token, granted_scopes)

    # Webhook registration runs in the worker
    register_app_webhooks.delay(shop)

    return RedirectResponse(embedded_app_url(shop))
