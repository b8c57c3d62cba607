"""Embedded admin page and merchant activation endpoints."""

import html
import logging

import httpx
from fastapi import APIRouter, HTTPException, status
from fastapi.responses import HTMLResponse, JSONResponse

from cryptocadet.core.config import settings
from cryptocadet.core.deps import (
    DBSession,
    SessionShop,
    ShopQuery,
    check_session_shop,
    require_shop_domain,
)
from cryptocadet.core.encryption import TokenDecryptionError
from cryptocadet.integrations.shopify.client import ShopifyAPIError
from cryptocadet.schemas.merchant import (
    ActivationRequest,
    ActivationResponse,
    MerchantConfigResponse,
)
from cryptocadet.services.merchant_service import MerchantService

logger = logging.getLogger(__name__)

router = APIRouter()


def _resolve_shop(body: ActivationRequest, session_shop: str | None) -> str:
    shop = require_shop_domain(body.shop or session_shop)
    check_session_shop(session_shop, shop)
    return shop


@router.post("/activate-payment-method", response_model=ActivationResponse)
async def activate_payment_method(
    body: ActivationRequest,
    session_shop: SessionShop,
    db: DBSession,
) -> ActivationResponse | JSONResponse:
    """Turn on the Pay with Crypto button for the shop."""
    shop = _resolve_shop(body, session_shop)
    service = MerchantService(db)

    merchant = await service.get_installed(shop)
    if merchant is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"success": False, "error": "App is not installed for this shop"},
        )

    try:
        merchant = await service.activate(merchant)
    except (httpx.HTTPError, ShopifyAPIError, TokenDecryptionError) as e:
        logger.warning("Activation failed for %s: %s", shop, e)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"success": False, "error": f"Could not register storefront script: {e}"},
        )

    return ActivationResponse(
        success=True,
        shop=shop,
        crypto_enabled=merchant.crypto_enabled,
        script_tag_id=merchant.script_tag_id,
    )


@router.post("/deactivate-payment-method", response_model=ActivationResponse)
async def deactivate_payment_method(
    body: ActivationRequest,
    session_shop: SessionShop,
    db: DBSession,
) -> ActivationResponse | JSONResponse:
    """Turn off the button and remove the script tag."""
    shop = _resolve_shop(body, session_shop)
    service = MerchantService(db)

    merchant = await service.get_installed(shop)
    if merchant is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"success": False, "error": "App is not installed for this shop"},
        )

    merchant = await service.deactivate(merchant)
    return ActivationResponse(success=True, shop=shop, crypto_enabled=merchant.crypto_enabled)


@router.get("/merchant/config")
async def merchant_config(
    shop: ShopQuery,
    session_shop: SessionShop,
    db: DBSession,
) -> MerchantConfigResponse:
    """Current merchant config for the admin page."""
    check_session_shop(session_shop, shop)

    merchant = await MerchantService(db).get(shop)
    if merchant is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Merchant not found")
    return MerchantService.to_response(merchant)


@router.get("/app", response_class=HTMLResponse)
async def embedded_admin(shop: ShopQuery) -> HTMLResponse:
    """Admin page rendered inside the Shopify admin iframe."""
    api_key = html.escape(settings.shopify_api_key)
    shop_attr = html.escape(shop)
    title = html.escape(settings.project_name)

    page = f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="shopify-api-key" content="{api_key}">
  <title>{title}</title>
  <script src="https://cdn.shopify.com/shopifycloud/app-bridge.js"></script>
  <style>
    body {{ font-family: -apple-system, BlinkMacSystemFont, sans-serif; padding: 24px; }}
    button {{ padding: 10px 18px; background: {html.escape(settings.button_color)}; color: #fff;
             border: none; border-radius: 6px; cursor: pointer; font-size: 15px; }}
    .success {{ color: #108043; }}
    .error {{ color: #bf0711; }}
  </style>
</head>
<body data-shop="{shop_attr}">
  <h1>{title}</h1>
  <p>Add a "{html.escape(settings.button_label)}" button to your product and cart pages.</p>
  <button id="activate-btn" type="button">Activate crypto payments</button>
  <div id="activation-status"></div>
  <script src="/static/admin.js"></script>
</body>
</html>
"""
    # Only this shop's admin may frame the page
    csp = f"frame-ancestors https://{shop} https://admin.shopify.com;"
    return HTMLResponse(content=page, status_code=200, headers={"Content-Security-Policy": csp})
