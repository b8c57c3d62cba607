"""Development helpers: sample payload and app URL configuration."""

import logging
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

from fastapi import APIRouter, HTTPException, status

from cryptocadet.integrations.shopify.webhooks import webhook_endpoints
from cryptocadet.schemas.storefront import AppConfiguration, ConfigureAppRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/test/payment")
async def test_payment() -> dict[str, Any]:
    """Sample payment session body for exercising /payments/sessions."""
    return {
        "message": "Test payment endpoint",
        "sample_payment_session": {
            "gid": "gid://shopify/PaymentSession/test123",
            "amount": "29.99",
            "currency": "USD",
            "test": True,
            "return_url": "https://test-store.myshopify.com/checkout",
        },
    }


@router.post("/configure-app")
async def configure_app(body: ConfigureAppRequest) -> dict[str, Any]:
    """Derive the URLs to paste into the Partner dashboard for a new tunnel URL."""
    if not body.app_url:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            "app_url is required (e.g., https://your-ngrok-url.ngrok.io)",
        )

    parsed = urlparse(body.app_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, "app_url must be an http(s) URL")

    app_url = f"{parsed.scheme}://{parsed.netloc}{parsed.path.rstrip('/')}"
    configuration = AppConfiguration(
        app_url=app_url,
        redirect_urls=[f"{app_url}/auth/callback"],
        webhook_endpoints=webhook_endpoints(app_url),
        script_src=f"{app_url}/storefront/crypto-button.js",
        configured_at=datetime.now(UTC).isoformat(),
    )
    logger.info("App configuration generated for %s", app_url)

    return {
        "success": True,
        "message": "App configuration updated",
        "configuration": configuration.model_dump(),
    }
