"""Shopify webhook HMAC verification and the topics this app subscribes to."""

import base64
import hashlib
import hmac

# GraphQL WebhookSubscriptionTopic -> callback path
WEBHOOK_TOPICS: dict[str, str] = {
    "ORDERS_CREATE": "/webhooks/orders/create",
    "ORDERS_PAID": "/webhooks/orders/paid",
    "ORDERS_CANCELLED": "/webhooks/orders/cancelled",
    "APP_UNINSTALLED": "/webhooks/app/uninstalled",
}


def sign_webhook_body(data: bytes, secret: str) -> str:
    """Base64 HMAC-SHA256 of a raw body, as Shopify sends in X-Shopify-Hmac-Sha256."""
    return base64.b64encode(
        hmac.new(
            secret.encode("utf-8"),
            data,
            hashlib.sha256,
        ).digest()
    ).decode("utf-8")


def verify_webhook(data: bytes, hmac_header: str, secret: str) -> bool:
    """Verify a Shopify webhook's HMAC-SHA256 signature.

    Args:
        data: The raw request body bytes.
        hmac_header: The X-Shopify-Hmac-Sha256 header value.
        secret: The Shopify API secret.

    Returns:
        True if the signature is valid.
    """
    if not hmac_header:
        return False
    return hmac.compare_digest(sign_webhook_body(data, secret), hmac_header)


def webhook_endpoints(app_url: str) -> list[str]:
    """Absolute callback URLs for every subscribed topic."""
    base = app_url.rstrip("/")
    return [f"{base}{path}" for path in WEBHOOK_TOPICS.values()]
