"""Sign a payload for one of CryptoCadet's Shopify webhook routes.

Reads the raw body from stdin and signs it with SHOPIFY_API_SECRET from the
environment (or .env). With no argument only the X-Shopify-Hmac-Sha256 value
is printed. Given a webhook path such as ``orders/paid``, a complete curl
command against APP_URL is printed instead, with a fresh X-Shopify-Webhook-Id
so the delivery isn't treated as a duplicate.

Usage:
    echo -n '{"id": 123}' | python -m scripts.sign_webhook

    # Confirm a pending crypto session through the orders/paid webhook:
    echo -n '{"id":450789469,"payment_gateway_names":["crypto"],"note_attributes":[{"name":"crypto_session_id","value":"crypto_session_abc"}]}' \\
      | python -m scripts.sign_webhook orders/paid | sh
"""

import shlex
import sys
import uuid

from cryptocadet.core.config import settings
from cryptocadet.integrations.shopify.webhooks import WEBHOOK_TOPICS, sign_webhook_body

SHOP_DOMAIN = "test-store.myshopify.com"


def curl_command(path: str, body: bytes, signature: str) -> str:
    """Shell command that delivers ``body`` to the local webhook route."""
    url = f"{settings.app_url.rstrip('/')}/webhooks/{path}"
    return " ".join([
        "curl -X POST",
        shlex.quote(url),
        "-H 'Content-Type: application/json'",
        "-H " + shlex.quote(f"X-Shopify-Hmac-Sha256: {signature}"),
        "-H " + shlex.quote(f"X-Shopify-Shop-Domain: {SHOP_DOMAIN}"),
        "-H " + shlex.quote(f"X-Shopify-Webhook-Id: {uuid.uuid4()}"),
        "--data-binary " + shlex.quote(body.decode("utf-8")),
    ])


def main() -> None:
    secret = settings.shopify_api_secret
    if not secret:
        print("ERROR: SHOPIFY_API_SECRET is not set in .env", file=sys.stderr)
        sys.exit(1)

    path = sys.argv[1].strip("/") if len(sys.argv) > 1 else None
    if path and f"/webhooks/{path}" not in WEBHOOK_TOPICS.values():
        known = ", ".join(p.removeprefix("/webhooks/") for p in WEBHOOK_TOPICS.values())
        print(f"ERROR: unknown webhook {path!r} (expected one of: {known})", file=sys.stderr)
        sys.exit(1)

    body = sys.stdin.buffer.read()
    if not body:
        print("ERROR: No input received on stdin", file=sys.stderr)
        sys.exit(1)

    signature = sign_webhook_body(body, secret)
    if path:
        print(curl_command(path, body, signature))
    else:
        print(signature, end="")


if __name__ == "__main__":
    main()
