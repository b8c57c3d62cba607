"""Router combining all route modules.

Routes are mounted at the root: Shopify is configured with absolute
callback, webhook and script URLs under the app URL.
"""

from fastapi import APIRouter

from cryptocadet.api import auth, dev, health, merchants, payments, storefront, webhooks

api_router = APIRouter()

# Health check routes (no prefix)
api_router.include_router(health.router)

# Shopify OAuth install flow
api_router.include_router(auth.router, tags=["auth"])

# Embedded admin page and activation (session token auth)
api_router.include_router(merchants.router, tags=["merchants"])

# Payment sessions (called by Shopify and the crypto app)
api_router.include_router(
    payments.router,
    prefix="/payments",
    tags=["payments"],
)

# Shopify webhooks (no auth - verified via HMAC)
api_router.include_router(
    webhooks.router,
    prefix="/webhooks",
    tags=["webhooks"],
)

# Storefront script (public)
api_router.include_router(storefront.router, tags=["storefront"])

# Development helpers
api_router.include_router(dev.router, tags=["dev"])
