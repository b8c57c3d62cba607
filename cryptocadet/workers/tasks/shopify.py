"""Celery tasks for post-install Shopify setup."""

import asyncio
import logging
from typing import Any

from cryptocadet.core.config import settings
from cryptocadet.core.database import async_session_maker
from cryptocadet.services.merchant_service import MerchantService
from cryptocadet.workers.celery_app import BaseTask, celery_app

logger = logging.getLogger(__name__)


@celery_app.task(
    name="tasks.shopify.register_app_webhooks",
    base=BaseTask,
    bind=True,
)
def register_app_webhooks(self: BaseTask, shop: str) -> dict[str, Any]:  # noqa: ARG001
    """Subscribe an installed shop to order and uninstall webhooks."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_register_app_webhooks_async(shop))
    finally:
        loop.close()


async def _register_app_webhooks_async(shop: str) -> dict[str, Any]:
    """Async implementation of webhook registration."""
    async with async_session_maker() as session:
        service = MerchantService(session)
        merchant = await service.get_installed(shop)

        if merchant is None:
            return {"shop": shop, "status": "skipped", "reason": "not installed"}

        client = service.client_for(merchant)
        subscriptions = await client.register_webhooks(settings.app_url)
        await service.save_webhook_subscriptions(shop, subscriptions)

    logger.info("Registered %d webhooks for %s", len(subscriptions), shop)
    return {
        "shop": shop,
        "status": "completed",
        "topics": sorted(subscriptions),
    }
