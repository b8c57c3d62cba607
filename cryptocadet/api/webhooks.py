"""Shopify webhook handlers for orders and app uninstall."""

import json
import logging
import uuid
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cryptocadet.core.config import settings
from cryptocadet.core.deps import DBSession
from cryptocadet.core.logging_config import bind_shop
from cryptocadet.integrations.shopify.webhooks import verify_webhook
from cryptocadet.models.webhook_event import WebhookEvent
from cryptocadet.services.merchant_service import MerchantService
from cryptocadet.services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter()


async def _verify_and_parse(request: Request) -> dict[str, Any]:
    """Read body, verify HMAC, parse JSON."""
    body = await request.body()
    hmac_header = request.headers.get("X-Shopify-Hmac-Sha256", "")

    if not verify_webhook(body, hmac_header, settings.shopify_api_secret):
        logger.warning("Rejected webhook with invalid signature on %s", request.url.path)
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid webhook signature")

    try:
        data = json.loads(body)
    except ValueError:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Malformed webhook payload")
    if not isinstance(data, dict):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Malformed webhook payload")
    return data


async def _is_duplicate(request: Request, db: AsyncSession, topic: str) -> bool:
    """Bind the shop for logging and check whether this webhook id was already processed."""
    bind_shop(request.headers.get("X-Shopify-Shop-Domain", ""))
    webhook_id = request.headers.get("X-Shopify-Webhook-Id", "")
    if not webhook_id:
        return False

    stmt = select(WebhookEvent.id).where(WebhookEvent.webhook_id == webhook_id)
    if (await db.execute(stmt)).scalar_one_or_none() is not None:
        logger.info("Skipping duplicate %s webhook %s", topic, webhook_id)
        return True
    return False


async def _record_event(
    request: Request,
    db: AsyncSession,
    topic: str,
    data: dict[str, Any],
) -> dict[str, str]:
    """Store the delivery and commit it together with the handler's changes.

    The event row only exists once processing succeeded, so a failed
    delivery is processed again when Shopify retries it.
    """
    shop = request.headers.get("X-Shopify-Shop-Domain", "")
    # Shopify always sends an id; fall back to something unique for manual calls
    webhook_id = request.headers.get("X-Shopify-Webhook-Id", "") or f"manual:{uuid.uuid4().hex}"

    db.add(WebhookEvent(
        webhook_id=webhook_id,
        topic=topic,
        shop_domain=shop,
        resource_id=str(data["id"]) if data.get("id") is not None else None,
        payload=data,
    ))
    try:
        await db.commit()
    except IntegrityError:
        # A concurrent delivery of the same id committed first
        await db.rollback()
        logger.info("Skipping duplicate %s webhook %s", topic, webhook_id)
        return {"status": "duplicate"}

    logger.info("Processed %s webhook for %s", topic, shop)
    return {"status": "accepted"}


@router.post("/orders/create")
async def orders_create(request: Request, db: DBSession) -> dict[str, str]:
    """Handle order creation webhook."""
    data = await _verify_and_parse(request)
    if await _is_duplicate(request, db, "orders/create"):
        return {"status": "duplicate"}
    return await _record_event(request, db, "orders/create", data)


@router.post("/orders/paid")
async def orders_paid(request: Request, db: DBSession) -> dict[str, str]:
    """Handle order paid webhook (confirms a matching pending session)."""
    data = await _verify_and_parse(request)
    if await _is_duplicate(request, db, "orders/paid"):
        return {"status": "duplicate"}

    await PaymentService(db).apply_order_event("orders/paid", data)
    return await _record_event(request, db, "orders/paid", data)


@router.post("/orders/cancelled")
async def orders_cancelled(request: Request, db: DBSession) -> dict[str, str]:
    """Handle order cancellation webhook (rejects a matching pending session)."""
    data = await _verify_and_parse(request)
    if await _is_duplicate(request, db, "orders/cancelled"):
        return {"status": "duplicate"}

    await PaymentService(db).apply_order_event("orders/cancelled", data)
    return await _record_event(request, db, "orders/cancelled", data)


@router.post("/app/uninstalled")
async def app_uninstalled(request: Request, db: DBSession) -> dict[str, str]:
    """Handle app uninstall: wipe the token and disable the button."""
    data = await _verify_and_parse(request)
    if await _is_duplicate(request, db, "app/uninstalled"):
        return {"status": "duplicate"}

    shop = request.headers.get("X-Shopify-Shop-Domain", "") or str(data.get("myshopify_domain", ""))
    await MerchantService(db).mark_uninstalled(shop)
    return await _record_event(request, db, "app/uninstalled", data)
