"""Merchant config: installation records and crypto payment activation."""

import logging
from datetime import UTC, datetime
from urllib.parse import urlencode

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cryptocadet.core.config import settings
from cryptocadet.core.encryption import (
    TokenDecryptionError,
    decrypt_access_token,
    encrypt_access_token,
)
from cryptocadet.integrations.shopify.client import ShopifyAPIError, ShopifyClient
from cryptocadet.models.merchant import MerchantConfig, MerchantStatus
from cryptocadet.schemas.merchant import MerchantConfigResponse

logger = logging.getLogger(__name__)


def storefront_script_src(shop: str) -> str:
    """URL of the button script registered as the shop's script tag."""
    query = urlencode({"shop": shop})
    return f"{settings.app_url.rstrip('/')}/storefront/crypto-button.js?{query}"


class MerchantService:
    """Business logic for per-shop install state and activation."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, shop: str) -> MerchantConfig | None:
        stmt = select(MerchantConfig).where(MerchantConfig.shop_domain == shop)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_installed(self, shop: str) -> MerchantConfig | None:
        """Return the merchant only if the app is currently installed."""
        merchant = await self.get(shop)
        if merchant is None or not merchant.is_installed or not merchant.access_token:
            return None
        return merchant

    async def record_installation(self, shop: str, access_token: str, scopes: str) -> MerchantConfig:
        """Upsert the merchant after a successful OAuth exchange.

        Reinstalling keeps the previous activation choice but drops resource
        ids; Shopify deletes script tags and webhooks on uninstall.
        """
        merchant = await self.get(shop)
        now = datetime.now(UTC)

        if merchant is None:
            merchant = MerchantConfig(shop_domain=shop, webhook_subscriptions={})
            self.db.add(merchant)
        elif not merchant.is_installed:
            merchant.script_tag_id = None
            merchant.webhook_subscriptions = {}

        merchant.access_token = encrypt_access_token(access_token)
        merchant.scopes = scopes
        merchant.status = MerchantStatus.INSTALLED
        merchant.installed_at = now
        merchant.uninstalled_at = None

        await self.db.commit()
        await self.db.refresh(merchant)
        logger.info("Recorded installation for %s (scopes=%s)", shop, scopes)
        return merchant

    def client_for(self, merchant: MerchantConfig) -> ShopifyClient:
        return ShopifyClient(merchant.shop_domain, decrypt_access_token(merchant.access_token))

    async def activate(self, merchant: MerchantConfig) -> MerchantConfig:
        """Enable the crypto button for a shop.

        Reuses an existing script tag for our script URL so activating twice
        never injects the button twice.

        Raises:
            ShopifyAPIError: If the script tag cannot be created.
            httpx.HTTPError: On transport or HTTP status failures.
        """
        client = self.client_for(merchant)
        src = storefront_script_src(merchant.shop_domain)

        existing = await client.list_script_tags(src)
        if merchant.script_tag_id and merchant.script_tag_id in existing:
            script_tag_id = merchant.script_tag_id
        elif existing:
            script_tag_id = existing[0]
        else:
            script_tag_id = await client.create_script_tag(src)

        merchant.script_tag_id = script_tag_id
        if not merchant.crypto_enabled:
            merchant.crypto_enabled = True
            merchant.activated_at = datetime.now(UTC)

        await self.db.commit()
        await self.db.refresh(merchant)
        logger.info("Activated crypto payments for %s", merchant.shop_domain)
        return merchant

    async def deactivate(self, merchant: MerchantConfig) -> MerchantConfig:
        """Disable the crypto button and remove the script tag (best-effort)."""
        if merchant.script_tag_id:
            try:
                client = self.client_for(merchant)
                await client.delete_script_tag(merchant.script_tag_id)
            except (httpx.HTTPError, ShopifyAPIError, TokenDecryptionError) as e:
                logger.warning(
                    "Failed to delete script tag %s for %s: %s",
                    merchant.script_tag_id,
                    merchant.shop_domain,
                    e,
                )

        merchant.script_tag_id = None
        merchant.crypto_enabled = False
        await self.db.commit()
        await self.db.refresh(merchant)
        logger.info("Deactivated crypto payments for %s", merchant.shop_domain)
        return merchant

    async def save_webhook_subscriptions(self, shop: str, subscriptions: dict[str, str]) -> None:
        merchant = await self.get(shop)
        if merchant is None:
            return
        merchant.webhook_subscriptions = {**(merchant.webhook_subscriptions or {}), **subscriptions}
        await self.db.commit()

    async def mark_uninstalled(self, shop: str) -> bool:
        """Handle app/uninstalled: wipe credentials and disable the button.

        Flushes only; the caller commits.

        Returns:
            True if a merchant record was updated.
        """
        merchant = await self.get(shop)
        if merchant is None:
            return False

        merchant.status = MerchantStatus.UNINSTALLED
        merchant.uninstalled_at = datetime.now(UTC)
        merchant.access_token = None
        merchant.crypto_enabled = False
        merchant.script_tag_id = None
        merchant.webhook_subscriptions = {}
        await self.db.flush()
        logger.info("Marked %s as uninstalled", shop)
        return True

    @staticmethod
    def to_response(merchant: MerchantConfig) -> MerchantConfigResponse:
        return MerchantConfigResponse(
            shop_domain=merchant.shop_domain,
            status=merchant.status.value,
            scopes=merchant.scopes,
            crypto_enabled=merchant.crypto_enabled,
            activated_at=merchant.activated_at,
            installed_at=merchant.installed_at,
            uninstalled_at=merchant.uninstalled_at,
            script_tag_id=merchant.script_tag_id,
            webhook_topics=sorted((merchant.webhook_subscriptions or {}).keys()),
        )
