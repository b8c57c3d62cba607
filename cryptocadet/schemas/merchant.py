"""Pydantic schemas for merchant config and activation."""

from datetime import datetime

from cryptocadet.schemas.common import BaseSchema


class ActivationRequest(BaseSchema):
    """Body posted by the embedded admin page."""

    shop: str | None = None


class ActivationResponse(BaseSchema):
    success: bool
    shop: str | None = None
    crypto_enabled: bool | None = None
    script_tag_id: str | None = None
    error: str | None = None


class MerchantConfigResponse(BaseSchema):
    """Merchant config as shown to the admin page. Never includes the token."""

    shop_domain: str
    status: str
    scopes: str
    crypto_enabled: bool
    activated_at: datetime | None = None
    installed_at: datetime | None = None
    uninstalled_at: datetime | None = None
    script_tag_id: str | None = None
    webhook_topics: list[str] = []
