"""Schemas for the storefront button script and app configuration."""

from pydantic import Field

from cryptocadet.schemas.common import BaseSchema


class ButtonConfig(BaseSchema):
    """Config injected ahead of the storefront button script."""

    enabled: bool
    shop: str
    label: str
    color: str
    selectors: list[str]
    price_selectors: list[str] = Field(serialization_alias="priceSelectors")
    checkout_url: str = Field(serialization_alias="checkoutUrl")


class CheckoutSummary(BaseSchema):
    """What the storefront button captures from the page."""

    product: str = Field(default="Cart", max_length=500)
    price: str = Field(default="$0.00", max_length=100)
    url: str = Field(default="", max_length=2000)


class ConfigureAppRequest(BaseSchema):
    app_url: str | None = None


class AppConfiguration(BaseSchema):
    app_url: str
    redirect_urls: list[str]
    webhook_endpoints: list[str]
    script_src: str
    configured_at: str
