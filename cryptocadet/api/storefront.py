"""Storefront button script and the checkout hand-off page."""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import Response
from pydantic import ValidationError

from cryptocadet.core.config import settings
from cryptocadet.core.deps import DBSession, ShopQuery
from cryptocadet.schemas.storefront import ButtonConfig, CheckoutSummary
from cryptocadet.services.merchant_service import MerchantService

router = APIRouter()

STATIC_DIR = Path(__file__).resolve().parent.parent / "static"
SCRIPT_CACHE_SECONDS = 300


@lru_cache(maxsize=1)
def _button_script() -> str:
    return (STATIC_DIR / "crypto-button.js").read_text(encoding="utf-8")


def render_button_script(config: ButtonConfig) -> str:
    """Prefix the static button script with its per-shop config."""
    config_json = json.dumps(config.model_dump(by_alias=True))
    # Keep "</script>" in a selector from closing an inline tag
    config_json = config_json.replace("</", "<\\/")
    return f"window.CRYPTOCADET_CONFIG = {config_json};\n{_button_script()}"


@router.get("/storefront/crypto-button.js")
async def crypto_button_script(shop: ShopQuery, db: DBSession) -> Response:
    """Script loaded on storefront pages through the shop's script tag."""
    merchant = await MerchantService(db).get(shop)
    enabled = bool(merchant and merchant.is_installed and merchant.crypto_enabled)

    config = ButtonConfig(
        enabled=enabled,
        shop=shop,
        label=settings.button_label,
        color=settings.button_color,
        selectors=settings.button_selectors,
        price_selectors=settings.price_selectors,
        checkout_url=settings.crypto_checkout_url,
    )
    return Response(
        content=render_button_script(config),
        media_type="application/javascript",
        headers={"Cache-Control": f"public, max-age={SCRIPT_CACHE_SECONDS}"},
    )


@router.get("/crypto-demo")
async def crypto_demo(checkout: str = Query(...)) -> dict[str, Any]:
    """Landing endpoint for the storefront button's redirect."""
    try:
        summary = CheckoutSummary.model_validate(json.loads(checkout))
    except (ValueError, ValidationError):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Invalid checkout payload")

    return {
        "checkout": summary.model_dump(),
        "next": "POST /payments/sessions to start a crypto payment for this checkout",
    }
