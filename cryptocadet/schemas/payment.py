"""Pydantic schemas for crypto payment sessions."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import Field

from cryptocadet.schemas.common import BaseSchema


class PaymentSessionCreate(BaseSchema):
    """Payment session request sent by Shopify.

    Fields are optional here so missing values can be reported with the
    payments-app error envelope instead of FastAPI's validation format.
    """

    gid: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    test: bool = False
    return_url: str | None = None


class PaymentSessionContext(BaseSchema):
    session_id: str
    amount: Decimal
    currency: str


class PaymentSessionCreated(BaseSchema):
    """Response telling Shopify where to send the buyer."""

    redirect_url: str
    context: PaymentSessionContext


class PaymentConfirm(BaseSchema):
    """Confirmation reported by the crypto payment app."""

    session_id: str | None = None
    transaction_id: str | None = None
    amount: Decimal | None = None
    crypto_address: str | None = None
    block_hash: str | None = None


class PaymentReject(BaseSchema):
    """Rejection reported by the crypto payment app."""

    session_id: str | None = None
    reason: str | None = Field(default=None, max_length=1000)


class PaymentSessionResponse(BaseSchema):
    """Public view of a payment session."""

    session_id: str = Field(validation_alias="reference")
    shopify_session_id: str = Field(validation_alias="shopify_session_gid")
    shop_domain: str | None = None
    amount: Decimal
    currency: str
    test_mode: bool
    status: str
    return_url: str | None = None
    transaction_id: str | None = None
    crypto_address: str | None = None
    block_hash: str | None = None
    reason: str | None = None
    confirmed_at: datetime | None = None
    rejected_at: datetime | None = None
    created_at: datetime | None = None


class PaymentActionResponse(BaseSchema):
    """Result of a confirm or reject call."""

    success: bool = True
    message: str
    transaction_id: str | None = None
    data: dict[str, Any]
