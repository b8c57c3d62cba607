"""SQLAlchemy models."""

from cryptocadet.models.base import Base
from cryptocadet.models.merchant import MerchantConfig, MerchantStatus
from cryptocadet.models.payment_session import PaymentSession, PaymentSessionStatus
from cryptocadet.models.webhook_event import WebhookEvent

__all__ = [
    # Base
    "Base",
    # Merchants
    "MerchantConfig",
    "MerchantStatus",
    # Payments
    "PaymentSession",
    "PaymentSessionStatus",
    # Webhooks
    "WebhookEvent",
]
