"""Received Shopify webhook deliveries."""

from typing import Any

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from cryptocadet.models.base import Base, JSONType


class WebhookEvent(Base):
    """A verified webhook delivery.

    Shopify retries deliveries and reuses ``X-Shopify-Webhook-Id`` across
    retries, so the unique constraint on ``webhook_id`` makes processing
    at-most-once per delivery.
    """

    __tablename__ = "webhook_events"

    webhook_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    topic: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )
    shop_domain: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    # Order id for order topics, shop id for app/uninstalled
    resource_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        default=dict,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<WebhookEvent {self.topic} {self.webhook_id}>"
