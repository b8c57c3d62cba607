"""Crypto payment session model."""

import enum
import secrets
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Enum, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cryptocadet.models.base import Base


class PaymentSessionStatus(str, enum.Enum):
    """Lifecycle of a payment session. Only PENDING sessions can change."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


def generate_reference() -> str:
    """Public id handed to the crypto app in the redirect URL."""
    return f"crypto_session_{secrets.token_hex(12)}"


class PaymentSession(Base):
    """A checkout handed off from Shopify to the crypto payment app."""

    __tablename__ = "payment_sessions"

    reference: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
        default=generate_reference,
    )
    # gid://shopify/PaymentSession/...
    shopify_session_gid: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    shop_domain: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 6),
        nullable=False,
    )
    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
    )
    test_mode: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    return_url: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    status: Mapped[PaymentSessionStatus] = mapped_column(
        Enum(
            PaymentSessionStatus,
            name="payment_session_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=PaymentSessionStatus.PENDING,
        nullable=False,
    )

    # Filled in by the crypto app on confirmation
    transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    crypto_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    block_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<PaymentSession {self.reference} {self.status.value}>"
