"""Merchant config model: one row per installed shop."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cryptocadet.models.base import Base, JSONType


class MerchantStatus(str, enum.Enum):
    """App installation status for a shop."""

    INSTALLED = "installed"
    UNINSTALLED = "uninstalled"


class MerchantConfig(Base):
    """Per-shop install record and crypto payment activation state.

    The access token is Fernet-encrypted. ``script_tag_id`` and
    ``webhook_subscriptions`` hold the Admin API gids created for the shop so
    they can be removed on deactivation.
    """

    __tablename__ = "merchant_configs"

    shop_domain: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    # Credentials
    access_token: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    scopes: Mapped[str] = mapped_column(
        String(500),
        default="",
        nullable=False,
    )

    status: Mapped[MerchantStatus] = mapped_column(
        Enum(
            MerchantStatus,
            name="merchant_status",
            values_callable=lambda x: [e.value for e in x],
        ),
        default=MerchantStatus.INSTALLED,
        nullable=False,
    )
    installed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    uninstalled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Crypto payment option
    crypto_enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    activated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Admin API resources created for this shop
    script_tag_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    webhook_subscriptions: Mapped[dict[str, str]] = mapped_column(
        JSONType,
        default=dict,
        nullable=False,
    )

    @property
    def is_installed(self) -> bool:
        return self.status == MerchantStatus.INSTALLED

    def __repr__(self) -> str:
        return f"<MerchantConfig {self.shop_domain} {self.status.value}>"
