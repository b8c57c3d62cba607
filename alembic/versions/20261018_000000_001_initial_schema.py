"""Initial schema: merchant configs, payment sessions, webhook events.

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    merchant_status = postgresql.ENUM("installed", "uninstalled", name="merchant_status")
    payment_session_status = postgresql.ENUM(
        "pending", "confirmed", "rejected", name="payment_session_status"
    )

    op.create_table(
        "merchant_configs",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("shop_domain", sa.String(255), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=True),
        sa.Column("scopes", sa.String(500), nullable=False, server_default=""),
        sa.Column("status", merchant_status, nullable=False, server_default="installed"),
        sa.Column("installed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("uninstalled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("crypto_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("script_tag_id", sa.String(255), nullable=True),
        sa.Column(
            "webhook_subscriptions",
            postgresql.JSONB(),
            nullable=False,
            server_default="{}",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_merchant_configs")),
    )
    op.create_index(
        op.f("ix_merchant_configs_shop_domain"), "merchant_configs", ["shop_domain"], unique=True
    )

    op.create_table(
        "payment_sessions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("reference", sa.String(64), nullable=False),
        sa.Column("shopify_session_gid", sa.String(255), nullable=False),
        sa.Column("shop_domain", sa.String(255), nullable=True),
        sa.Column("amount", sa.Numeric(18, 6), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("test_mode", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("return_url", sa.Text(), nullable=True),
        sa.Column("status", payment_session_status, nullable=False, server_default="pending"),
        sa.Column("transaction_id", sa.String(255), nullable=True),
        sa.Column("crypto_address", sa.String(255), nullable=True),
        sa.Column("block_hash", sa.String(255), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_payment_sessions")),
        sa.UniqueConstraint(
            "shopify_session_gid", name=op.f("uq_payment_sessions_shopify_session_gid")
        ),
    )
    op.create_index(
        op.f("ix_payment_sessions_reference"), "payment_sessions", ["reference"], unique=True
    )
    op.create_index(
        op.f("ix_payment_sessions_shop_domain"), "payment_sessions", ["shop_domain"]
    )

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("webhook_id", sa.String(255), nullable=False),
        sa.Column("topic", sa.String(100), nullable=False),
        sa.Column("shop_domain", sa.String(255), nullable=False),
        sa.Column("resource_id", sa.String(255), nullable=True),
        sa.Column("payload", postgresql.JSONB(), nullable=False, server_default="{}"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_webhook_events")),
        sa.UniqueConstraint("webhook_id", name=op.f("uq_webhook_events_webhook_id")),
    )
    op.create_index(op.f("ix_webhook_events_topic"), "webhook_events", ["topic"])
    op.create_index(op.f("ix_webhook_events_shop_domain"), "webhook_events", ["shop_domain"])


def downgrade() -> None:
    op.drop_table("webhook_events")
    op.drop_table("payment_sessions")
    op.drop_table("merchant_configs")
    op.execute("DROP TYPE IF EXISTS payment_session_status")
    op.execute("DROP TYPE IF EXISTS merchant_status")
