"""Payment session lifecycle: create, confirm, reject."""

import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cryptocadet.core.config import settings
from cryptocadet.models.payment_session import PaymentSession, PaymentSessionStatus

logger = logging.getLogger(__name__)

# Order note attribute the checkout carries the session reference in
SESSION_NOTE_ATTRIBUTE = "crypto_session_id"


class PaymentSessionNotFoundError(Exception):
    """No session with the given reference."""


class PaymentSessionStateError(Exception):
    """The session is no longer pending."""

    def __init__(self, session: PaymentSession) -> None:
        super().__init__(f"Payment session {session.reference} is already {session.status.value}")
        self.session = session


class PaymentAmountMismatchError(Exception):
    """Confirmed amount differs from the session amount."""


def build_redirect_url(reference: str) -> str:
    """Where Shopify sends the buyer to pay."""
    return f"{settings.crypto_app_url.rstrip('/')}/pay/{reference}"


def session_reference_from_order(order: dict[str, Any]) -> str | None:
    """Find the payment session reference in an order's note attributes."""
    for attribute in order.get("note_attributes") or []:
        if isinstance(attribute, dict) and attribute.get("name") == SESSION_NOTE_ATTRIBUTE:
            value = attribute.get("value")
            return str(value) if value else None
    return None


def is_crypto_order(order: dict[str, Any]) -> bool:
    gateways = order.get("payment_gateway_names") or []
    return any("crypto" in str(g).lower() for g in gateways)


class PaymentService:
    """Business logic for crypto payment sessions."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, reference: str) -> PaymentSession | None:
        stmt = select(PaymentSession).where(PaymentSession.reference == reference)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_gid(self, gid: str) -> PaymentSession | None:
        stmt = select(PaymentSession).where(PaymentSession.shopify_session_gid == gid)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create_session(
        self,
        *,
        gid: str,
        amount: Decimal,
        currency: str,
        test: bool = False,
        return_url: str | None = None,
        shop: str | None = None,
    ) -> PaymentSession:
        """Create a pending session, or return the one already made for ``gid``.

        Shopify retries session requests, so the gid is the idempotency key.
        """
        existing = await self.get_by_gid(gid)
        if existing is not None:
            logger.info("Reusing payment session %s for %s", existing.reference, gid)
            return existing

        session = PaymentSession(
            shopify_session_gid=gid,
            shop_domain=shop,
            amount=amount,
            currency=currency.upper(),
            test_mode=test,
            return_url=return_url,
            status=PaymentSessionStatus.PENDING,
        )
        self.db.add(session)
        try:
            await self.db.commit()
        except IntegrityError:
            # A concurrent request for the same gid won the insert
            await self.db.rollback()
            existing = await self.get_by_gid(gid)
            if existing is None:
                raise
            logger.info("Reusing payment session %s for %s", existing.reference, gid)
            return existing
        await self.db.refresh(session)
        logger.info(
            "Created payment session %s (%s %s, test=%s)",
            session.reference,
            session.amount,
            session.currency,
            session.test_mode,
        )
        return session

    async def confirm(
        self,
        reference: str,
        *,
        transaction_id: str,
        amount: Decimal,
        crypto_address: str | None = None,
        block_hash: str | None = None,
    ) -> PaymentSession:
        """Mark a pending session as paid.

        Replaying a confirmation with the same transaction id returns the
        already-confirmed session unchanged. A session already confirmed by
        an orders/paid webhook has no transaction yet, so the first
        confirmation fills it in.

        Raises:
            PaymentSessionNotFoundError: Unknown reference.
            PaymentSessionStateError: Session was rejected or confirmed by another transaction.
            PaymentAmountMismatchError: Amount differs from the session amount.
        """
        session = await self.get(reference)
        if session is None:
            raise PaymentSessionNotFoundError(reference)

        if session.status == PaymentSessionStatus.CONFIRMED and session.transaction_id == transaction_id:
            return session
        confirmed_by_order = (
            session.status == PaymentSessionStatus.CONFIRMED and session.transaction_id is None
        )
        if session.status != PaymentSessionStatus.PENDING and not confirmed_by_order:
            raise PaymentSessionStateError(session)
        if Decimal(amount) != Decimal(session.amount):
            raise PaymentAmountMismatchError(
                f"Confirmed amount {amount} does not match session amount {session.amount}"
            )

        session.status = PaymentSessionStatus.CONFIRMED
        session.transaction_id = transaction_id
        session.crypto_address = crypto_address
        session.block_hash = block_hash
        if session.confirmed_at is None:
            session.confirmed_at = datetime.now(UTC)
        await self.db.commit()
        await self.db.refresh(session)
        logger.info("Confirmed payment session %s (tx=%s)", reference, transaction_id)
        return session

    async def reject(self, reference: str, *, reason: str | None = None) -> PaymentSession:
        """Mark a pending session as failed.

        Raises:
            PaymentSessionNotFoundError: Unknown reference.
            PaymentSessionStateError: Session was already confirmed.
        """
        session = await self.get(reference)
        if session is None:
            raise PaymentSessionNotFoundError(reference)

        if session.status == PaymentSessionStatus.REJECTED:
            return session
        if session.status != PaymentSessionStatus.PENDING:
            raise PaymentSessionStateError(session)

        session.status = PaymentSessionStatus.REJECTED
        session.reason = reason or "Payment failed"
        session.rejected_at = datetime.now(UTC)
        await self.db.commit()
        await self.db.refresh(session)
        logger.info("Rejected payment session %s: %s", reference, session.reason)
        return session

    async def apply_order_event(self, topic: str, order: dict[str, Any]) -> PaymentSession | None:
        """Reconcile a pending session from an orders/paid or orders/cancelled webhook.

        Changes are flushed, not committed; the webhook handler commits them
        together with the delivery record.

        Returns:
            The updated session, or None when the order doesn't reference one
            or the session has already left the pending state.
        """
        reference = session_reference_from_order(order)
        if not reference or not is_crypto_order(order):
            return None

        session = await self.get(reference)
        if session is None or session.status != PaymentSessionStatus.PENDING:
            return None

        now = datetime.now(UTC)
        if topic == "orders/paid":
            session.status = PaymentSessionStatus.CONFIRMED
            session.confirmed_at = now
        elif topic == "orders/cancelled":
            session.status = PaymentSessionStatus.REJECTED
            session.reason = "order_cancelled"
            session.rejected_at = now
        else:
            return None

        await self.db.flush()
        logger.info("Order %s moved session %s to %s", order.get("id"), reference, session.status.value)
        return session

    @staticmethod
    def confirmation_data(session: PaymentSession) -> dict[str, Any]:
        return {
            "session_id": session.reference,
            "transaction_id": session.transaction_id,
            "status": session.status.value,
            "confirmed_at": session.confirmed_at.isoformat() if session.confirmed_at else None,
            "amount": str(session.amount),
            "crypto_address": session.crypto_address,
            "block_hash": session.block_hash,
        }

    @staticmethod
    def rejection_data(session: PaymentSession) -> dict[str, Any]:
        return {
            "session_id": session.reference,
            "status": session.status.value,
            "reason": session.reason,
            "rejected_at": session.rejected_at.isoformat() if session.rejected_at else None,
        }
