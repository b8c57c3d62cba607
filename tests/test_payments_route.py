"""Tests for the crypto payment session endpoints."""

from collections.abc import Callable
from decimal import Decimal
from typing import Any

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from cryptocadet.models.payment_session import PaymentSessionStatus
from cryptocadet.services.payment_service import PaymentService
from tests.conftest import SHOPIFY_TEST_SHOP, TEST_CRYPTO_APP_URL

SESSION_GID = "gid://shopify/PaymentSession/test123"


def _session_body(**overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "gid": SESSION_GID,
        "amount": "29.99",
        "currency": "USD",
        "test": True,
        "return_url": f"https://{SHOPIFY_TEST_SHOP}/checkout",
    }
    body.update(overrides)
    return body


class TestCreatePaymentSession:
    """Tests for POST /payments/sessions."""

    async def test_creates_session_and_redirect(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
    ) -> None:
        response = await client.post(
            "/payments/sessions",
            json=_session_body(),
            headers={"X-Shopify-Shop-Domain": SHOPIFY_TEST_SHOP},
        )

        assert response.status_code == 200
        data = response.json()
        reference = data["context"]["session_id"]
        assert reference.startswith("crypto_session_")
        assert data["redirect_url"] == f"{TEST_CRYPTO_APP_URL}/pay/{reference}"
        assert data["context"]["currency"] == "USD"
        assert Decimal(data["context"]["amount"]) == Decimal("29.99")

        session = await PaymentService(db_session).get(reference)
        assert session is not None
        assert session.shopify_session_gid == SESSION_GID
        assert session.shop_domain == SHOPIFY_TEST_SHOP
        assert session.status == PaymentSessionStatus.PENDING
        assert session.test_mode is True

    async def test_retry_returns_same_session(self, client: AsyncClient) -> None:
        """Shopify retries with the same gid get the same reference."""
        first = await client.post("/payments/sessions", json=_session_body())
        second = await client.post("/payments/sessions", json=_session_body())

        assert first.status_code == 200
        assert second.status_code == 200
        assert first.json()["context"]["session_id"] == second.json()["context"]["session_id"]

    async def test_currency_is_uppercased(self, client: AsyncClient) -> None:
        response = await client.post("/payments/sessions", json=_session_body(currency="eur"))

        assert response.status_code == 200
        assert response.json()["context"]["currency"] == "EUR"

    async def test_missing_fields(self, client: AsyncClient) -> None:
        response = await client.post("/payments/sessions", json={"gid": SESSION_GID})

        assert response.status_code == 400
        assert response.json() == {
            "errors": [
                {
                    "message": "Missing required fields: gid, amount, currency",
                    "code": "missing_required_fields",
                }
            ]
        }

    async def test_zero_amount_counts_as_missing(self, client: AsyncClient) -> None:
        response = await client.post("/payments/sessions", json=_session_body(amount="0"))

        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "missing_required_fields"

    async def test_negative_amount(self, client: AsyncClient) -> None:
        response = await client.post("/payments/sessions", json=_session_body(amount="-5"))

        assert response.status_code == 422
        assert response.json()["errors"][0]["code"] == "invalid_amount"

    async def test_invalid_currency(self, client: AsyncClient) -> None:
        response = await client.post("/payments/sessions", json=_session_body(currency="DOLLARS"))

        assert response.status_code == 422
        assert response.json()["errors"][0]["code"] == "invalid_currency"

    @pytest.mark.parametrize(
        "overrides",
        [{"amount": "abc"}, {"gid": 12345}, {"currency": ["USD"]}],
    )
    async def test_wrong_field_type(self, client: AsyncClient, overrides: dict[str, Any]) -> None:
        response = await client.post("/payments/sessions", json=_session_body(**overrides))

        assert response.status_code == 422
        errors = response.json()["errors"]
        assert errors[0]["code"] == "invalid_request"
        assert errors[0]["message"] == "Invalid payment session request"
        assert next(iter(overrides)) in errors[0]["details"]

    async def test_malformed_json(self, client: AsyncClient) -> None:
        response = await client.post(
            "/payments/sessions",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 422
        assert response.json()["errors"][0]["code"] == "invalid_request"

    async def test_empty_body(self, client: AsyncClient) -> None:
        response = await client.post("/payments/sessions")

        assert response.status_code == 400
        assert response.json()["errors"][0]["code"] == "missing_required_fields"

    async def test_other_routes_keep_validation_format(self, client: AsyncClient) -> None:
        response = await client.post("/payments/confirm", json={"session_id": "x", "amount": "abc"})

        assert response.status_code == 422
        assert "detail" in response.json()

    async def test_retry_echoes_stored_amount(self, client: AsyncClient) -> None:
        """A retry carrying a different amount still describes the original session."""
        await client.post("/payments/sessions", json=_session_body())

        response = await client.post("/payments/sessions", json=_session_body(amount="99.00"))

        assert response.status_code == 200
        assert Decimal(response.json()["context"]["amount"]) == Decimal("29.99")

    async def test_invalid_shop_header_is_ignored(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
    ) -> None:
        response = await client.post(
            "/payments/sessions",
            json=_session_body(),
            headers={"X-Shopify-Shop-Domain": "evil.example.com"},
        )

        assert response.status_code == 200
        session = await PaymentService(db_session).get(response.json()["context"]["session_id"])
        assert session is not None
        assert session.shop_domain is None


class TestGetPaymentSession:
    """Tests for GET /payments/sessions/{reference}."""

    async def test_returns_session(
        self,
        client: AsyncClient,
        payment_session_factory: Callable[..., Any],
    ) -> None:
        session = await payment_session_factory(gid=SESSION_GID)

        response = await client.get(f"/payments/sessions/{session.reference}")

        assert response.status_code == 200
        data = response.json()
        assert data["session_id"] == session.reference
        assert data["shopify_session_id"] == SESSION_GID
        assert data["status"] == "pending"
        assert data["currency"] == "USD"
        assert Decimal(data["amount"]) == Decimal("29.99")

    async def test_unknown_reference(self, client: AsyncClient) -> None:
        response = await client.get("/payments/sessions/crypto_session_missing")
        assert response.status_code == 404


class TestConfirmPayment:
    """Tests for POST /payments/confirm."""

    async def test_confirms_pending_session(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        payment_session_factory: Callable[..., Any],
    ) -> None:
        session = await payment_session_factory()

        response = await client.post(
            "/payments/confirm",
            json={
                "session_id": session.reference,
                "transaction_id": "0xdeadbeef",
                "amount": "29.99",
                "crypto_address": "0xabc",
                "block_hash": "0xblock",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["message"] == "Payment confirmed successfully"
        assert data["transaction_id"] == "0xdeadbeef"
        assert data["data"]["status"] == "confirmed"
        assert data["data"]["crypto_address"] == "0xabc"
        assert data["data"]["confirmed_at"] is not None

        await db_session.refresh(session)
        assert session.status == PaymentSessionStatus.CONFIRMED
        assert session.transaction_id == "0xdeadbeef"
        assert session.block_hash == "0xblock"

    async def test_replayed_confirmation(
        self,
        client: AsyncClient,
        payment_session_factory: Callable[..., Any],
    ) -> None:
        """Replaying the same transaction is idempotent."""
        session = await payment_session_factory()
        body = {"session_id": session.reference, "transaction_id": "0x1", "amount": "29.99"}

        first = await client.post("/payments/confirm", json=body)
        second = await client.post("/payments/confirm", json=body)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.json()["transaction_id"] == "0x1"

    async def test_different_transaction_conflicts(
        self,
        client: AsyncClient,
        payment_session_factory: Callable[..., Any],
    ) -> None:
        session = await payment_session_factory(
            status=PaymentSessionStatus.CONFIRMED, transaction_id="0x1"
        )

        response = await client.post(
            "/payments/confirm",
            json={"session_id": session.reference, "transaction_id": "0x2", "amount": "29.99"},
        )

        assert response.status_code == 409
        assert "already confirmed" in response.json()["detail"]

    async def test_confirmation_after_order_paid_webhook(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        payment_session_factory: Callable[..., Any],
    ) -> None:
        """The crypto app's transaction details are kept when the order webhook won the race."""
        session = await payment_session_factory()
        await PaymentService(db_session).apply_order_event(
            "orders/paid",
            {
                "id": 42,
                "payment_gateway_names": ["crypto"],
                "note_attributes": [{"name": "crypto_session_id", "value": session.reference}],
            },
        )
        await db_session.commit()

        response = await client.post(
            "/payments/confirm",
            json={
                "session_id": session.reference,
                "transaction_id": "0xfeed",
                "amount": "29.99",
                "crypto_address": "0xabc",
                "block_hash": "0xblock",
            },
        )

        assert response.status_code == 200
        assert response.json()["transaction_id"] == "0xfeed"
        await db_session.refresh(session)
        assert session.status == PaymentSessionStatus.CONFIRMED
        assert session.transaction_id == "0xfeed"
        assert session.crypto_address == "0xabc"
        assert session.block_hash == "0xblock"

    async def test_order_paid_session_still_checks_amount(
        self,
        client: AsyncClient,
        payment_session_factory: Callable[..., Any],
    ) -> None:
        session = await payment_session_factory(status=PaymentSessionStatus.CONFIRMED)

        response = await client.post(
            "/payments/confirm",
            json={"session_id": session.reference, "transaction_id": "0x1", "amount": "5.00"},
        )

        assert response.status_code == 422

    async def test_rejected_session_cannot_be_confirmed(
        self,
        client: AsyncClient,
        payment_session_factory: Callable[..., Any],
    ) -> None:
        session = await payment_session_factory(status=PaymentSessionStatus.REJECTED)

        response = await client.post(
            "/payments/confirm",
            json={"session_id": session.reference, "transaction_id": "0x1", "amount": "29.99"},
        )

        assert response.status_code == 409

    async def test_amount_mismatch(
        self,
        client: AsyncClient,
        payment_session_factory: Callable[..., Any],
    ) -> None:
        session = await payment_session_factory()

        response = await client.post(
            "/payments/confirm",
            json={"session_id": session.reference, "transaction_id": "0x1", "amount": "1.00"},
        )

        assert response.status_code == 422
        assert "does not match" in response.json()["detail"]

    async def test_missing_fields(self, client: AsyncClient) -> None:
        response = await client.post("/payments/confirm", json={"session_id": "x"})

        assert response.status_code == 400
        assert response.json()["detail"] == (
            "Missing required fields: session_id, transaction_id, amount"
        )

    async def test_unknown_session(self, client: AsyncClient) -> None:
        response = await client.post(
            "/payments/confirm",
            json={"session_id": "crypto_session_nope", "transaction_id": "0x1", "amount": "1"},
        )
        assert response.status_code == 404


class TestRejectPayment:
    """Tests for POST /payments/reject."""

    async def test_rejects_with_reason(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        payment_session_factory: Callable[..., Any],
    ) -> None:
        session = await payment_session_factory()

        response = await client.post(
            "/payments/reject",
            json={"session_id": session.reference, "reason": "insufficient_funds"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == "Payment rejected successfully"
        assert data["data"]["status"] == "rejected"
        assert data["data"]["reason"] == "insufficient_funds"

        await db_session.refresh(session)
        assert session.status == PaymentSessionStatus.REJECTED
        assert session.rejected_at is not None

    async def test_default_reason(
        self,
        client: AsyncClient,
        payment_session_factory: Callable[..., Any],
    ) -> None:
        session = await payment_session_factory()

        response = await client.post("/payments/reject", json={"session_id": session.reference})

        assert response.json()["data"]["reason"] == "Payment failed"

    async def test_confirmed_session_cannot_be_rejected(
        self,
        client: AsyncClient,
        payment_session_factory: Callable[..., Any],
    ) -> None:
        session = await payment_session_factory(
            status=PaymentSessionStatus.CONFIRMED, transaction_id="0x1"
        )

        response = await client.post("/payments/reject", json={"session_id": session.reference})

        assert response.status_code == 409

    async def test_missing_session_id(self, client: AsyncClient) -> None:
        response = await client.post("/payments/reject", json={})

        assert response.status_code == 400
        assert response.json()["detail"] == "Missing required field: session_id"

    async def test_unknown_session(self, client: AsyncClient) -> None:
        response = await client.post("/payments/reject", json={"session_id": "crypto_session_nope"})
        assert response.status_code == 404
