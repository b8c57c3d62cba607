"""Crypto payment session endpoints.

``/payments/sessions`` is called by Shopify when a buyer picks the crypto
option; ``/payments/confirm`` and ``/payments/reject`` are called back by the
crypto payment app once the transfer settles or fails.
"""

import logging

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from cryptocadet.core.deps import DBSession
from cryptocadet.core.logging_config import bind_shop
from cryptocadet.core.rate_limit import PAYMENT_SESSION_LIMIT, limiter
from cryptocadet.integrations.shopify.oauth import is_valid_shop_domain
from cryptocadet.schemas.common import ErrorDetail, ErrorsEnvelope
from cryptocadet.schemas.payment import (
    PaymentActionResponse,
    PaymentConfirm,
    PaymentReject,
    PaymentSessionCreate,
    PaymentSessionCreated,
    PaymentSessionResponse,
)
from cryptocadet.services.payment_service import (
    PaymentAmountMismatchError,
    PaymentService,
    PaymentSessionNotFoundError,
    PaymentSessionStateError,
    build_redirect_url,
)

logger = logging.getLogger(__name__)

router = APIRouter()

SESSIONS_PATH = "/payments/sessions"
MISSING_FIELDS_MESSAGE = "Missing required fields: gid, amount, currency"


def error_response(status_code: int, message: str, code: str, details: str | None = None) -> JSONResponse:
    """Payments-app error envelope."""
    envelope = ErrorsEnvelope(errors=[ErrorDetail(message=message, code=code, details=details)])
    return JSONResponse(status_code=status_code, content=envelope.model_dump(exclude_none=True))


def validation_error_response(exc: RequestValidationError) -> JSONResponse:
    """Report a body that failed schema validation in the payments-app envelope.

    A missing body counts as missing fields; wrong types and unparsable JSON
    are unprocessable.
    """
    errors = exc.errors()
    if errors and all(e.get("type") == "missing" for e in errors):
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            MISSING_FIELDS_MESSAGE,
            "missing_required_fields",
        )
    details = "; ".join(
        f"{'.'.join(str(part) for part in e.get('loc', ()) if part != 'body')}: {e.get('msg', '')}"
        for e in errors
    )
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Invalid payment session request",
        "invalid_request",
        details or None,
    )


@router.post("/sessions", response_model=PaymentSessionCreated)
@limiter.limit(PAYMENT_SESSION_LIMIT)
async def create_payment_session(
    request: Request,
    payload: PaymentSessionCreate,
    db: DBSession,
) -> PaymentSessionCreated | JSONResponse:
    """Create a payment session and return the crypto app redirect URL."""
    # A zero amount counts as missing
    if not payload.gid or not payload.amount or not payload.currency:
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            MISSING_FIELDS_MESSAGE,
            "missing_required_fields",
        )
    if payload.amount < 0:
        return error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY, "Amount must be positive", "invalid_amount"
        )
    if len(payload.currency) != 3 or not payload.currency.isalpha():
        return error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Currency must be an ISO 4217 code",
            "invalid_currency",
        )

    shop = request.headers.get("X-Shopify-Shop-Domain", "").strip().lower() or None
    if shop and not is_valid_shop_domain(shop):
        shop = None
    if shop:
        bind_shop(shop)

    try:
        session = await PaymentService(db).create_session(
            gid=payload.gid,
            amount=payload.amount,
            currency=payload.currency,
            test=payload.test,
            return_url=payload.return_url,
            shop=shop,
        )
    except Exception as e:
        logger.exception("Payment session creation failed for %s", payload.gid)
        return error_response(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Failed to create payment session",
            "payment_session_error",
            str(e),
        )

    return PaymentSessionCreated(
        redirect_url=build_redirect_url(session.reference),
        context={
            "session_id": session.reference,
            "amount": session.amount,
            "currency": session.currency,
        },
    )


@router.get("/sessions/{reference}")
async def get_payment_session(reference: str, db: DBSession) -> PaymentSessionResponse:
    """Look up a payment session by its public reference."""
    session = await PaymentService(db).get(reference)
    if session is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Payment session not found")
    return PaymentSessionResponse.model_validate(session)


@router.post("/confirm")
async def confirm_payment(payload: PaymentConfirm, db: DBSession) -> PaymentActionResponse:
    """Record a settled crypto transfer."""
    if not payload.session_id or not payload.transaction_id or payload.amount is None:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            "Missing required fields: session_id, transaction_id, amount",
        )

    service = PaymentService(db)
    try:
        session = await service.confirm(
            payload.session_id,
            transaction_id=payload.transaction_id,
            amount=payload.amount,
            crypto_address=payload.crypto_address,
            block_hash=payload.block_hash,
        )
    except PaymentSessionNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Payment session not found")
    except PaymentSessionStateError as e:
        raise HTTPException(status.HTTP_409_CONFLICT, str(e))
    except PaymentAmountMismatchError as e:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, str(e))

    return PaymentActionResponse(
        transaction_id=session.transaction_id,
        message="Payment confirmed successfully",
        data=service.confirmation_data(session),
    )


@router.post("/reject")
async def reject_payment(payload: PaymentReject, db: DBSession) -> PaymentActionResponse:
    """Record a failed or abandoned crypto transfer."""
    if not payload.session_id:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Missing required field: session_id")

    service = PaymentService(db)
    try:
        session = await service.reject(payload.session_id, reason=payload.reason)
    except PaymentSessionNotFoundError:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Payment session not found")
    except PaymentSessionStateError as e:
        raise HTTPException(status.HTTP_409_CONFLICT, str(e))

    return PaymentActionResponse(
        message="Payment rejected successfully",
        data=service.rejection_data(session),
    )
