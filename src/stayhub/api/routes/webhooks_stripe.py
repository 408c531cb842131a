"""POST /webhooks/stripe - server-side payment confirmation.

payment_intent.succeeded runs the same finalize step as
PATCH /booking/{payment_intent_id}, so a guest who closes the tab after
paying still ends up with a paid booking. Anything Stripe should not retry
is answered with 200 and a status string; only server faults produce 5xx.
"""

from __future__ import annotations

import os

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool

from stayhub.api.deps import get_booking_repository
from stayhub.domain.bookings import BookingConflictError, BookingNotFoundError, to_minor_units
from stayhub.domain.reservations import confirm_payment
from stayhub.infra.repositories.bookings_repository import BookingRepository
from stayhub.observability.correlation import get_correlation_id
from stayhub.observability.logging import get_logger
from stayhub.observability.redaction import safe_log_context
from stayhub.stripe.webhook import (
    InvalidPayloadError,
    InvalidSignatureError,
    PaymentIntentEvent,
    parse_webhook,
)

router = APIRouter(tags=["webhooks"])

logger = get_logger(__name__)


def _finalize(event: PaymentIntentEvent, repo: BookingRepository, correlation_id: str) -> dict:
    try:
        booking = confirm_payment(event.payment_intent_id, repo=repo, correlation_id=correlation_id)
    except BookingNotFoundError:
        # Intent created elsewhere, or the draft was already swept
        return {"status": "ignored"}
    except BookingConflictError:
        logger.warning(
            "paid intent left pending: dates already taken",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    payment_intent_id=event.payment_intent_id,
                    booking_id=event.booking_id,
                )
            },
        )
        return {"status": "conflict"}

    expected = to_minor_units(booking.total_price)
    if event.amount_received is not None and event.amount_received != expected:
        logger.warning(
            "paid amount differs from booking total",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    booking_id=booking.id,
                    amount_received=event.amount_received,
                    amount_expected=expected,
                )
            },
        )
    return {"status": "paid", "booking_id": booking.id}


@router.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(..., alias="Stripe-Signature"),
    repo: BookingRepository = Depends(get_booking_repository),
):
    correlation_id = get_correlation_id()

    secret = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    if not secret:
        logger.error(
            "STRIPE_WEBHOOK_SECRET not configured",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return PlainTextResponse("server configuration error", status_code=500)

    try:
        event = parse_webhook(await request.body(), stripe_signature, secret)
    except InvalidSignatureError:
        return PlainTextResponse("invalid signature", status_code=400)
    except InvalidPayloadError:
        return PlainTextResponse("invalid payload", status_code=400)

    logger.info(
        "stripe event received",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                event_id=event.event_id,
                event_type=event.event_type,
            )
        },
    )

    if not event.is_success:
        return JSONResponse({"status": "ignored"})

    result = await run_in_threadpool(_finalize, event, repo, correlation_id)
    return JSONResponse(result)
