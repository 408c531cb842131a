"""Payment intent endpoint.

POST /payment-intent → create or revise the PaymentIntent and booking draft
for a checkout. Re-posting with the payment_intent_id of an unfinished
attempt updates that attempt instead of creating a second booking.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, ConfigDict, Field, model_validator

from stayhub.api.auth import CurrentUser, CurrentUserDep
from stayhub.api.deps import get_booking_repository, get_stripe_client
from stayhub.domain.bookings import BookingAlreadyPaidError, BookingConflictError, BookingDraft
from stayhub.domain.payment_intents import reserve_or_update
from stayhub.infra.repositories.bookings_repository import BookingRepository
from stayhub.observability.correlation import get_correlation_id
from stayhub.observability.logging import get_logger
from stayhub.observability.redaction import safe_log_context
from stayhub.stripe.client import PaymentIntentNotFoundError, StripeClient

logger = get_logger(__name__)

router = APIRouter(tags=["payments"])


class BookingDraftBody(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hotel_id: str = Field(..., min_length=1)
    hotel_owner_id: str = Field(..., min_length=1)
    room_id: str = Field(..., min_length=1)
    start_date: date
    end_date: date
    total_price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    breakfast_included: bool = False

    @model_validator(mode="after")
    def _check_range(self) -> "BookingDraftBody":
        if self.start_date >= self.end_date:
            raise ValueError("start_date must be before end_date")
        return self

    def to_draft(self) -> BookingDraft:
        return BookingDraft(
            hotel_id=self.hotel_id,
            hotel_owner_id=self.hotel_owner_id,
            room_id=self.room_id,
            start_date=self.start_date,
            end_date=self.end_date,
            total_price=self.total_price,
            breakfast_included=self.breakfast_included,
        )


class PaymentIntentRequest(BaseModel):
    booking: BookingDraftBody
    payment_intent_id: str | None = None


@router.post("/payment-intent")
def create_or_update_payment_intent(
    body: PaymentIntentRequest,
    user: CurrentUser = CurrentUserDep,
    repo: BookingRepository = Depends(get_booking_repository),
    stripe_client: StripeClient = Depends(get_stripe_client),
    idempotency_key: str | None = Header(None, alias="Idempotency-Key", max_length=255),
) -> dict:
    """Reserve a room draft against a Stripe PaymentIntent.

    Returns the intent id and client secret the browser needs to confirm
    the payment. Retrying with the same Idempotency-Key returns the booking
    created by the first attempt instead of a second one.
    """
    correlation_id = get_correlation_id()
    draft = body.booking.to_draft()

    logger.info(
        "payment intent requested",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                room_id=draft.room_id,
                revising=bool(body.payment_intent_id),
                keyed=bool(idempotency_key),
            )
        },
    )

    try:
        result = reserve_or_update(
            draft,
            user,
            repo=repo,
            stripe_client=stripe_client,
            existing_payment_intent_id=body.payment_intent_id,
            request_key=idempotency_key,
            correlation_id=correlation_id,
        )
    except PaymentIntentNotFoundError:
        raise HTTPException(status_code=404, detail="Payment intent not found")
    except BookingAlreadyPaidError:
        raise HTTPException(status_code=409, detail="Booking is already paid")
    except BookingConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return result.to_dict()
