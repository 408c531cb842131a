"""Payment intent coordination.

Keeps exactly one booking row per in-progress checkout and keeps the
Stripe PaymentIntent amount equal to the booking's total price.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from uuid import NAMESPACE_URL, uuid4, uuid5

from stayhub.domain.availability import blocking_cutoff, has_overlap
from stayhub.domain.bookings import (
    Booking,
    BookingAlreadyPaidError,
    BookingConflictError,
    BookingDraft,
)

if TYPE_CHECKING:
    from stayhub.api.auth import CurrentUser
    from stayhub.infra.repositories.bookings_repository import BookingRepository
    from stayhub.stripe.client import StripeClient

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "usd"

_BOOKING_ID_NAMESPACE = uuid5(NAMESPACE_URL, "https://stayhub/bookings")


@dataclass
class ReservationResult:
    booking: Booking
    payment_intent: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "booking_id": self.booking.id,
            "payment_intent": {
                "id": self.payment_intent["id"],
                "client_secret": self.payment_intent["client_secret"],
                "amount": self.payment_intent["amount"],
                "currency": self.payment_intent["currency"],
                "status": self.payment_intent["status"],
            },
        }


def booking_currency() -> str:
    return os.environ.get("BOOKING_CURRENCY", DEFAULT_CURRENCY).lower()


def _get_idempotency_key(booking_id: str) -> str:
    return f"booking:{booking_id}:payment_intent"


def _new_booking_id(user_id: str, request_key: str | None) -> str:
    # Same user and request key always map to the same booking id
    if request_key:
        return str(uuid5(_BOOKING_ID_NAMESPACE, f"{user_id}:{request_key}"))
    return str(uuid4())


def _assert_room_free(
    cur,
    repo: BookingRepository,
    draft: BookingDraft,
    exclude_booking_id: str | None = None,
) -> None:
    active = repo.list_active_for_room(
        cur,
        draft.room_id,
        ending_after=blocking_cutoff(draft.start_date),
        exclude_booking_id=exclude_booking_id,
    )
    ranges = [(b.start_date, b.end_date) for b in active]
    if has_overlap(draft.start_date, draft.end_date, ranges):
        raise BookingConflictError(draft.room_id, draft.start_date, draft.end_date)


def reserve_or_update(
    draft: BookingDraft,
    user: CurrentUser,
    *,
    repo: BookingRepository,
    stripe_client: StripeClient,
    existing_payment_intent_id: str | None = None,
    request_key: str | None = None,
    correlation_id: str | None = None,
) -> ReservationResult:
    """Create or revise the payment intent and booking for a checkout.

    If existing_payment_intent_id belongs to an unpaid booking of this user,
    the intent amount and the booking row are updated in place. Otherwise a
    new intent and a new unpaid booking are created.

    With a request_key the new booking id, and with it the Stripe
    idempotency key, is derived from the user and the key. A retried request
    then returns the booking stored by the first attempt, or, if that
    attempt created the intent but failed before the insert, gets the same
    intent back from Stripe.

    The Stripe call happens inside the database transaction, so a failed
    amount update leaves the booking untouched.

    Args:
        draft: Booking parameters chosen by the guest.
        user: Authenticated guest.
        repo: Booking repository.
        stripe_client: Stripe client instance.
        existing_payment_intent_id: Intent id from an earlier unfinished attempt.
        request_key: Client-chosen key identifying one checkout request.
        correlation_id: Optional correlation ID for tracing.

    Returns:
        ReservationResult with the booking and the intent's public fields.

    Raises:
        BookingConflictError: Dates overlap a paid booking of the room.
        BookingAlreadyPaidError: The referenced booking is already paid.
        PaymentIntentNotFoundError: Stripe does not know the referenced intent.
        PaymentProviderError: Any other Stripe failure.
    """
    currency = booking_currency()

    with repo.txn() as cur:
        existing = None
        if existing_payment_intent_id:
            existing = repo.find_by_payment_intent(
                cur,
                existing_payment_intent_id,
                user_id=user.id,
                for_update=True,
            )

        if existing is not None:
            if existing.payment_status:
                raise BookingAlreadyPaidError(
                    f"Booking {existing.id} is already paid"
                )

            _assert_room_free(cur, repo, draft, exclude_booking_id=existing.id)

            stripe_client.retrieve_payment_intent(
                existing_payment_intent_id,
                correlation_id=correlation_id,
            )
            intent = stripe_client.update_payment_intent_amount(
                existing_payment_intent_id,
                amount_cents=draft.amount_minor,
                correlation_id=correlation_id,
            )

            booking = repo.update_draft(
                cur,
                existing.id,
                draft,
                user_name=user.name,
                user_email=user.email,
                currency=currency,
                expected_version=existing.version,
            )
            if booking is None:
                raise BookingAlreadyPaidError(
                    f"Booking {existing.id} changed while being revised"
                )

            logger.info(
                "booking_draft_updated",
                extra={
                    "extra_fields": {
                        "booking_id": booking.id,
                        "payment_intent_id": intent["id"],
                        "amount_cents": intent["amount"],
                        "correlation_id": correlation_id,
                    }
                },
            )
            return ReservationResult(booking=booking, payment_intent=intent)

        booking_id = _new_booking_id(user.id, request_key)
        if request_key:
            stored = repo.get(cur, booking_id)
            if stored is not None:
                intent = stripe_client.retrieve_payment_intent(
                    stored.payment_intent_id,
                    correlation_id=correlation_id,
                )
                logger.info(
                    "booking_draft_replayed",
                    extra={"extra_fields": {"booking_id": stored.id, "correlation_id": correlation_id}},
                )
                return ReservationResult(booking=stored, payment_intent=intent)

        _assert_room_free(cur, repo, draft)

        intent = stripe_client.create_payment_intent(
            amount_cents=draft.amount_minor,
            currency=currency,
            idempotency_key=_get_idempotency_key(booking_id),
            metadata={
                "booking_id": booking_id,
                "room_id": draft.room_id,
                "user_id": user.id,
            },
            correlation_id=correlation_id,
        )

        booking = repo.insert(
            cur,
            booking_id=booking_id,
            draft=draft,
            user_id=user.id,
            user_name=user.name,
            user_email=user.email,
            currency=currency,
            payment_intent_id=intent["id"],
        )

        logger.info(
            "booking_draft_created",
            extra={
                "extra_fields": {
                    "booking_id": booking.id,
                    "payment_intent_id": intent["id"],
                    "amount_cents": intent["amount"],
                    "correlation_id": correlation_id,
                }
            },
        )
        return ReservationResult(booking=booking, payment_intent=intent)
