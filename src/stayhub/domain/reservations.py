"""Reservation finalization, availability pre-check and cancellation.

confirm_payment is the only path that sets payment_status = true. It runs
as one transaction:

1. Lock the booking row by payment_intent_id (FOR UPDATE)
2. Return early if it is already paid (webhook and client may both call)
3. Take a transaction-scoped advisory lock on the room
4. Re-read the room's active paid bookings and run the overlap check
5. Conditional update guarded by the row version

Two overlapping confirmations for one room therefore serialize on step 3
and the second one sees the first as a paid conflict.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import TYPE_CHECKING

from stayhub.domain.availability import AvailabilityResult, blocking_cutoff, disabled_dates, has_overlap
from stayhub.domain.bookings import Booking, BookingConflictError, BookingNotFoundError
from stayhub.infra.time import utc_yesterday

if TYPE_CHECKING:
    from stayhub.infra.repositories.bookings_repository import BookingRepository

logger = logging.getLogger(__name__)


def list_active_bookings_for_room(room_id: str, *, repo: BookingRepository) -> list[Booking]:
    """Paid bookings of a room that have not fully elapsed yet."""
    with repo.txn() as cur:
        return repo.list_active_for_room(cur, room_id, ending_after=utc_yesterday())


def check_availability(
    room_id: str,
    start_date: date,
    end_date: date,
    *,
    repo: BookingRepository,
) -> AvailabilityResult:
    """Advisory pre-check run before the guest is charged.

    Narrows the race window but does not close it; confirm_payment is the
    authoritative gate and applies the same overlap rule. disabled_dates
    only lists stays that have not fully elapsed.

    Raises:
        ValueError: If start_date is not before end_date.
    """
    cutoff = blocking_cutoff(start_date)
    yesterday = utc_yesterday()
    with repo.txn() as cur:
        paid = repo.list_active_for_room(cur, room_id, ending_after=min(cutoff, yesterday))

    relevant = [(b.start_date, b.end_date) for b in paid if b.end_date > cutoff]
    shown = [(b.start_date, b.end_date) for b in paid if b.end_date > yesterday]
    return AvailabilityResult(
        room_id=room_id,
        start_date=start_date,
        end_date=end_date,
        available=not has_overlap(start_date, end_date, relevant),
        disabled_dates=disabled_dates(shown),
    )


def confirm_payment(
    payment_intent_id: str,
    *,
    repo: BookingRepository,
    correlation_id: str | None = None,
) -> Booking:
    """Mark the booking tied to a payment intent as paid.

    Args:
        payment_intent_id: Stripe PaymentIntent id.
        repo: Booking repository.
        correlation_id: Optional correlation ID for tracing.

    Returns:
        The paid booking.

    Raises:
        BookingNotFoundError: No booking carries this payment intent.
        BookingConflictError: A paid booking of the same room overlaps.
    """
    with repo.txn() as cur:
        booking = repo.find_by_payment_intent(cur, payment_intent_id, for_update=True)
        if booking is None:
            raise BookingNotFoundError(f"No booking for payment intent {payment_intent_id}")

        if booking.payment_status:
            logger.info(
                "booking_already_paid",
                extra={"extra_fields": {"booking_id": booking.id, "correlation_id": correlation_id}},
            )
            return booking

        repo.lock_room(cur, booking.room_id)

        active = repo.list_active_for_room(
            cur,
            booking.room_id,
            ending_after=blocking_cutoff(booking.start_date),
            exclude_booking_id=booking.id,
        )
        ranges = [(b.start_date, b.end_date) for b in active]
        if has_overlap(booking.start_date, booking.end_date, ranges):
            logger.warning(
                "booking_confirmation_conflict",
                extra={
                    "extra_fields": {
                        "booking_id": booking.id,
                        "room_id": booking.room_id,
                        "start_date": booking.start_date,
                        "end_date": booking.end_date,
                        "correlation_id": correlation_id,
                    }
                },
            )
            raise BookingConflictError(booking.room_id, booking.start_date, booking.end_date)

        paid = repo.mark_paid(cur, booking)
        if paid is None:
            raise BookingConflictError(
                booking.room_id,
                booking.start_date,
                booking.end_date,
                message="Booking was modified during confirmation. Please retry.",
            )

    logger.info(
        "booking_paid",
        extra={"extra_fields": {"booking_id": paid.id, "room_id": paid.room_id, "correlation_id": correlation_id}},
    )
    return paid


def delete_booking(
    booking_id: str,
    *,
    repo: BookingRepository,
    correlation_id: str | None = None,
) -> Booking:
    """Delete a booking regardless of payment status.

    The Stripe PaymentIntent is left as is; refunds are handled outside
    this service.

    Raises:
        BookingNotFoundError: If no booking has this id.
    """
    with repo.txn() as cur:
        booking = repo.delete(cur, booking_id)
    if booking is None:
        raise BookingNotFoundError(f"Booking not found: {booking_id}")

    logger.info(
        "booking_deleted",
        extra={
            "extra_fields": {
                "booking_id": booking.id,
                "was_paid": booking.payment_status,
                "correlation_id": correlation_id,
            }
        },
    )
    return booking


def list_user_bookings(user_id: str, *, repo: BookingRepository) -> list[Booking]:
    with repo.txn() as cur:
        return repo.find_many(cur, user_id=user_id)


def list_owner_bookings(hotel_owner_id: str, *, repo: BookingRepository) -> list[Booking]:
    with repo.txn() as cur:
        return repo.find_many(cur, hotel_owner_id=hotel_owner_id)


def list_hotel_bookings(hotel_id: str, *, repo: BookingRepository) -> list[Booking]:
    """Bookings of a hotel whose stay has not fully elapsed."""
    with repo.txn() as cur:
        return repo.find_many(cur, hotel_id=hotel_id, ending_after=utc_yesterday())
