"""Booking endpoints.

GET    /booking/{room_id}               → active paid bookings of a room
GET    /booking/{room_id}/availability  → advisory pre-check + disabled dates
PATCH  /booking/{payment_intent_id}     → mark booking paid (atomic re-check)
DELETE /booking/{booking_id}            → delete booking
GET    /bookings/me                     → caller's bookings as guest
GET    /bookings/owner                  → bookings of the caller's hotels
GET    /hotels/{hotel_id}/bookings      → upcoming bookings of a hotel

All routes require an authenticated user.
"""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from stayhub.api.auth import CurrentUser, CurrentUserDep
from stayhub.api.deps import get_booking_repository
from stayhub.domain.bookings import Booking, BookingConflictError, BookingNotFoundError
from stayhub.domain.reservations import (
    check_availability,
    confirm_payment,
    delete_booking,
    list_active_bookings_for_room,
    list_hotel_bookings,
    list_owner_bookings,
    list_user_bookings,
)
from stayhub.infra.repositories.bookings_repository import BookingRepository
from stayhub.observability.correlation import get_correlation_id
from stayhub.observability.logging import get_logger
from stayhub.observability.redaction import safe_log_context

logger = get_logger(__name__)

router = APIRouter(tags=["bookings"])


def _stay_summary(booking: Booking) -> dict:
    # No guest identity: these listings are visible to any signed-in user
    return {
        "id": booking.id,
        "room_id": booking.room_id,
        "start_date": booking.start_date.isoformat(),
        "end_date": booking.end_date.isoformat(),
        "payment_status": booking.payment_status,
    }


def _require_id(value: str, label: str) -> str:
    value = value.strip()
    if not value:
        raise HTTPException(status_code=400, detail=f"{label} is required")
    return value


@router.get("/booking/{room_id}")
def get_room_bookings(
    room_id: str = Path(..., description="Room ID"),
    user: CurrentUser = CurrentUserDep,
    repo: BookingRepository = Depends(get_booking_repository),
) -> list[dict]:
    """List paid bookings of a room that have not fully elapsed."""
    room_id = _require_id(room_id, "Room Id")
    bookings = list_active_bookings_for_room(room_id, repo=repo)
    return [_stay_summary(b) for b in bookings]


@router.get("/booking/{room_id}/availability")
def get_room_availability(
    room_id: str = Path(..., description="Room ID"),
    start_date: date = Query(..., description="First night"),
    end_date: date = Query(..., description="Departure day"),
    user: CurrentUser = CurrentUserDep,
    repo: BookingRepository = Depends(get_booking_repository),
) -> dict:
    """Check whether a date range is still free before paying.

    Advisory only: the final confirmation re-checks atomically.
    """
    room_id = _require_id(room_id, "Room Id")
    try:
        result = check_availability(room_id, start_date, end_date, repo=repo)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()


@router.patch("/booking/{payment_intent_id}")
def mark_booking_paid(
    payment_intent_id: str = Path(..., description="Stripe PaymentIntent ID"),
    user: CurrentUser = CurrentUserDep,
    repo: BookingRepository = Depends(get_booking_repository),
) -> dict:
    """Mark the booking of a confirmed payment as paid.

    Returns 409 if another paid booking took the dates meanwhile; the
    booking then stays unpaid.
    """
    payment_intent_id = _require_id(payment_intent_id, "Payment Intent Id")
    correlation_id = get_correlation_id()

    try:
        booking = confirm_payment(payment_intent_id, repo=repo, correlation_id=correlation_id)
    except BookingNotFoundError:
        raise HTTPException(status_code=404, detail="Booking not found")
    except BookingConflictError as e:
        logger.warning(
            "payment confirmation rejected",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    payment_intent_id=payment_intent_id,
                    room_id=e.room_id,
                )
            },
        )
        raise HTTPException(status_code=409, detail=str(e))

    return booking.to_dict()


@router.delete("/booking/{booking_id}")
def remove_booking(
    booking_id: str = Path(..., description="Booking ID"),
    user: CurrentUser = CurrentUserDep,
    repo: BookingRepository = Depends(get_booking_repository),
) -> dict:
    """Delete a booking regardless of its payment status."""
    booking_id = _require_id(booking_id, "Booking Id")
    try:
        booking = delete_booking(booking_id, repo=repo, correlation_id=get_correlation_id())
    except BookingNotFoundError:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking.to_dict()


@router.get("/bookings/me")
def my_bookings(
    user: CurrentUser = CurrentUserDep,
    repo: BookingRepository = Depends(get_booking_repository),
) -> dict:
    bookings = list_user_bookings(user.id, repo=repo)
    return {"bookings": [b.to_dict() for b in bookings]}


@router.get("/bookings/owner")
def owner_bookings(
    user: CurrentUser = CurrentUserDep,
    repo: BookingRepository = Depends(get_booking_repository),
) -> dict:
    """Bookings made at hotels owned by the caller."""
    bookings = list_owner_bookings(user.id, repo=repo)
    return {"bookings": [b.to_dict() for b in bookings]}


@router.get("/hotels/{hotel_id}/bookings")
def hotel_bookings(
    hotel_id: str = Path(..., description="Hotel ID"),
    user: CurrentUser = CurrentUserDep,
    repo: BookingRepository = Depends(get_booking_repository),
) -> dict:
    hotel_id = _require_id(hotel_id, "Hotel Id")
    bookings = list_hotel_bookings(hotel_id, repo=repo)
    return {"bookings": [_stay_summary(b) for b in bookings]}
