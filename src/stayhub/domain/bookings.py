"""Booking records and the errors raised around them."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any


class BookingNotFoundError(Exception):
    """No booking matches the given identifier."""


class BookingAlreadyPaidError(Exception):
    """The booking is already paid and can no longer be revised."""


class BookingConflictError(Exception):
    """Requested dates overlap a paid booking of the same room."""

    def __init__(
        self,
        room_id: str,
        start_date: date,
        end_date: date,
        message: str | None = None,
    ) -> None:
        self.room_id = room_id
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(
            message
            or (
                "Some of the days you are trying to book have already been "
                "reserved. Please select different dates or rooms."
            )
        )


@dataclass
class BookingDraft:
    """Guest-supplied booking parameters before payment."""

    hotel_id: str
    hotel_owner_id: str
    room_id: str
    start_date: date
    end_date: date
    total_price: Decimal
    breakfast_included: bool = False

    def __post_init__(self) -> None:
        if self.start_date >= self.end_date:
            raise ValueError("start_date must be before end_date")
        if self.total_price <= 0:
            raise ValueError("total_price must be positive")

    @property
    def amount_minor(self) -> int:
        return to_minor_units(self.total_price)


@dataclass
class Booking:
    id: str
    hotel_id: str
    hotel_owner_id: str
    room_id: str
    user_id: str
    user_name: str | None
    user_email: str | None
    start_date: date
    end_date: date
    total_price: Decimal
    currency: str
    breakfast_included: bool
    payment_intent_id: str
    payment_status: bool = False
    version: int = 0
    booked_at: datetime | None = None
    room: dict[str, Any] | None = field(default=None, compare=False)
    hotel: dict[str, Any] | None = field(default=None, compare=False)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["start_date"] = self.start_date.isoformat()
        data["end_date"] = self.end_date.isoformat()
        data["total_price"] = str(self.total_price)
        data["booked_at"] = self.booked_at.isoformat() if self.booked_at else None
        del data["version"]
        if self.room is None:
            del data["room"]
        if self.hotel is None:
            del data["hotel"]
        return data


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit price to integer minor units (half-up)."""
    cents = (Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)
