"""Bookings repository - persistence for booking rows.

Uses raw SQL with psycopg2 (no ORM). Every method takes the cursor of the
caller's transaction so multi-step operations stay atomic.
"""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from datetime import date, datetime
from typing import Any

from psycopg2 import errors as pg_errors
from psycopg2.extensions import cursor as PgCursor

from stayhub.domain.bookings import Booking, BookingConflictError, BookingDraft
from stayhub.infra.db import Database

logger = logging.getLogger(__name__)

_COLUMNS = """
    b.id, b.hotel_id, b.hotel_owner_id, b.room_id, b.user_id, b.user_name,
    b.user_email, b.start_date, b.end_date, b.total_price, b.currency,
    b.breakfast_included, b.payment_intent_id, b.payment_status, b.version,
    b.booked_at
"""

_RELATED_COLUMNS = """
    r.id, r.title, r.room_price, r.breakfast_price,
    h.id, h.title, h.country, h.state, h.city
"""

_RELATED_JOINS = """
    LEFT JOIN rooms r ON r.id = b.room_id
    LEFT JOIN hotels h ON h.id = b.hotel_id
"""


def _row_to_booking(row: tuple) -> Booking:
    return Booking(
        id=str(row[0]),
        hotel_id=row[1],
        hotel_owner_id=row[2],
        room_id=row[3],
        user_id=row[4],
        user_name=row[5],
        user_email=row[6],
        start_date=row[7],
        end_date=row[8],
        total_price=row[9],
        currency=row[10],
        breakfast_included=row[11],
        payment_intent_id=row[12],
        payment_status=row[13],
        version=row[14],
        booked_at=row[15],
    )


def _row_to_booking_with_related(row: tuple) -> Booking:
    booking = _row_to_booking(row[:16])
    room_id, room_title, room_price, breakfast_price = row[16:20]
    hotel_id, hotel_title, country, state, city = row[20:25]
    if room_id is not None:
        booking.room = {
            "id": room_id,
            "title": room_title,
            "room_price": str(room_price),
            "breakfast_price": str(breakfast_price),
        }
    if hotel_id is not None:
        booking.hotel = {
            "id": hotel_id,
            "title": hotel_title,
            "country": country,
            "state": state,
            "city": city,
        }
    return booking


class BookingRepository:
    """Booking persistence bound to one Database handle.

    Usage:
        repo = BookingRepository(Database.from_env())
        with repo.txn() as cur:
            booking = repo.find_by_payment_intent(cur, "pi_123")
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    def txn(self) -> AbstractContextManager[PgCursor]:
        return self._db.txn()

    def insert(
        self,
        cur: PgCursor,
        *,
        booking_id: str,
        draft: BookingDraft,
        user_id: str,
        user_name: str | None,
        user_email: str | None,
        currency: str,
        payment_intent_id: str,
    ) -> Booking:
        """Insert a new unpaid booking.

        Raises:
            psycopg2.errors.UniqueViolation: If payment_intent_id is taken.
        """
        cur.execute(
            f"""
            INSERT INTO bookings AS b (
                id, hotel_id, hotel_owner_id, room_id, user_id, user_name,
                user_email, start_date, end_date, total_price, currency,
                breakfast_included, payment_intent_id, payment_status
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, false)
            RETURNING {_COLUMNS}
            """,
            (
                booking_id,
                draft.hotel_id,
                draft.hotel_owner_id,
                draft.room_id,
                user_id,
                user_name,
                user_email,
                draft.start_date,
                draft.end_date,
                draft.total_price,
                currency,
                draft.breakfast_included,
                payment_intent_id,
            ),
        )
        return _row_to_booking(cur.fetchone())

    def get(self, cur: PgCursor, booking_id: str) -> Booking | None:
        cur.execute(f"SELECT {_COLUMNS} FROM bookings b WHERE b.id = %s", (booking_id,))
        row = cur.fetchone()
        return _row_to_booking(row) if row else None

    def find_by_payment_intent(
        self,
        cur: PgCursor,
        payment_intent_id: str,
        *,
        user_id: str | None = None,
        for_update: bool = False,
    ) -> Booking | None:
        """Find the booking tied to a payment intent.

        Args:
            cur: Database cursor.
            payment_intent_id: External authorization id.
            user_id: If given, only match a booking owned by this guest.
            for_update: Lock the row until the transaction ends.
        """
        conditions = ["b.payment_intent_id = %s"]
        params: list[Any] = [payment_intent_id]
        if user_id is not None:
            conditions.append("b.user_id = %s")
            params.append(user_id)

        suffix = " FOR UPDATE" if for_update else ""
        cur.execute(
            f"SELECT {_COLUMNS} FROM bookings b WHERE {' AND '.join(conditions)}{suffix}",
            params,
        )
        row = cur.fetchone()
        return _row_to_booking(row) if row else None

    def update_draft(
        self,
        cur: PgCursor,
        booking_id: str,
        draft: BookingDraft,
        *,
        user_name: str | None,
        user_email: str | None,
        currency: str,
        expected_version: int,
    ) -> Booking | None:
        """Overwrite the draft fields of an unpaid booking.

        Returns None when the row changed underneath (version mismatch or
        already paid).
        """
        cur.execute(
            f"""
            UPDATE bookings AS b
            SET hotel_id = %s, hotel_owner_id = %s, room_id = %s,
                user_name = %s, user_email = %s,
                start_date = %s, end_date = %s, total_price = %s,
                currency = %s, breakfast_included = %s,
                version = b.version + 1
            WHERE b.id = %s AND b.version = %s AND NOT b.payment_status
            RETURNING {_COLUMNS}
            """,
            (
                draft.hotel_id,
                draft.hotel_owner_id,
                draft.room_id,
                user_name,
                user_email,
                draft.start_date,
                draft.end_date,
                draft.total_price,
                currency,
                draft.breakfast_included,
                booking_id,
                expected_version,
            ),
        )
        row = cur.fetchone()
        return _row_to_booking(row) if row else None

    def mark_paid(
        self,
        cur: PgCursor,
        booking: Booking,
    ) -> Booking | None:
        """Flip an unpaid booking to paid if nobody changed it meanwhile.

        Raises:
            BookingConflictError: If the overlap exclusion constraint fires.
        """
        try:
            cur.execute(
                f"""
                UPDATE bookings AS b
                SET payment_status = true, version = b.version + 1
                WHERE b.id = %s AND b.version = %s AND NOT b.payment_status
                RETURNING {_COLUMNS}
                """,
                (booking.id, booking.version),
            )
        except pg_errors.ExclusionViolation as exc:
            logger.warning(
                "paid booking overlap rejected by constraint",
                extra={"extra_fields": {"booking_id": booking.id, "room_id": booking.room_id}},
            )
            raise BookingConflictError(
                booking.room_id, booking.start_date, booking.end_date
            ) from exc
        row = cur.fetchone()
        return _row_to_booking(row) if row else None

    def delete(self, cur: PgCursor, booking_id: str) -> Booking | None:
        cur.execute(
            f"DELETE FROM bookings AS b WHERE b.id = %s RETURNING {_COLUMNS}",
            (booking_id,),
        )
        row = cur.fetchone()
        return _row_to_booking(row) if row else None

    def lock_room(self, cur: PgCursor, room_id: str) -> None:
        """Serialize paid-status transitions for one room until commit."""
        cur.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (f"room:{room_id}",))

    def list_active_for_room(
        self,
        cur: PgCursor,
        room_id: str,
        *,
        ending_after: date,
        exclude_booking_id: str | None = None,
    ) -> list[Booking]:
        """List paid bookings of a room whose end_date is after a cutoff."""
        conditions = ["b.room_id = %s", "b.payment_status", "b.end_date > %s"]
        params: list[Any] = [room_id, ending_after]
        if exclude_booking_id is not None:
            conditions.append("b.id != %s")
            params.append(exclude_booking_id)

        cur.execute(
            f"""
            SELECT {_COLUMNS}
            FROM bookings b
            WHERE {' AND '.join(conditions)}
            ORDER BY b.start_date
            """,
            params,
        )
        return [_row_to_booking(row) for row in cur.fetchall()]

    def find_many(
        self,
        cur: PgCursor,
        *,
        user_id: str | None = None,
        hotel_owner_id: str | None = None,
        hotel_id: str | None = None,
        ending_after: date | None = None,
    ) -> list[Booking]:
        """List bookings by filters with room and hotel eager-loaded.

        Newest bookings first.
        """
        conditions: list[str] = []
        params: list[Any] = []
        for column, value in (
            ("b.user_id", user_id),
            ("b.hotel_owner_id", hotel_owner_id),
            ("b.hotel_id", hotel_id),
        ):
            if value is not None:
                conditions.append(f"{column} = %s")
                params.append(value)
        if ending_after is not None:
            conditions.append("b.end_date > %s")
            params.append(ending_after)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        cur.execute(
            f"""
            SELECT {_COLUMNS}, {_RELATED_COLUMNS}
            FROM bookings b
            {_RELATED_JOINS}
            {where}
            ORDER BY b.booked_at DESC
            LIMIT 200
            """,
            params,
        )
        return [_row_to_booking_with_related(row) for row in cur.fetchall()]

    def list_stale_drafts(
        self,
        cur: PgCursor,
        *,
        booked_before: datetime,
        limit: int = 100,
    ) -> list[Booking]:
        """Unpaid bookings older than a cutoff, never-attempted ones first.

        Drafts whose last cancellation failed sort after the rest, least
        recently failed first, so one stuck intent cannot starve the batch.
        """
        cur.execute(
            f"""
            SELECT {_COLUMNS}
            FROM bookings b
            WHERE NOT b.payment_status AND b.booked_at < %s
            ORDER BY b.sweep_failed_at NULLS FIRST, b.booked_at
            LIMIT %s
            """,
            (booked_before, limit),
        )
        return [_row_to_booking(row) for row in cur.fetchall()]

    def record_sweep_failure(self, cur: PgCursor, booking_id: str) -> None:
        cur.execute(
            "UPDATE bookings SET sweep_failed_at = now() WHERE id = %s AND NOT payment_status",
            (booking_id,),
        )

    def delete_if_unpaid(self, cur: PgCursor, booking_id: str) -> Booking | None:
        cur.execute(
            f"""
            DELETE FROM bookings AS b
            WHERE b.id = %s AND NOT b.payment_status
            RETURNING {_COLUMNS}
            """,
            (booking_id,),
        )
        row = cur.fetchone()
        return _row_to_booking(row) if row else None
