"""Tests for BookingRepository SQL (mocked cursor, no DB needed)."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from psycopg2 import errors as pg_errors

from helpers import make_booking, make_draft
from stayhub.domain.bookings import BookingConflictError
from stayhub.infra.repositories.bookings_repository import BookingRepository

BOOKED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _row(booking_id="b1", payment_status=False, version=0):
    return (
        booking_id,
        "hotel-1",
        "owner-1",
        "room-1",
        "user-123",
        "Test Guest",
        "guest@example.com",
        date(2024, 6, 10),
        date(2024, 6, 15),
        Decimal("450.00"),
        "usd",
        False,
        "pi_1",
        payment_status,
        version,
        BOOKED_AT,
    )


@pytest.fixture
def cur():
    return MagicMock()


@pytest.fixture
def repo():
    return BookingRepository(MagicMock())


class TestInsert:
    def test_inserts_unpaid_row(self, repo, cur):
        cur.fetchone.return_value = _row()

        booking = repo.insert(
            cur,
            booking_id="b1",
            draft=make_draft(),
            user_id="user-123",
            user_name="Test Guest",
            user_email="guest@example.com",
            currency="usd",
            payment_intent_id="pi_1",
        )

        sql, params = cur.execute.call_args[0]
        assert "INSERT INTO bookings" in sql
        assert "false" in sql
        assert params[0] == "b1"
        assert params[-1] == "pi_1"
        assert booking.payment_status is False
        assert booking.total_price == Decimal("450.00")
        assert booking.booked_at == BOOKED_AT


class TestFindByPaymentIntent:
    def test_plain_lookup(self, repo, cur):
        cur.fetchone.return_value = _row()

        booking = repo.find_by_payment_intent(cur, "pi_1")

        sql, params = cur.execute.call_args[0]
        assert "FOR UPDATE" not in sql
        assert params == ["pi_1"]
        assert booking.id == "b1"

    def test_scoped_to_user_and_locked(self, repo, cur):
        cur.fetchone.return_value = None

        assert repo.find_by_payment_intent(cur, "pi_1", user_id="user-123", for_update=True) is None

        sql, params = cur.execute.call_args[0]
        assert sql.rstrip().endswith("FOR UPDATE")
        assert "b.user_id = %s" in sql
        assert params == ["pi_1", "user-123"]


class TestGet:
    def test_by_id(self, repo, cur):
        cur.fetchone.return_value = _row("b7")

        assert repo.get(cur, "b7").id == "b7"
        sql, params = cur.execute.call_args[0]
        assert "WHERE b.id = %s" in sql
        assert params == ("b7",)

    def test_missing(self, repo, cur):
        cur.fetchone.return_value = None
        assert repo.get(cur, "nope") is None


class TestUpdateDraft:
    def test_guarded_by_version_and_unpaid(self, repo, cur):
        cur.fetchone.return_value = _row(version=3)

        booking = repo.update_draft(
            cur,
            "b1",
            make_draft(),
            user_name="Test Guest",
            user_email="guest@example.com",
            currency="usd",
            expected_version=2,
        )

        sql, params = cur.execute.call_args[0]
        assert "version = b.version + 1" in sql
        assert "b.version = %s" in sql
        assert "NOT b.payment_status" in sql
        assert params[-2:] == ("b1", 2)
        assert booking.version == 3

    def test_returns_none_on_stale_version(self, repo, cur):
        cur.fetchone.return_value = None
        result = repo.update_draft(
            cur,
            "b1",
            make_draft(),
            user_name=None,
            user_email=None,
            currency="usd",
            expected_version=0,
        )
        assert result is None


class TestMarkPaid:
    def test_conditional_update(self, repo, cur):
        cur.fetchone.return_value = _row(payment_status=True, version=1)
        booking = make_booking("b1", date(2024, 6, 10), date(2024, 6, 15), payment_status=False)

        paid = repo.mark_paid(cur, booking)

        sql, params = cur.execute.call_args[0]
        assert "SET payment_status = true" in sql
        assert "NOT b.payment_status" in sql
        assert params == ("b1", 0)
        assert paid.payment_status is True

    def test_exclusion_violation_maps_to_conflict(self, repo, cur):
        cur.execute.side_effect = pg_errors.ExclusionViolation("conflicting key value")
        booking = make_booking("b1", date(2024, 6, 10), date(2024, 6, 15), payment_status=False)

        with pytest.raises(BookingConflictError) as exc_info:
            repo.mark_paid(cur, booking)

        assert exc_info.value.room_id == "room-1"


class TestRoomQueries:
    def test_lock_room_uses_advisory_lock(self, repo, cur):
        repo.lock_room(cur, "room-1")
        sql, params = cur.execute.call_args[0]
        assert "pg_advisory_xact_lock" in sql
        assert params == ("room:room-1",)

    def test_list_active_for_room(self, repo, cur):
        cur.fetchall.return_value = [_row(payment_status=True)]

        result = repo.list_active_for_room(
            cur, "room-1", ending_after=date(2024, 6, 1), exclude_booking_id="b9"
        )

        sql, params = cur.execute.call_args[0]
        assert "b.payment_status" in sql
        assert "b.end_date > %s" in sql
        assert "b.id != %s" in sql
        assert params == ["room-1", date(2024, 6, 1), "b9"]
        assert [b.id for b in result] == ["b1"]


class TestFindMany:
    def test_filters_and_related_objects(self, repo, cur):
        cur.fetchall.return_value = [
            _row() + ("room-1", "Sea view", Decimal("90.00"), Decimal("10.00"),
                      "hotel-1", "Grand", "PT", "Lisbon", "Lisbon"),
        ]

        result = repo.find_many(cur, user_id="user-123")

        sql, params = cur.execute.call_args[0]
        assert "LEFT JOIN rooms r" in sql
        assert "ORDER BY b.booked_at DESC" in sql
        assert params == ["user-123"]
        booking = result[0]
        assert booking.room == {
            "id": "room-1",
            "title": "Sea view",
            "room_price": "90.00",
            "breakfast_price": "10.00",
        }
        assert booking.hotel["city"] == "Lisbon"
        assert "version" not in booking.to_dict()

    def test_missing_room_and_hotel_left_out(self, repo, cur):
        cur.fetchall.return_value = [_row() + (None,) * 9]

        booking = repo.find_many(cur, hotel_id="hotel-1", ending_after=date(2024, 6, 1))[0]

        sql, params = cur.execute.call_args[0]
        assert params == ["hotel-1", date(2024, 6, 1)]
        data = booking.to_dict()
        assert "room" not in data
        assert "hotel" not in data


class TestStaleDrafts:
    def test_list_stale_drafts(self, repo, cur):
        cur.fetchall.return_value = [_row()]
        repo.list_stale_drafts(cur, booked_before=BOOKED_AT, limit=10)
        sql, params = cur.execute.call_args[0]
        assert "NOT b.payment_status" in sql
        assert "ORDER BY b.sweep_failed_at NULLS FIRST, b.booked_at" in sql
        assert params == (BOOKED_AT, 10)

    def test_record_sweep_failure(self, repo, cur):
        repo.record_sweep_failure(cur, "b1")
        sql, params = cur.execute.call_args[0]
        assert "sweep_failed_at = now()" in sql
        assert "NOT payment_status" in sql
        assert params == ("b1",)

    def test_delete_if_unpaid(self, repo, cur):
        cur.fetchone.return_value = None
        assert repo.delete_if_unpaid(cur, "b1") is None
        sql, _ = cur.execute.call_args[0]
        assert "NOT b.payment_status" in sql


class TestTxn:
    def test_delegates_to_database(self):
        db = MagicMock()
        repo = BookingRepository(db)
        assert repo.txn() is db.txn.return_value
