"""Shared test helpers for StayHub booking tests.

This module contains helper functions and fakes that can be imported by both
conftest.py and individual test files. These are NOT fixtures.
"""

from __future__ import annotations

import base64
import copy
import itertools
import threading
import time
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

from stayhub.domain.bookings import Booking, BookingConflictError, BookingDraft
from stayhub.infra.time import utc_now
from stayhub.stripe.client import PaymentIntentNotFoundError, PaymentProviderError

OIDC_ENV = {
    "OIDC_ISSUER": "https://clerk.example.com",
    "OIDC_AUDIENCE": "stayhub-api",
    "OIDC_JWKS_URL": "https://clerk.example.com/.well-known/jwks.json",
}


def _generate_rsa_keypair():
    """Generate RSA key pair for test JWT signing."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )
    public_key = private_key.public_key()
    return private_key, public_key


def _create_jwks(public_key, kid: str = "test-key-1") -> dict:
    """Create JWKS from public key."""
    public_numbers = public_key.public_numbers()

    def int_to_base64(n: int) -> str:
        byte_length = (n.bit_length() + 7) // 8
        return (
            base64.urlsafe_b64encode(n.to_bytes(byte_length, "big"))
            .rstrip(b"=")
            .decode()
        )

    return {
        "keys": [
            {
                "kty": "RSA",
                "use": "sig",
                "alg": "RS256",
                "kid": kid,
                "n": int_to_base64(public_numbers.n),
                "e": int_to_base64(public_numbers.e),
            }
        ]
    }


def _create_token(
    private_key,
    kid: str = "test-key-1",
    sub: str = "user-123",
    iss: str = "https://clerk.example.com",
    aud: str = "stayhub-api",
    exp: int | None = None,
    azp: str | None = None,
    email: str | None = "guest@example.com",
    name: str | None = "Test Guest",
) -> str:
    """Create signed JWT for testing."""
    now = int(time.time())
    payload: dict[str, Any] = {
        "sub": sub,
        "iss": iss,
        "aud": aud,
        "exp": exp if exp is not None else now + 3600,
        "iat": now,
    }
    if azp:
        payload["azp"] = azp
    if email:
        payload["email"] = email
    if name:
        payload["name"] = name

    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": kid})


def make_draft(
    start: date = date(2024, 6, 10),
    end: date = date(2024, 6, 15),
    *,
    room_id: str = "room-1",
    hotel_id: str = "hotel-1",
    hotel_owner_id: str = "owner-1",
    total_price: Decimal = Decimal("450.00"),
    breakfast_included: bool = False,
) -> BookingDraft:
    return BookingDraft(
        hotel_id=hotel_id,
        hotel_owner_id=hotel_owner_id,
        room_id=room_id,
        start_date=start,
        end_date=end,
        total_price=total_price,
        breakfast_included=breakfast_included,
    )


class _Intent:
    def __init__(self, intent_id: str, amount: int, currency: str) -> None:
        self.id = intent_id
        self.client_secret = f"{intent_id}_secret_test"
        self.amount = amount
        self.currency = currency
        self.status = "requires_payment_method"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "client_secret": self.client_secret,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
        }


class FakeStripeClient:
    """Stand-in for StripeClient that keeps PaymentIntents in memory.

    Set fail_with to an exception instance to make every call raise it, or
    map intent ids in fail_for to fail only calls touching those intents.
    """

    def __init__(self) -> None:
        self.intents: dict[str, _Intent] = {}
        self.calls: list[tuple[str, str | None]] = []
        self.fail_with: Exception | None = None
        self.fail_for: dict[str, Exception] = {}
        self._by_idempotency_key: dict[str, str] = {}
        self._seq = itertools.count(1)

    def _check_failure(self, payment_intent_id: str | None = None) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        if payment_intent_id in self.fail_for:
            raise self.fail_for[payment_intent_id]

    def _get(self, payment_intent_id: str) -> _Intent:
        intent = self.intents.get(payment_intent_id)
        if intent is None:
            raise PaymentIntentNotFoundError(f"PaymentIntent not found: {payment_intent_id}")
        return intent

    def create_payment_intent(
        self,
        *,
        amount_cents: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        self.calls.append(("create", None))
        self._check_failure()
        if idempotency_key in self._by_idempotency_key:
            return self.intents[self._by_idempotency_key[idempotency_key]].to_dict()
        intent = _Intent(f"pi_test{next(self._seq)}", amount_cents, currency.lower())
        self.intents[intent.id] = intent
        self._by_idempotency_key[idempotency_key] = intent.id
        return intent.to_dict()

    def retrieve_payment_intent(
        self,
        payment_intent_id: str,
        *,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        self.calls.append(("retrieve", payment_intent_id))
        self._check_failure(payment_intent_id)
        return self._get(payment_intent_id).to_dict()

    def update_payment_intent_amount(
        self,
        payment_intent_id: str,
        *,
        amount_cents: int,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        self.calls.append(("update", payment_intent_id))
        self._check_failure(payment_intent_id)
        intent = self._get(payment_intent_id)
        intent.amount = amount_cents
        return intent.to_dict()

    def cancel_payment_intent(
        self,
        payment_intent_id: str,
        *,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        self.calls.append(("cancel", payment_intent_id))
        self._check_failure(payment_intent_id)
        intent = self._get(payment_intent_id)
        intent.status = "canceled"
        return intent.to_dict()


def provider_down() -> PaymentProviderError:
    return PaymentProviderError("Stripe unreachable")


def _ranges_touch(a: Booking, b: Booking) -> bool:
    # Same semantics as daterange(start, end, '[]') && daterange(...)
    return a.start_date <= b.end_date and b.start_date <= a.end_date


class InMemoryBookingRepository:
    """BookingRepository with the same interface, backed by a dict.

    txn() holds a process-wide lock for the whole transaction, which stands
    in for the row lock plus room advisory lock, and restores a snapshot of
    the rows when the block raises. The cursor argument is ignored.

    mark_paid is a plain version-guarded update, so overlap rejection comes
    from the caller's own re-check. Pass enforce_exclusion=True to also
    emulate the paid-overlap exclusion constraint.
    """

    def __init__(self, *, enforce_exclusion: bool = False) -> None:
        self.rows: dict[str, Booking] = {}
        self.enforce_exclusion = enforce_exclusion
        self.sweep_failures: dict[str, datetime] = {}
        self._lock = threading.Lock()
        self.lock_room_calls: list[str] = []

    @contextmanager
    def txn(self):
        with self._lock:
            snapshot = copy.deepcopy(self.rows)
            try:
                yield None
            except Exception:
                self.rows = snapshot
                raise

    def add(self, booking: Booking) -> Booking:
        """Seed a row directly, bypassing the domain."""
        self.rows[booking.id] = booking
        return booking

    def insert(
        self,
        cur,
        *,
        booking_id: str,
        draft: BookingDraft,
        user_id: str,
        user_name: str | None,
        user_email: str | None,
        currency: str,
        payment_intent_id: str,
    ) -> Booking:
        if any(b.payment_intent_id == payment_intent_id for b in self.rows.values()):
            raise AssertionError(f"duplicate payment_intent_id {payment_intent_id}")
        booking = Booking(
            id=booking_id,
            hotel_id=draft.hotel_id,
            hotel_owner_id=draft.hotel_owner_id,
            room_id=draft.room_id,
            user_id=user_id,
            user_name=user_name,
            user_email=user_email,
            start_date=draft.start_date,
            end_date=draft.end_date,
            total_price=draft.total_price,
            currency=currency,
            breakfast_included=draft.breakfast_included,
            payment_intent_id=payment_intent_id,
            booked_at=utc_now(),
        )
        self.rows[booking_id] = booking
        return replace(booking)

    def get(self, cur, booking_id: str) -> Booking | None:
        booking = self.rows.get(booking_id)
        return replace(booking) if booking else None

    def find_by_payment_intent(
        self,
        cur,
        payment_intent_id: str,
        *,
        user_id: str | None = None,
        for_update: bool = False,
    ) -> Booking | None:
        for booking in self.rows.values():
            if booking.payment_intent_id != payment_intent_id:
                continue
            if user_id is not None and booking.user_id != user_id:
                continue
            return replace(booking)
        return None

    def update_draft(
        self,
        cur,
        booking_id: str,
        draft: BookingDraft,
        *,
        user_name: str | None,
        user_email: str | None,
        currency: str,
        expected_version: int,
    ) -> Booking | None:
        row = self.rows.get(booking_id)
        if row is None or row.version != expected_version or row.payment_status:
            return None
        updated = replace(
            row,
            hotel_id=draft.hotel_id,
            hotel_owner_id=draft.hotel_owner_id,
            room_id=draft.room_id,
            user_name=user_name,
            user_email=user_email,
            start_date=draft.start_date,
            end_date=draft.end_date,
            total_price=draft.total_price,
            currency=currency,
            breakfast_included=draft.breakfast_included,
            version=row.version + 1,
        )
        self.rows[booking_id] = updated
        return replace(updated)

    def mark_paid(self, cur, booking: Booking) -> Booking | None:
        row = self.rows.get(booking.id)
        if row is None or row.version != booking.version or row.payment_status:
            return None
        if self.enforce_exclusion and any(
            other.id != row.id
            and other.payment_status
            and other.room_id == row.room_id
            and _ranges_touch(other, row)
            for other in self.rows.values()
        ):
            raise BookingConflictError(row.room_id, row.start_date, row.end_date)
        paid = replace(row, payment_status=True, version=row.version + 1)
        self.rows[row.id] = paid
        return replace(paid)

    def delete(self, cur, booking_id: str) -> Booking | None:
        return self.rows.pop(booking_id, None)

    def lock_room(self, cur, room_id: str) -> None:
        self.lock_room_calls.append(room_id)

    def list_active_for_room(
        self,
        cur,
        room_id: str,
        *,
        ending_after: date,
        exclude_booking_id: str | None = None,
    ) -> list[Booking]:
        result = [
            replace(b)
            for b in self.rows.values()
            if b.room_id == room_id
            and b.payment_status
            and b.end_date > ending_after
            and b.id != exclude_booking_id
        ]
        return sorted(result, key=lambda b: b.start_date)

    def find_many(
        self,
        cur,
        *,
        user_id: str | None = None,
        hotel_owner_id: str | None = None,
        hotel_id: str | None = None,
        ending_after: date | None = None,
    ) -> list[Booking]:
        filters = {
            "user_id": user_id,
            "hotel_owner_id": hotel_owner_id,
            "hotel_id": hotel_id,
        }
        result = []
        for booking in self.rows.values():
            if any(v is not None and getattr(booking, k) != v for k, v in filters.items()):
                continue
            if ending_after is not None and not booking.end_date > ending_after:
                continue
            result.append(replace(booking))
        return sorted(result, key=lambda b: b.booked_at, reverse=True)

    def list_stale_drafts(self, cur, *, booked_before: datetime, limit: int = 100) -> list[Booking]:
        stale = [
            replace(b)
            for b in self.rows.values()
            if not b.payment_status and b.booked_at is not None and b.booked_at < booked_before
        ]
        never_failed = sorted((b for b in stale if b.id not in self.sweep_failures), key=lambda b: b.booked_at)
        failed = sorted(
            (b for b in stale if b.id in self.sweep_failures),
            key=lambda b: (self.sweep_failures[b.id], b.booked_at),
        )
        return (never_failed + failed)[:limit]

    def record_sweep_failure(self, cur, booking_id: str) -> None:
        row = self.rows.get(booking_id)
        if row is not None and not row.payment_status:
            self.sweep_failures[booking_id] = utc_now()

    def delete_if_unpaid(self, cur, booking_id: str) -> Booking | None:
        row = self.rows.get(booking_id)
        if row is None or row.payment_status:
            return None
        return self.rows.pop(booking_id)


def make_booking(
    booking_id: str,
    start: date,
    end: date,
    *,
    room_id: str = "room-1",
    hotel_id: str = "hotel-1",
    hotel_owner_id: str = "owner-1",
    user_id: str = "user-123",
    payment_status: bool = True,
    payment_intent_id: str | None = None,
    booked_at: datetime | None = None,
) -> Booking:
    return Booking(
        id=booking_id,
        hotel_id=hotel_id,
        hotel_owner_id=hotel_owner_id,
        room_id=room_id,
        user_id=user_id,
        user_name="Existing Guest",
        user_email="existing@example.com",
        start_date=start,
        end_date=end,
        total_price=Decimal("100.00"),
        currency="usd",
        breakfast_included=False,
        payment_intent_id=payment_intent_id or f"pi_{booking_id}",
        payment_status=payment_status,
        booked_at=booked_at or utc_now(),
    )
