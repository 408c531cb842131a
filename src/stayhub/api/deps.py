"""FastAPI dependencies for the process-wide collaborators.

The app factory builds one Database/BookingRepository and stores it on
app.state; the Stripe client is created on first use because it needs a
secret key that read-only deployments may not have.
"""

from __future__ import annotations

from fastapi import Request

from stayhub.infra.repositories.bookings_repository import BookingRepository
from stayhub.stripe.client import StripeClient


def get_booking_repository(request: Request) -> BookingRepository:
    return request.app.state.booking_repository


def get_stripe_client(request: Request) -> StripeClient:
    state = request.app.state
    if getattr(state, "stripe_client", None) is None:
        state.stripe_client = StripeClient()
    return state.stripe_client
