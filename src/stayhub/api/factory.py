"""FastAPI application factory.

APP_ROLE decides which routers are mounted: "public" serves guests, hotel
owners and the Stripe webhook; "worker" additionally serves /tasks/* for
the scheduler. Shared collaborators live on app.state so tests can inject
in-memory doubles.
"""

from __future__ import annotations

import os
from typing import Literal

import psycopg2
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from stayhub.infra.db import Database
from stayhub.infra.repositories.bookings_repository import BookingRepository
from stayhub.observability.correlation import CORRELATION_ID_HEADER, correlation_scope
from stayhub.observability.logging import configure_logging, get_logger
from stayhub.observability.redaction import safe_log_context
from stayhub.stripe.client import PaymentProviderError, StripeClient

from .routers import public, worker

AppRole = Literal["public", "worker"]

logger = get_logger(__name__)


def _resolve_role(role: AppRole | None) -> AppRole:
    value = role or os.environ.get("APP_ROLE", "public")
    if value not in ("public", "worker"):
        raise ValueError(f"Unknown APP_ROLE: {value!r}")
    return value  # type: ignore[return-value]


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(PaymentProviderError)
    async def payment_provider_error_handler(request: Request, exc: PaymentProviderError) -> JSONResponse:
        logger.error(
            "payment provider failure",
            extra={"extra_fields": safe_log_context(path=request.url.path, error=str(exc))},
        )
        return JSONResponse(status_code=502, content={"detail": "Payment provider unavailable"})

    @app.exception_handler(psycopg2.Error)
    async def database_error_handler(request: Request, exc: psycopg2.Error) -> JSONResponse:
        logger.error(
            "database failure",
            exc_info=exc,
            extra={"extra_fields": safe_log_context(path=request.url.path)},
        )
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


def create_app(
    role: AppRole | None = None,
    *,
    booking_repository: BookingRepository | None = None,
    stripe_client: StripeClient | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        role: "public" or "worker". Falls back to APP_ROLE, then "public".
        booking_repository: Shared repository. Defaults to one backed by
            DATABASE_URL.
        stripe_client: Shared Stripe client. Built lazily from
            STRIPE_SECRET_KEY on first use when omitted.
    """
    resolved_role = _resolve_role(role)
    configure_logging()

    app = FastAPI(title="StayHub Bookings", docs_url=None, redoc_url=None)
    app.state.role = resolved_role
    app.state.booking_repository = booking_repository or BookingRepository(Database.from_env())
    app.state.stripe_client = stripe_client

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        with correlation_scope(request.headers.get(CORRELATION_ID_HEADER)) as cid:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response

    _install_error_handlers(app)

    app.include_router(public.router)
    if resolved_role == "worker":
        app.include_router(worker.router)
    return app
