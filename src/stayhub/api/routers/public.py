"""Public-facing routes (APP_ROLE=public)."""

from fastapi import APIRouter

from stayhub.api.routes import bookings, payment_intents, webhooks_stripe

router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


router.include_router(payment_intents.router)
router.include_router(bookings.router)
router.include_router(webhooks_stripe.router)
