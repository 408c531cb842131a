"""Worker routes for booking maintenance (APP_ROLE=worker only)."""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, Query

from stayhub.api.deps import get_booking_repository, get_stripe_client
from stayhub.api.task_auth import require_task_auth
from stayhub.domain.stale_drafts import sweep_stale_drafts
from stayhub.infra.repositories.bookings_repository import BookingRepository
from stayhub.observability.correlation import get_correlation_id
from stayhub.observability.logging import get_logger
from stayhub.observability.redaction import safe_log_context
from stayhub.stripe.client import StripeClient

logger = get_logger(__name__)

router = APIRouter(prefix="/tasks/bookings", tags=["tasks"])


@router.post("/sweep-stale-drafts")
def handle_sweep_stale_drafts(
    older_than_hours: float | None = Query(None, gt=0, description="Overrides STALE_DRAFT_TTL_HOURS"),
    batch_size: int = Query(100, ge=1, le=1000),
    caller: str = Depends(require_task_auth),
    repo: BookingRepository = Depends(get_booking_repository),
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> dict:
    """Cancel and delete unpaid drafts abandoned at checkout.

    Meant for a periodic scheduler job; running it twice is harmless.
    """
    correlation_id = get_correlation_id()
    logger.info(
        "stale draft sweep triggered",
        extra={"extra_fields": safe_log_context(correlationId=correlation_id, caller=caller)},
    )
    result = sweep_stale_drafts(
        repo=repo,
        stripe_client=stripe_client,
        older_than=timedelta(hours=older_than_hours) if older_than_hours else None,
        batch_size=batch_size,
        correlation_id=correlation_id,
    )
    return {"ok": True, **result}
