"""Stale draft sweep - release unpaid bookings abandoned at checkout.

For each unpaid booking older than the TTL:
- Cancel its PaymentIntent (an intent Stripe no longer knows counts as cancelled)
- Delete the row, guarded by NOT payment_status so a booking confirmed in
  the meantime survives

Provider failures are logged, counted and stamped on the row; the row stays
for a later sweep but moves behind drafts that were never attempted.
"""

from __future__ import annotations

import logging
import os
from datetime import timedelta
from typing import TYPE_CHECKING

from stayhub.infra.time import utc_now
from stayhub.stripe.client import PaymentIntentNotFoundError, PaymentProviderError

if TYPE_CHECKING:
    from stayhub.infra.repositories.bookings_repository import BookingRepository
    from stayhub.stripe.client import StripeClient

logger = logging.getLogger(__name__)

DEFAULT_TTL_HOURS = 24


def stale_draft_ttl() -> timedelta:
    return timedelta(hours=float(os.environ.get("STALE_DRAFT_TTL_HOURS", DEFAULT_TTL_HOURS)))


def sweep_stale_drafts(
    *,
    repo: BookingRepository,
    stripe_client: StripeClient,
    older_than: timedelta | None = None,
    batch_size: int = 100,
    correlation_id: str | None = None,
) -> dict[str, int]:
    """Cancel and delete unpaid bookings older than the TTL.

    Returns:
        Dict with examined, cancelled and failed counts.
    """
    cutoff = utc_now() - (older_than if older_than is not None else stale_draft_ttl())

    with repo.txn() as cur:
        drafts = repo.list_stale_drafts(cur, booked_before=cutoff, limit=batch_size)

    cancelled = 0
    failed = 0
    for draft in drafts:
        try:
            stripe_client.cancel_payment_intent(
                draft.payment_intent_id,
                correlation_id=correlation_id,
            )
        except PaymentIntentNotFoundError:
            pass
        except PaymentProviderError:
            failed += 1
            with repo.txn() as cur:
                repo.record_sweep_failure(cur, draft.id)
            logger.warning(
                "stale_draft_cancel_failed",
                extra={"extra_fields": {"booking_id": draft.id, "correlation_id": correlation_id}},
            )
            continue

        with repo.txn() as cur:
            deleted = repo.delete_if_unpaid(cur, draft.id)
        if deleted is not None:
            cancelled += 1

    logger.info(
        "stale_drafts_swept",
        extra={
            "extra_fields": {
                "examined": len(drafts),
                "cancelled": cancelled,
                "failed": failed,
                "correlation_id": correlation_id,
            }
        },
    )
    return {"examined": len(drafts), "cancelled": cancelled, "failed": failed}
