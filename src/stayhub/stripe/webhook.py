"""Stripe webhook parsing for PaymentIntent events.

Only the fields the booking engine routes on are kept; the raw event,
the payload bytes and the signature header never leave this module.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import stripe

logger = logging.getLogger(__name__)

PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"


class InvalidSignatureError(Exception):
    """Stripe-Signature does not match the payload."""


class InvalidPayloadError(Exception):
    """The body is not a Stripe event we can read."""


@dataclass(frozen=True)
class PaymentIntentEvent:
    event_id: str
    event_type: str
    payment_intent_id: str | None
    booking_id: str | None = None
    amount_received: int | None = None

    @property
    def is_success(self) -> bool:
        return self.event_type == PAYMENT_INTENT_SUCCEEDED and bool(self.payment_intent_id)


def _intent_fields(event: Any) -> dict[str, Any]:
    obj = (event.get("data") or {}).get("object") or {}
    if obj.get("object") not in (None, "payment_intent"):
        return {"payment_intent_id": None}
    metadata = obj.get("metadata") or {}
    return {
        "payment_intent_id": obj.get("id"),
        "booking_id": metadata.get("booking_id"),
        "amount_received": obj.get("amount_received"),
    }


def parse_webhook(payload: bytes, signature: str, secret: str) -> PaymentIntentEvent:
    """Verify the signature and reduce the event to PaymentIntentEvent.

    Raises:
        InvalidSignatureError: Signature check failed.
        InvalidPayloadError: Body is not JSON or lacks id/type.
    """
    try:
        event = stripe.Webhook.construct_event(payload, signature, secret)
    except stripe.SignatureVerificationError as exc:
        logger.warning("stripe webhook signature rejected")
        raise InvalidSignatureError("Invalid signature") from exc
    except ValueError as exc:
        logger.warning("stripe webhook body unreadable")
        raise InvalidPayloadError("Invalid payload") from exc

    if not event.get("id") or not event.get("type"):
        raise InvalidPayloadError("Missing event id or type")

    return PaymentIntentEvent(
        event_id=event["id"],
        event_type=event["type"],
        **_intent_fields(event),
    )
