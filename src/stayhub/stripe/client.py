"""Thin wrapper around Stripe SDK.

Purpose:
- Encapsulate PaymentIntent calls so domain code doesn't import stripe.* directly.
- Translate Stripe errors into two domain exceptions.
- Never log full Stripe payloads or client secrets (only IDs + correlation metadata).
"""

from __future__ import annotations

import logging
import os
from typing import Any

import stripe

logger = logging.getLogger(__name__)


class PaymentIntentNotFoundError(Exception):
    """Stripe has no PaymentIntent with the given id."""


class PaymentProviderError(Exception):
    """Stripe rejected the call or could not be reached."""


def _intent_to_dict(intent: Any) -> dict[str, Any]:
    return {
        "id": intent.id,
        "client_secret": intent.client_secret,
        "amount": intent.amount,
        "currency": intent.currency,
        "status": intent.status,
    }


def _translate(exc: stripe.StripeError, payment_intent_id: str | None = None) -> Exception:
    if isinstance(exc, stripe.InvalidRequestError) and exc.code == "resource_missing":
        return PaymentIntentNotFoundError(f"PaymentIntent not found: {payment_intent_id}")
    return PaymentProviderError(str(exc.user_message or type(exc).__name__))


class StripeClient:
    """Wrapper for Stripe PaymentIntent operations.

    Usage:
        client = StripeClient()  # reads STRIPE_SECRET_KEY from env
        intent = client.create_payment_intent(
            amount_cents=45000,
            currency="usd",
            idempotency_key="booking:abc123:payment_intent",
        )
        client_secret = intent["client_secret"]
    """

    def __init__(self, api_key: str | None = None) -> None:
        """Initialize the Stripe client.

        Args:
            api_key: Stripe secret key. Defaults to STRIPE_SECRET_KEY env var.

        Raises:
            RuntimeError: If no API key is provided or found in environment.
        """
        api_key = api_key or os.environ.get("STRIPE_SECRET_KEY")
        if not api_key:
            raise RuntimeError(
                "Stripe API key not provided. "
                "Set STRIPE_SECRET_KEY or pass api_key parameter."
            )
        self._client = stripe.StripeClient(api_key)

    def create_payment_intent(
        self,
        *,
        amount_cents: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Create a PaymentIntent with automatic payment methods.

        Args:
            amount_cents: Amount in minor units.
            currency: Currency code (e.g., 'usd').
            idempotency_key: Idempotency key for safe retries.
            metadata: Optional metadata to attach to the intent.
            correlation_id: Optional correlation ID for logging.

        Returns:
            Dict with id, client_secret, amount, currency and status.

        Raises:
            PaymentProviderError: On any Stripe failure.
        """
        params: dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency.lower(),
            "automatic_payment_methods": {"enabled": True},
        }
        if metadata:
            params["metadata"] = metadata

        try:
            intent = self._client.v1.payment_intents.create(
                params=params,
                options={"idempotency_key": idempotency_key},
            )
        except stripe.StripeError as exc:
            logger.error(
                "stripe_payment_intent_create_failed",
                extra={"extra_fields": {"correlation_id": correlation_id}},
            )
            raise _translate(exc) from exc

        logger.info(
            "stripe_payment_intent_created",
            extra={"extra_fields": {"payment_intent_id": intent.id, "correlation_id": correlation_id}},
        )
        return _intent_to_dict(intent)

    def retrieve_payment_intent(
        self,
        payment_intent_id: str,
        *,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Retrieve an existing PaymentIntent.

        Raises:
            PaymentIntentNotFoundError: If Stripe does not know the id.
            PaymentProviderError: On any other Stripe failure.
        """
        try:
            intent = self._client.v1.payment_intents.retrieve(payment_intent_id)
        except stripe.StripeError as exc:
            raise _translate(exc, payment_intent_id) from exc

        logger.info(
            "stripe_payment_intent_retrieved",
            extra={"extra_fields": {"payment_intent_id": intent.id, "correlation_id": correlation_id}},
        )
        return _intent_to_dict(intent)

    def update_payment_intent_amount(
        self,
        payment_intent_id: str,
        *,
        amount_cents: int,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Set a new amount on an unconfirmed PaymentIntent."""
        try:
            intent = self._client.v1.payment_intents.update(
                payment_intent_id,
                params={"amount": amount_cents},
            )
        except stripe.StripeError as exc:
            raise _translate(exc, payment_intent_id) from exc

        logger.info(
            "stripe_payment_intent_updated",
            extra={"extra_fields": {"payment_intent_id": intent.id, "correlation_id": correlation_id}},
        )
        return _intent_to_dict(intent)

    def cancel_payment_intent(
        self,
        payment_intent_id: str,
        *,
        correlation_id: str | None = None,
    ) -> dict[str, Any]:
        """Cancel a PaymentIntent that will never be confirmed."""
        try:
            intent = self._client.v1.payment_intents.cancel(payment_intent_id)
        except stripe.StripeError as exc:
            raise _translate(exc, payment_intent_id) from exc

        logger.info(
            "stripe_payment_intent_cancelled",
            extra={"extra_fields": {"payment_intent_id": intent.id, "correlation_id": correlation_id}},
        )
        return _intent_to_dict(intent)
