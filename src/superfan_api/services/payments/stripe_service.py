"""Stripe checkout and webhook boundary."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Optional, TypeVar

import stripe
from loguru import logger

from superfan_api.core.settings import get_settings
from superfan_api.domain.errors import ExternalServiceUnavailable

T = TypeVar("T")


class StripeService:
    """Service for handling Stripe payment operations.

    The Stripe SDK is synchronous; every call runs in a worker thread under a
    bounded timeout so a slow processor fails the request instead of hanging it.
    """

    def __init__(self, *, timeout_seconds: float | None = None) -> None:
        settings = get_settings()
        stripe.api_key = settings.stripe_secret_key
        self.webhook_secret = settings.stripe_webhook_secret
        self.timeout_seconds = timeout_seconds or settings.stripe_request_timeout_seconds

    async def _call(self, operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            logger.error("Stripe call timed out", operation=operation, timeout=self.timeout_seconds)
            raise ExternalServiceUnavailable("Payment processor timed out", operation=operation) from exc
        except stripe.StripeError as exc:
            logger.error("Stripe call failed", operation=operation, error=str(exc))
            raise ExternalServiceUnavailable("Payment processor request failed", operation=operation) from exc

    async def create_checkout_session(
        self,
        *,
        product_name: str,
        amount_cents: int,
        metadata: Dict[str, str],
        idempotency_key: str,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
        currency: str = "usd",
    ) -> stripe.checkout.Session:
        """Create a one-off payment session for a single line item.

        Args:
            product_name: Line item label shown on the hosted page
            amount_cents: Charge in minor units
            metadata: Typed purchase record flattened to strings
            idempotency_key: Stable key so retried requests reuse one session
            success_url: URL to redirect after successful payment
            cancel_url: URL to redirect after cancelled payment
            customer_email: Customer email for prefilling

        Raises:
            ExternalServiceUnavailable: If Stripe rejects the call or times out
        """

        session_data: Dict[str, Any] = {
            "mode": "payment",
            "line_items": [
                {
                    "price_data": {
                        "currency": currency,
                        "unit_amount": amount_cents,
                        "product_data": {"name": product_name},
                    },
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
        }
        if customer_email:
            session_data["customer_email"] = customer_email

        session = await self._call(
            "checkout.create",
            stripe.checkout.Session.create,
            idempotency_key=idempotency_key,
            **session_data,
        )
        logger.info(
            "Created Stripe checkout session",
            session_id=session.id,
            amount=amount_cents,
            purchase_type=metadata.get("type"),
            idempotency_key=idempotency_key,
        )
        return session

    def construct_webhook_event(self, payload: bytes, signature: str) -> stripe.Event:
        """Verify the signature header and parse the event.

        Raises:
            stripe.SignatureVerificationError: If signature verification fails
        """

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.error("Failed to verify Stripe webhook signature", error=str(e))
            raise

        logger.info("Verified Stripe webhook event", event_type=event["type"], event_id=event["id"])
        return event
