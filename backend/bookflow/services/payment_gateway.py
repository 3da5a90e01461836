"""
Payment gateway capability used by the reservation flow.

Only the payment-intent contract lives here: create an intent for a
reservation, and request a refund against one. StripePaymentGateway
talks to Stripe; without a configured secret key it runs in mock mode
and returns deterministic ``mock_pi_*`` intents so local flows work.

Every provider failure is raised as PaymentGatewayException. The SDK is
blocking, so calls run in a worker thread.
"""

import asyncio
from dataclasses import dataclass
import logging
from typing import Any, Dict, Optional, Protocol

import stripe

from ..core.config import settings
from ..core.exceptions import PaymentGatewayException

logger = logging.getLogger(__name__)

REFUND_REASONS = frozenset({"duplicate", "fraudulent", "requested_by_customer"})


def idempotency_key(reservation_id: str, amount_cents: int, attempt: int) -> str:
    return f"reservation:{reservation_id}:{amount_cents}:attempt-{attempt}"


@dataclass(frozen=True)
class PaymentIntentResult:
    payment_intent_id: str
    client_secret: str
    amount_cents: int
    currency: str
    status: str


@dataclass(frozen=True)
class RefundRecord:
    refund_id: str
    payment_intent_id: str
    amount_cents: Optional[int]
    status: str
    reason: Optional[str] = None


class PaymentGateway(Protocol):
    async def create_payment_intent(
        self,
        reservation_id: str,
        amount_cents: int,
        currency: str,
        metadata: Optional[Dict[str, str]] = None,
        attempt: int = 1,
    ) -> PaymentIntentResult:
        ...

    async def request_refund(
        self,
        payment_intent_id: str,
        amount_cents: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> RefundRecord:
        ...


class StripePaymentGateway:
    """
    Stripe-backed gateway.

    Requests are idempotent per reservation, amount and attempt. Stripe
    replays the stored outcome for a reused key, errors included, so each
    payment attempt against a reservation carries its own number.
    """

    def __init__(self, secret_key: Optional[str] = None):
        key = secret_key
        if key is None and settings.stripe_secret_key is not None:
            key = settings.stripe_secret_key.get_secret_value()

        self.stripe_configured = bool(key)
        if self.stripe_configured:
            stripe.api_key = key
            stripe.max_network_retries = 1
            logger.info("Stripe payment gateway configured")
        else:
            logger.warning("Stripe secret key not configured - gateway will operate in mock mode")

    async def create_payment_intent(
        self,
        reservation_id: str,
        amount_cents: int,
        currency: str,
        metadata: Optional[Dict[str, str]] = None,
        attempt: int = 1,
    ) -> PaymentIntentResult:
        if amount_cents <= 0:
            raise PaymentGatewayException(
                "Payment intents require a positive amount", reservation_id=reservation_id
            )

        if not self.stripe_configured:
            logger.info("Mock payment intent for reservation %s", reservation_id)
            return PaymentIntentResult(
                payment_intent_id=f"mock_pi_{reservation_id}",
                client_secret=f"mock_pi_{reservation_id}_secret_mock",
                amount_cents=amount_cents,
                currency=currency,
                status="requires_payment_method",
            )

        stripe_metadata = {
            "reservation_id": reservation_id,
            "platform": "bookflow",
            "attempt": str(attempt),
        }
        stripe_metadata.update(metadata or {})
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                amount=amount_cents,
                currency=currency,
                metadata=stripe_metadata,
                automatic_payment_methods={"enabled": True},
                idempotency_key=idempotency_key(reservation_id, amount_cents, attempt),
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating payment intent for {reservation_id}: {str(e)}")
            raise PaymentGatewayException(
                f"Failed to create payment intent: {e.user_message or str(e)}",
                reservation_id=reservation_id,
                provider_code=getattr(e, "code", None),
            ) from e

        logger.info(f"Created payment intent {intent.id} for reservation {reservation_id}")
        return PaymentIntentResult(
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            amount_cents=intent.amount,
            currency=intent.currency,
            status=intent.status,
        )

    async def request_refund(
        self,
        payment_intent_id: str,
        amount_cents: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> RefundRecord:
        if amount_cents is not None and amount_cents <= 0:
            raise PaymentGatewayException("Refund amount must be positive")
        stripe_reason = reason if reason in REFUND_REASONS else None

        if not self.stripe_configured:
            logger.info("Mock refund for payment intent %s", payment_intent_id)
            return RefundRecord(
                refund_id=f"mock_re_{payment_intent_id}",
                payment_intent_id=payment_intent_id,
                amount_cents=amount_cents,
                status="succeeded",
                reason=stripe_reason,
            )

        params: Dict[str, Any] = {"payment_intent": payment_intent_id}
        if amount_cents is not None:
            params["amount"] = amount_cents
        if stripe_reason:
            params["reason"] = stripe_reason
        if reason and not stripe_reason:
            params["metadata"] = {"reason": reason}

        try:
            refund = await asyncio.to_thread(stripe.Refund.create, **params)
        except stripe.StripeError as e:
            logger.error(f"Stripe error refunding {payment_intent_id}: {str(e)}")
            raise PaymentGatewayException(
                f"Failed to refund payment: {e.user_message or str(e)}",
                provider_code=getattr(e, "code", None),
            ) from e

        logger.info(f"Refund {refund.id} requested for payment intent {payment_intent_id}")
        return RefundRecord(
            refund_id=refund.id,
            payment_intent_id=payment_intent_id,
            amount_cents=refund.amount,
            status=refund.status,
            reason=stripe_reason,
        )
