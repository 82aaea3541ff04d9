import json
import logging
from decimal import Decimal
from typing import Optional

import stripe

from coursestore.constants.order_status import PaymentMethod
from coursestore.exceptions import ProviderError, SignatureError
from coursestore.services.payment_gateways.base import (
    CheckoutHandle,
    Outcome,
    PaymentEvent,
    PaymentGateway,
    RefundResult,
    from_minor_units,
    int_or_none,
    to_minor_units,
)

logger = logging.getLogger(__name__)

SUCCEEDED_EVENTS = {"checkout.session.async_payment_succeeded"}
FAILED_EVENTS = {"checkout.session.async_payment_failed", "checkout.session.expired"}


class StripeCheckoutGateway(PaymentGateway):
    """Hosted Stripe Checkout for card payments."""

    provider_name = "stripe"
    method = PaymentMethod.card
    signature_header = "stripe-signature"

    def __init__(
        self,
        *,
        secret_key: str,
        webhook_secret: str,
        currency: str,
        success_url: str,
        cancel_url: str,
        timeout: float,
    ):
        self.webhook_secret = webhook_secret
        self.currency = currency.lower()
        self.success_url = success_url
        self.cancel_url = cancel_url
        self.client = stripe.StripeClient(
            secret_key,
            http_client=stripe.RequestsClient(timeout=timeout),
            max_network_retries=0,
        )

    def _provider_error(self, action: str, exc: stripe.StripeError) -> ProviderError:
        logger.error("Stripe %s failed: %s", action, exc)
        if isinstance(exc, stripe.APIConnectionError):
            return ProviderError(f"Stripe {action}: no response ({exc})", timeout=True)
        if isinstance(exc, (stripe.RateLimitError, stripe.APIError)):
            return ProviderError(f"Stripe {action}: {exc}", retryable=True)
        return ProviderError(f"Stripe {action}: {exc}")

    def create_checkout(self, *, order, course, buyer) -> CheckoutHandle:
        product_data = {"name": course.title}
        if course.short_description:
            product_data["description"] = course.short_description
        if course.image_url:
            product_data["images"] = [course.image_url]

        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": self.currency,
                        "product_data": product_data,
                        # minor units, from the order snapshot
                        "unit_amount": to_minor_units(order.amount),
                    },
                    "quantity": 1,
                }
            ],
            "success_url": self.success_url,
            "cancel_url": self.cancel_url,
            "customer_email": buyer.email,
            "client_reference_id": str(buyer.id),
            "metadata": {
                "order_id": str(order.id),
                "user_id": str(buyer.id),
                "course_id": str(course.id),
            },
        }

        try:
            checkout = self.client.checkout.sessions.create(
                params=params,
                options={"idempotency_key": f"checkout-order-{order.id}"},
            )
        except stripe.StripeError as exc:
            raise self._provider_error("checkout", exc)

        return CheckoutHandle(
            payment_id=checkout.id,
            data={"session_id": checkout.id, "url": checkout.url},
        )

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> Optional[PaymentEvent]:
        if not signature:
            raise SignatureError("Missing Stripe signature")

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"),
                signature,
                self.webhook_secret,
                stripe.Webhook.DEFAULT_TOLERANCE,
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError):
            raise SignatureError("Invalid Stripe signature")

        try:
            event = json.loads(payload)
        except ValueError:
            logger.warning("Stripe webhook with a valid signature but unreadable body")
            return None

        return self.normalize_event(event)

    def normalize_event(self, event: dict) -> Optional[PaymentEvent]:
        event_type = event.get("type")
        session_obj = (event.get("data") or {}).get("object") or {}

        if event_type == "checkout.session.completed":
            # delayed methods complete the session before the money settles
            if session_obj.get("payment_status") in ("paid", "no_payment_required"):
                outcome = Outcome.succeeded
            else:
                outcome = Outcome.pending
        elif event_type in SUCCEEDED_EVENTS:
            outcome = Outcome.succeeded
        elif event_type in FAILED_EVENTS:
            outcome = Outcome.failed
        else:
            logger.info("Ignoring Stripe event %s", event_type)
            return None

        session_id = session_obj.get("id")
        if not session_id:
            logger.warning("Stripe %s event without a session id", event_type)
            return None

        metadata = session_obj.get("metadata") or {}
        return PaymentEvent(
            provider=self.provider_name,
            event_type=event_type,
            provider_payment_id=session_id,
            outcome=outcome,
            order_ref=int_or_none(metadata.get("order_id")),
            user_id=int_or_none(metadata.get("user_id") or session_obj.get("client_reference_id")),
            course_id=int_or_none(metadata.get("course_id")),
            amount=from_minor_units(session_obj.get("amount_total")),
            raw_payload=event,
        )

    def refund(self, *, payment_id: Optional[str], amount: Decimal, order_id: int) -> RefundResult:
        if not payment_id:
            raise ProviderError("Order has no Stripe session to refund")

        try:
            checkout = self.client.checkout.sessions.retrieve(payment_id)
            payment_intent = checkout.payment_intent
            if not payment_intent:
                raise ProviderError(f"Stripe session {payment_id} has no payment to refund")
            if not isinstance(payment_intent, str):
                payment_intent = payment_intent.id

            refund = self.client.refunds.create(
                params={
                    "payment_intent": payment_intent,
                    "amount": to_minor_units(amount),
                    "metadata": {"order_id": str(order_id)},
                },
                options={"idempotency_key": f"refund-order-{order_id}"},
            )
        except stripe.StripeError as exc:
            raise self._provider_error("refund", exc)

        return RefundResult(reference=refund.id, status=refund.status or "pending")
