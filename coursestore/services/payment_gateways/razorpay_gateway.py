import json
import logging
from decimal import Decimal
from typing import Optional

import razorpay
import requests

from coursestore.constants.order_status import PaymentMethod
from coursestore.exceptions import ProviderError, SignatureError, ValidationError
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

SUCCEEDED_EVENTS = {"payment.captured", "order.paid"}
FAILED_EVENTS = {"payment.failed"}


class RazorpayGateway(PaymentGateway):
    """Razorpay Checkout (UPI, wallets, netbanking).

    The provider order id is the payment id stored on our order; the
    client-side capture and the webhook both resolve through it.
    """

    provider_name = "razorpay"
    method = PaymentMethod.wallet
    signature_header = "x-razorpay-signature"

    def __init__(self, *, key_id: str, key_secret: str, webhook_secret: str, currency: str, timeout: float):
        self.key_id = key_id
        self.webhook_secret = webhook_secret
        self.currency = currency.upper()
        self.timeout = timeout
        self.client = razorpay.Client(auth=(key_id, key_secret))

    def _call(self, action: str, func, *args):
        try:
            return func(*args, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            logger.error("Razorpay %s timed out: %s", action, exc)
            raise ProviderError(f"Razorpay {action} timed out", timeout=True)
        except requests.exceptions.RequestException as exc:
            logger.error("Razorpay %s connection failed: %s", action, exc)
            raise ProviderError(f"Razorpay {action}: {exc}", retryable=True)
        except (razorpay.errors.ServerError, razorpay.errors.GatewayError) as exc:
            logger.error("Razorpay %s failed upstream: %s", action, exc)
            raise ProviderError(f"Razorpay {action}: {exc}", retryable=True)
        except razorpay.errors.BadRequestError as exc:
            logger.error("Razorpay %s rejected: %s", action, exc)
            raise ProviderError(f"Razorpay {action}: {exc}")

    def create_checkout(self, *, order, course, buyer) -> CheckoutHandle:
        provider_order = self._call(
            "order create",
            self.client.order.create,
            {
                "amount": to_minor_units(order.amount),
                "currency": self.currency,
                "receipt": f"order_{order.id}",
                "notes": {
                    "order_id": order.id,
                    "user_id": buyer.id,
                    "course_id": course.id,
                    "user_email": buyer.email,
                    "course_title": course.title,
                },
            },
        )

        return CheckoutHandle(
            payment_id=provider_order["id"],
            data={
                "razorpay_order_id": provider_order["id"],
                "razorpay_key": self.key_id,
                "amount": str(order.amount),
                "currency": self.currency,
                "user_email": buyer.email,
                "user_name": f"{buyer.first_name} {buyer.last_name}",
            },
        )

    def verify_payment_signature(self, provider_order_id: str, provider_payment_id: str, signature: str):
        try:
            self.client.utility.verify_payment_signature({
                "razorpay_order_id": provider_order_id,
                "razorpay_payment_id": provider_payment_id,
                "razorpay_signature": signature,
            })
        except razorpay.errors.SignatureVerificationError:
            raise SignatureError("Payment verification failed")

    def capture(self, *, provider_order_id: str, provider_payment_id: str, signature: str) -> PaymentEvent:
        """Verify the checkout callback and settle an authorized payment."""
        self.verify_payment_signature(provider_order_id, provider_payment_id, signature)

        payment = self._call("payment fetch", self.client.payment.fetch, provider_payment_id)
        if payment.get("order_id") != provider_order_id:
            raise ValidationError("Payment does not belong to this order")

        if payment.get("status") == "authorized":
            payment = self._call(
                "payment capture",
                self.client.payment.capture,
                provider_payment_id,
                payment["amount"],
                {"currency": payment.get("currency") or self.currency},
            )

        status = payment.get("status")
        if status == "captured":
            outcome = Outcome.succeeded
        elif status == "failed":
            outcome = Outcome.failed
        else:
            outcome = Outcome.pending

        return self._payment_event(
            event_type=f"capture.{status}",
            provider_order_id=provider_order_id,
            outcome=outcome,
            notes=payment.get("notes"),
            amount=payment.get("amount"),
            raw=payment,
        )

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> Optional[PaymentEvent]:
        if not signature:
            raise SignatureError("Missing Razorpay signature")

        try:
            self.client.utility.verify_webhook_signature(
                payload.decode("utf-8"), signature, self.webhook_secret
            )
        except (razorpay.errors.SignatureVerificationError, UnicodeDecodeError):
            raise SignatureError("Invalid Razorpay signature")

        try:
            body = json.loads(payload)
        except ValueError:
            logger.warning("Razorpay webhook with a valid signature but unreadable body")
            return None

        event_type = body.get("event")
        if event_type in SUCCEEDED_EVENTS:
            outcome = Outcome.succeeded
        elif event_type in FAILED_EVENTS:
            outcome = Outcome.failed
        else:
            logger.info("Ignoring Razorpay event %s", event_type)
            return None

        entities = body.get("payload") or {}
        payment = (entities.get("payment") or {}).get("entity") or {}
        provider_order = (entities.get("order") or {}).get("entity") or {}

        provider_order_id = payment.get("order_id") or provider_order.get("id")
        if not provider_order_id:
            logger.warning("Razorpay %s event without an order id", event_type)
            return None

        amount = payment.get("amount") if payment else provider_order.get("amount_paid")
        return self._payment_event(
            event_type=event_type,
            provider_order_id=provider_order_id,
            outcome=outcome,
            notes=provider_order.get("notes") or payment.get("notes"),
            amount=amount,
            raw=body,
        )

    def _payment_event(self, *, event_type, provider_order_id, outcome, notes, amount, raw) -> PaymentEvent:
        # razorpay sends an empty list when no notes were set
        if not isinstance(notes, dict):
            notes = {}
        return PaymentEvent(
            provider=self.provider_name,
            event_type=event_type,
            provider_payment_id=provider_order_id,
            outcome=outcome,
            order_ref=int_or_none(notes.get("order_id")),
            user_id=int_or_none(notes.get("user_id")),
            course_id=int_or_none(notes.get("course_id")),
            amount=from_minor_units(amount),
            raw_payload=raw,
        )

    def refund(self, *, payment_id: Optional[str], amount: Decimal, order_id: int) -> RefundResult:
        if not payment_id:
            raise ProviderError("Order has no Razorpay order to refund")

        payments = self._call("order payments", self.client.order.payments, payment_id)
        captured = [p for p in payments.get("items", []) if p.get("status") == "captured"]
        if not captured:
            raise ProviderError(f"No captured Razorpay payment for {payment_id}")

        payment = captured[0]
        minor = to_minor_units(amount)

        # Razorpay has no idempotency key; a refund already on the payment wins
        if (payment.get("amount_refunded") or 0) >= minor:
            existing = self._call("refund lookup", self.client.payment.fetch_multiple_refund, payment["id"])
            refunds = [r for r in existing.get("items", []) if r.get("status") != "failed"]
            latest = refunds[0] if refunds else {}
            logger.warning(
                "Razorpay payment %s already refunded for order %s, reusing %s",
                payment["id"], order_id, latest.get("id"),
            )
            return RefundResult(reference=latest.get("id"), status=latest.get("status") or "processed")

        refund = self._call(
            "refund",
            self.client.payment.refund,
            payment["id"],
            {
                "amount": minor,
                "receipt": f"refund_order_{order_id}",
                "notes": {"order_id": order_id},
            },
        )
        return RefundResult(reference=refund.get("id"), status=refund.get("status") or "pending")
