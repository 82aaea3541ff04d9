"""
Provider-neutral shapes shared by every payment gateway.

Gateways translate provider payloads into ``PaymentEvent`` so the
reconciliation service runs one code path whatever network the money
came through.
"""
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional

from coursestore.constants.order_status import OrderStatus, PaymentMethod
from coursestore.exceptions import ValidationError


class Outcome(str, Enum):
    succeeded = "succeeded"
    failed = "failed"
    # money not settled yet (delayed card methods)
    pending = "pending"


@dataclass(frozen=True)
class PaymentEvent:
    provider: str
    event_type: str
    provider_payment_id: str
    outcome: Outcome
    order_ref: Optional[int] = None
    user_id: Optional[int] = None
    course_id: Optional[int] = None
    amount: Optional[Decimal] = None
    raw_payload: dict = field(default_factory=dict)


@dataclass(frozen=True)
class CheckoutHandle:
    payment_id: Optional[str]
    reference: Optional[str] = None
    # handed back to the client: redirect url, provider order id, bank details
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class RefundResult:
    reference: Optional[str]
    status: str
    manual: bool = False


def to_minor_units(amount) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(value) -> Optional[Decimal]:
    if value is None:
        return None
    return (Decimal(int(value)) / 100).quantize(Decimal("0.01"))


def int_or_none(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class PaymentGateway:
    """One instance per provider, built from immutable settings."""

    provider_name: str = ""
    method: PaymentMethod
    initial_status: OrderStatus = OrderStatus.pending
    signature_header: Optional[str] = None

    def create_checkout(self, *, order, course, buyer) -> CheckoutHandle:
        raise NotImplementedError

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> Optional[PaymentEvent]:
        raise ValidationError(f"{self.provider_name} does not send webhooks")

    def refund(self, *, payment_id: Optional[str], amount: Decimal, order_id: int) -> RefundResult:
        raise NotImplementedError
