import logging
import secrets
from datetime import datetime
from decimal import Decimal
from typing import Optional

from coursestore.constants.order_status import OrderStatus, PaymentMethod
from coursestore.services.payment_gateways.base import CheckoutHandle, PaymentGateway, RefundResult

logger = logging.getLogger(__name__)


def generate_transfer_reference() -> str:
    return f"BT-{datetime.utcnow():%Y%m%d}-{secrets.token_hex(4).upper()}"


class BankTransferGateway(PaymentGateway):
    """Offline transfers, confirmed by an admin once the money lands.

    No provider call is made and no webhook exists.
    """

    provider_name = "bank_transfer"
    method = PaymentMethod.bank_transfer
    initial_status = OrderStatus.awaiting_payment

    def __init__(self, *, account_name: str, iban: str, bic: str, bank_name: str, currency: str):
        self.account_name = account_name
        self.iban = iban
        self.bic = bic
        self.bank_name = bank_name
        self.currency = currency.upper()

    def create_checkout(self, *, order, course, buyer) -> CheckoutHandle:
        reference = generate_transfer_reference()
        return CheckoutHandle(
            payment_id=None,
            reference=reference,
            data={
                "reference": reference,
                "amount": str(order.amount),
                "currency": self.currency,
                "account_name": self.account_name,
                "iban": self.iban,
                "bic": self.bic,
                "bank_name": self.bank_name,
                "instructions": f"Use {reference} as the payment reference so we can match your transfer.",
            },
        )

    def refund(self, *, payment_id: Optional[str], amount: Decimal, order_id: int) -> RefundResult:
        logger.info("Bank transfer refund for order %s must be paid out manually", order_id)
        return RefundResult(reference=None, status="manual", manual=True)
