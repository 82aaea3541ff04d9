from functools import lru_cache

from coursestore.config import settings
from coursestore.exceptions import NotFoundError, ValidationError
from coursestore.services.payment_gateways.bank_transfer import BankTransferGateway
from coursestore.services.payment_gateways.base import (
    CheckoutHandle,
    Outcome,
    PaymentEvent,
    PaymentGateway,
    RefundResult,
)
from coursestore.services.payment_gateways.razorpay_gateway import RazorpayGateway
from coursestore.services.payment_gateways.stripe_gateway import StripeCheckoutGateway


class PaymentGateways:
    """Gateways keyed by payment method and by provider name."""

    def __init__(self, *gateways: PaymentGateway):
        self._by_method = {g.method.value: g for g in gateways}
        self._by_provider = {g.provider_name: g for g in gateways}

    def for_method(self, method) -> PaymentGateway:
        key = getattr(method, "value", method)
        gateway = self._by_method.get(key)
        if not gateway:
            raise ValidationError(f"Unsupported payment method: {key}")
        return gateway

    def for_provider(self, provider: str) -> PaymentGateway:
        gateway = self._by_provider.get(provider)
        if not gateway:
            raise NotFoundError(f"Unknown payment provider: {provider}")
        return gateway


def build_payment_gateways(config) -> PaymentGateways:
    timeout = config.PROVIDER_TIMEOUT_SECONDS
    return PaymentGateways(
        StripeCheckoutGateway(
            secret_key=config.STRIPE_SECRET_KEY,
            webhook_secret=config.STRIPE_WEBHOOK_SECRET,
            currency=config.CURRENCY,
            success_url=f"{config.FRONTEND_URL}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{config.FRONTEND_URL}/checkout/cancel",
            timeout=timeout,
        ),
        RazorpayGateway(
            key_id=config.RAZORPAY_KEY_ID,
            key_secret=config.RAZORPAY_KEY_SECRET,
            webhook_secret=config.RAZORPAY_WEBHOOK_SECRET,
            currency=config.CURRENCY,
            timeout=timeout,
        ),
        BankTransferGateway(
            account_name=config.BANK_ACCOUNT_NAME,
            iban=config.BANK_IBAN,
            bic=config.BANK_BIC,
            bank_name=config.BANK_NAME,
            currency=config.CURRENCY,
        ),
    )


@lru_cache
def get_payment_gateways() -> PaymentGateways:
    return build_payment_gateways(settings)


__all__ = [
    "BankTransferGateway",
    "CheckoutHandle",
    "Outcome",
    "PaymentEvent",
    "PaymentGateway",
    "PaymentGateways",
    "RazorpayGateway",
    "RefundResult",
    "StripeCheckoutGateway",
    "build_payment_gateways",
    "get_payment_gateways",
]
