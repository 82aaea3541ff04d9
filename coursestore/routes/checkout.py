from fastapi import APIRouter, Depends
from sqlmodel import Session

from coursestore.database import get_session
from coursestore.models.user import User
from coursestore.schemas.payment_schemas import CheckoutRequest, WalletCaptureRequest
from coursestore.services.payment_gateways import PaymentGateways, get_payment_gateways
from coursestore.services.reconciliation import capture_wallet_payment, create_checkout
from coursestore.utils.token import get_current_user

router = APIRouter()


@router.post("/checkout")
def checkout(
    data: CheckoutRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    gateways: PaymentGateways = Depends(get_payment_gateways),
):
    """Open an order and return the provider handle (redirect url, wallet order or bank details)."""
    return create_checkout(
        session,
        buyer=current_user,
        course_id=data.course_id,
        method=data.method,
        gateways=gateways,
    )


@router.post("/wallet/capture")
def wallet_capture(
    data: WalletCaptureRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
    gateways: PaymentGateways = Depends(get_payment_gateways),
):
    return capture_wallet_payment(
        session,
        buyer=current_user,
        order_id=data.order_id,
        provider_order_id=data.razorpay_order_id,
        provider_payment_id=data.razorpay_payment_id,
        signature=data.razorpay_signature,
        gateways=gateways,
    )
