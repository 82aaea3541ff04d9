from typing import Optional

from pydantic import BaseModel, ConfigDict

from coursestore.constants.order_status import OrderStatus, PaymentMethod


class CheckoutRequest(BaseModel):
    # any client-sent amount is dropped; the price comes from the catalog
    model_config = ConfigDict(extra="ignore")

    course_id: int
    method: PaymentMethod


class WalletCaptureRequest(BaseModel):
    order_id: int
    razorpay_order_id: str
    razorpay_payment_id: str
    razorpay_signature: str


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = None


class BankConfirmRequest(BaseModel):
    transaction_details: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: OrderStatus
    reason: Optional[str] = None


class RefundRequest(BaseModel):
    reason: Optional[str] = None
