from enum import Enum


class OrderStatus(str, Enum):
    pending = "pending"
    awaiting_payment = "awaiting_payment"
    processing = "processing"
    completed = "completed"
    cancelled = "cancelled"
    refunded = "refunded"


class PaymentMethod(str, Enum):
    card = "card"
    wallet = "wallet"
    bank_transfer = "bank_transfer"


ALLOWED_TRANSITIONS = {
    "pending": ["awaiting_payment", "processing", "completed", "cancelled"],
    "awaiting_payment": ["processing", "completed", "cancelled"],
    "processing": ["completed", "cancelled"],
    "completed": ["refunded"],
    "cancelled": [],
    "refunded": []
}

# statuses a buyer or admin may still cancel from
OPEN_STATUSES = ("pending", "awaiting_payment", "processing")

# a provider success event may complete an order from these
PAYABLE_STATUSES = ("pending", "awaiting_payment", "processing")


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, [])


class OrderEventType(str, Enum):
    order_created = "order_created"
    payment_processing = "payment_processing"
    payment_completed = "payment_completed"
    payment_failed = "payment_failed"
    payment_after_close = "payment_after_close"
    amount_mismatch = "amount_mismatch"
    course_access_granted = "course_access_granted"
    course_access_revoked = "course_access_revoked"
    refunded = "refunded"
    cancelled = "cancelled"
    status_changed = "status_changed"
