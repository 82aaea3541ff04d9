from enum import Enum


class NotificationEvent(str, Enum):
    ORDER_PLACED = "order_placed"
    BANK_TRANSFER_REQUESTED = "bank_transfer_requested"
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"
    ORDER_CANCELLED = "order_cancelled"
    REFUND_PROCESSED = "refund_processed"
    COURSE_ACCESS_GRANTED = "course_access_granted"
