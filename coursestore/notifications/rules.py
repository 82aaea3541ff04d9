from coursestore.notifications.events import NotificationEvent
from coursestore.notifications.channels import Channel


NOTIFICATION_RULES = {

    NotificationEvent.ORDER_PLACED: {
        Channel.EMAIL_USER: True,
        Channel.INAPP_ADMIN: True,
    },

    NotificationEvent.BANK_TRANSFER_REQUESTED: {
        Channel.EMAIL_USER: True,
        Channel.INAPP_ADMIN: True,
        Channel.EMAIL_ADMIN: True,
    },

    NotificationEvent.PAYMENT_SUCCESS: {
        Channel.EMAIL_USER: True,
        Channel.INAPP_USER: True,
        Channel.INAPP_ADMIN: True,
        Channel.EMAIL_ADMIN: True,
    },

    NotificationEvent.PAYMENT_FAILED: {
        Channel.EMAIL_USER: True,
        Channel.INAPP_ADMIN: True,
    },

    NotificationEvent.ORDER_CANCELLED: {
        Channel.EMAIL_USER: True,
        Channel.INAPP_ADMIN: True,
    },

    NotificationEvent.REFUND_PROCESSED: {
        Channel.EMAIL_USER: True,
        Channel.INAPP_USER: True,
        Channel.INAPP_ADMIN: True,
        Channel.EMAIL_ADMIN: True,
    },

    NotificationEvent.COURSE_ACCESS_GRANTED: {
        Channel.EMAIL_USER: True,
        Channel.INAPP_USER: True,
    },

}

# subject lines; templates live at user_emails/<event>.html and admin_emails/<event>.html
SUBJECTS = {
    NotificationEvent.ORDER_PLACED: ("Your order #{order_id} is waiting for payment", None),
    NotificationEvent.BANK_TRANSFER_REQUESTED: (
        "Bank transfer details for order #{order_id}",
        "Bank transfer expected for order #{order_id}",
    ),
    NotificationEvent.PAYMENT_SUCCESS: (
        "Payment received for order #{order_id}",
        "New paid order #{order_id}",
    ),
    NotificationEvent.PAYMENT_FAILED: ("Payment failed for order #{order_id}", None),
    NotificationEvent.ORDER_CANCELLED: ("Order #{order_id} cancelled", None),
    NotificationEvent.REFUND_PROCESSED: (
        "Refund processed for order #{order_id}",
        "Order #{order_id} refunded",
    ),
    NotificationEvent.COURSE_ACCESS_GRANTED: ("Your course is ready: {course_title}", None),
}
