import logging

from coursestore.notifications.rules import NOTIFICATION_RULES, SUBJECTS
from coursestore.notifications.channels import Channel
from coursestore.notifications.email_handlers import send_user_email, send_admin_email
from coursestore.services.notification_service import create_notification
from coursestore.models.notifications import NotificationChannel, RecipientRole
from coursestore.notifications.events import NotificationEvent

logger = logging.getLogger(__name__)


def dispatch_order_event(
    *,
    event: NotificationEvent,
    order,
    user,
    session,
    extra: dict | None = None,
    notify_user: bool = True,
    notify_admin: bool = True,
):
    """
    Central notification dispatcher.

    Handles:
    - user / admin in-app notifications
    - user email
    - admin email

    Runs after the order change is committed. Failures are logged and
    never reach the caller.
    """

    rules = NOTIFICATION_RULES.get(event, {})
    ctx = {
        "order": order,
        "order_id": order.id,
        "amount": order.amount,
        "status": order.status,
        "first_name": getattr(user, "first_name", ""),
        **(extra or {}),
    }
    user_subject, admin_subject = SUBJECTS.get(event, ("Order #{order_id} update", None))
    title = user_subject.format(**ctx)

    # -------------------------
    # IN-APP NOTIFICATIONS
    # -------------------------
    try:
        if notify_user and user and rules.get(Channel.INAPP_USER):
            create_notification(
                session=session,
                recipient_role=RecipientRole.customer,
                user=user,
                trigger_source=event.value,
                related_id=order.id,
                title=title,
                content=ctx.get("user_content", title),
                channel=NotificationChannel.system,
            )

        if notify_admin and rules.get(Channel.INAPP_ADMIN):
            create_notification(
                session=session,
                recipient_role=RecipientRole.admin,
                user=None,
                trigger_source=event.value,
                related_id=order.id,
                title=(admin_subject or user_subject).format(**ctx),
                content=ctx.get("admin_content", f"Order #{order.id} is now {order.status}"),
                channel=NotificationChannel.system,
            )
        session.commit()
    except Exception:
        session.rollback()
        logger.exception("In-app notification for %s on order %s failed", event.value, order.id)

    # -------------------------
    # USER EMAIL
    # -------------------------
    if notify_user and user and rules.get(Channel.EMAIL_USER):
        try:
            send_user_email(
                template=f"user_emails/{event.value}.html",
                subject=title,
                user=user,
                **ctx,
            )
        except Exception:
            logger.exception("User email for %s on order %s failed", event.value, order.id)

    # -------------------------
    # ADMIN EMAIL
    # -------------------------
    if notify_admin and rules.get(Channel.EMAIL_ADMIN) and admin_subject:
        try:
            send_admin_email(
                template=f"admin_emails/{event.value}.html",
                subject=admin_subject.format(**ctx),
                customer=user,
                **ctx,
            )
        except Exception:
            logger.exception("Admin email for %s on order %s failed", event.value, order.id)
