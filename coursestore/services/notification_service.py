from typing import Optional

from sqlmodel import Session, select
from coursestore.models.notifications import (
    Notification,
    RecipientRole,
    NotificationChannel,
    NotificationStatus,
)
from coursestore.models.user import User

def create_notification(
    *,
    session: Session,
    recipient_role: RecipientRole,
    user: User | None,
    trigger_source: str,
    related_id: Optional[int],
    title: str,
    content: str,
    channel: NotificationChannel = NotificationChannel.system,
):
    notification = Notification(
        recipient_role=recipient_role,
        user_id=user.id if user else None,
        trigger_source=trigger_source,
        related_id=related_id,
        title=title,
        content=content,
        channel=channel,
        status=NotificationStatus.sent,
    )
    session.add(notification)
    session.flush()
    return notification


def list_notifications(
    session: Session,
    *,
    recipient_role: RecipientRole,
    user_id: Optional[int] = None,
    trigger_source: Optional[str] = None,
):
    query = select(Notification).where(Notification.recipient_role == recipient_role)
    if user_id is not None:
        query = query.where(Notification.user_id == user_id)
    if trigger_source:
        query = query.where(Notification.trigger_source == trigger_source)
    return query.order_by(Notification.created_at.desc())
