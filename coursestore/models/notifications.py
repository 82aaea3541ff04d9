from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class RecipientRole(str, Enum):
    admin = "admin"
    customer = "customer"


class NotificationChannel(str, Enum):
    email = "email"
    system = "system"


class NotificationStatus(str, Enum):
    sent = "sent"
    failed = "failed"


class Notification(SQLModel, table=True):
    """In-app message about an order, shown in the admin panel or the buyer's inbox."""

    id: Optional[int] = Field(default=None, primary_key=True)

    recipient_role: RecipientRole = Field(index=True)
    # empty for admin-wide notifications
    user_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)

    trigger_source: str = Field(index=True)  # NotificationEvent value
    related_id: Optional[int] = Field(default=None, index=True)  # order id

    title: str
    content: str

    channel: NotificationChannel = NotificationChannel.system
    status: NotificationStatus = NotificationStatus.sent

    created_at: datetime = Field(default_factory=datetime.utcnow)
