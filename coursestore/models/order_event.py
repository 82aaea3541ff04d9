from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import JSON, Column, Index
from sqlmodel import Field, SQLModel


class OrderEvent(SQLModel, table=True):
    """
    One line of an order's audit trail.

    ``event_type`` is an ``OrderEventType`` value. ``meta`` keeps the
    provider payload or admin input that caused the entry. ``created_by``
    is "system", a provider name, "reconciler" or "<role>:<user id>".
    """

    __tablename__ = "order_event"
    __table_args__ = (
        # history reads are always one order in time order
        Index("ix_order_event_order_created", "order_id", "created_at"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    order_id: int = Field(foreign_key="order.id")
    event_type: str = Field(index=True)
    label: str
    meta: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=datetime.utcnow)
    created_by: str = Field(default="system")
