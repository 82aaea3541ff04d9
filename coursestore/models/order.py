from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal

from coursestore.constants.order_status import OrderStatus


class Order(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)

    # buyer and item never change after creation
    user_id: int = Field(foreign_key="user.id", index=True)
    course_id: int = Field(foreign_key="course.id", index=True)

    amount: Decimal = Field(max_digits=10, decimal_places=2)
    status: str = Field(default=OrderStatus.pending.value, index=True)
    payment_method: str  # card | wallet | bank_transfer

    # provider reference, webhook dedup key
    payment_id: Optional[str] = Field(default=None, index=True, unique=True)
    # bank transfer code shown to the buyer
    reference: Optional[str] = Field(default=None, index=True, unique=True)

    transaction_details: Optional[str] = None
    refund_reason: Optional[str] = None
    refund_date: Optional[datetime] = None
    refund_reference: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
