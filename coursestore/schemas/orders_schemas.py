from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    course_id: int
    amount: Decimal
    status: str
    payment_method: str
    payment_id: Optional[str] = None
    reference: Optional[str] = None
    transaction_details: Optional[str] = None
    refund_reason: Optional[str] = None
    refund_date: Optional[datetime] = None
    refund_reference: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class OrderPage(BaseModel):
    total_items: int
    total_pages: int
    current_page: int
    limit: int
    results: List[OrderOut]


class OrderEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    event_type: str
    label: str
    meta: Optional[dict] = None
    created_by: str
    created_at: datetime
