from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal


class Course(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    short_description: Optional[str] = None
    image_url: Optional[str] = None

    # authoritative catalog price, never taken from the client
    price: Decimal = Field(max_digits=10, decimal_places=2)
    is_published: bool = Field(default=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
