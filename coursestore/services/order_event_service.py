from datetime import datetime
from typing import List, Optional, Union

from sqlmodel import Session, select

from coursestore.constants.order_status import OrderEventType
from coursestore.models.order_event import OrderEvent


def log_order_event(
    session: Session,
    order_id: int,
    event_type: Union[str, OrderEventType],
    label: str,
    created_by: str = "system",
    meta: Optional[dict] = None,
) -> OrderEvent:
    """
    Append an entry to the order's audit trail.

    Rows are only ever inserted. The caller's commit persists them together
    with the status change they describe. An event type outside
    ``OrderEventType`` raises ValueError.
    """
    event = OrderEvent(
        order_id=order_id,
        event_type=OrderEventType(event_type).value,
        label=label,
        meta=meta,
        created_by=created_by,
        created_at=datetime.utcnow(),
    )
    session.add(event)
    return event


def list_order_events(session: Session, order_id: int) -> List[OrderEvent]:
    return session.exec(
        select(OrderEvent)
        .where(OrderEvent.order_id == order_id)
        .order_by(OrderEvent.created_at, OrderEvent.id)
    ).all()
