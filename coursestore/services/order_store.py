"""
Durable order records and their guarded status transitions.

Every status change goes through ``transition`` which issues a conditional
``UPDATE ... WHERE id = :id AND status = :current``. Two writers racing on
the same order (a webhook retry and an admin action, two webhook
deliveries) cannot both win: the loser updates zero rows and gets a
``ConcurrentUpdateError``. Nothing here commits; callers own the transaction.
"""
import logging
from datetime import datetime
from typing import Iterable, Optional, Union

from sqlalchemy import String, cast, or_, update
from sqlmodel import Session, select

from coursestore.constants.order_status import OrderStatus, can_transition
from coursestore.exceptions import ConcurrentUpdateError, ConflictError, NotFoundError, ValidationError
from coursestore.models.order import Order

logger = logging.getLogger(__name__)

# columns a transition may write besides status/updated_at
PATCHABLE_FIELDS = {
    "payment_id",
    "transaction_details",
    "refund_reason",
    "refund_date",
    "refund_reference",
}


def create(session: Session, order: Order) -> Order:
    session.add(order)
    session.flush()
    return order


def find_by_id(session: Session, order_id: int) -> Optional[Order]:
    return session.get(Order, order_id)


def find_by_payment_id(session: Session, payment_id: str) -> Optional[Order]:
    return session.exec(
        select(Order).where(Order.payment_id == payment_id)
    ).first()


def get_or_404(session: Session, order_id: int) -> Order:
    order = find_by_id(session, order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


def _status_value(status) -> str:
    try:
        return OrderStatus(status).value
    except ValueError:
        raise ValidationError(f"Invalid status: {status}")


def transition(
    session: Session,
    order_id: int,
    new_status: Union[str, OrderStatus],
    *,
    expected: Union[None, str, OrderStatus, Iterable] = None,
    patch: Optional[dict] = None,
) -> Order:
    order = get_or_404(session, order_id)
    new_status = _status_value(new_status)

    if expected is None:
        expected = (order.status,)
    elif isinstance(expected, (str, OrderStatus)):
        expected = (expected,)
    expected = tuple(_status_value(s) for s in expected)

    current = order.status
    if current not in expected:
        raise ConflictError(
            f"Order #{order_id} is {current}, expected {' or '.join(expected)}"
        )
    if not can_transition(current, new_status):
        raise ConflictError(f"Cannot move order #{order_id} from {current} to {new_status}")

    values = dict(patch or {})
    unknown = set(values) - PATCHABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields not writable on transition: {sorted(unknown)}")
    values["status"] = new_status
    values["updated_at"] = datetime.utcnow()

    result = session.connection().execute(
        update(Order)
        .where(Order.id == order_id)
        .where(Order.status == current)
        .values(**values)
    )

    session.refresh(order)

    if result.rowcount != 1:
        logger.info(
            "Lost transition race on order %s (%s -> %s), now %s",
            order_id, current, new_status, order.status,
        )
        raise ConcurrentUpdateError(f"Order #{order_id} changed concurrently, now {order.status}")

    return order


def build_order_query(
    *,
    user_id: Optional[int] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
):
    query = select(Order)

    if user_id is not None:
        query = query.where(Order.user_id == user_id)

    if status:
        query = query.where(Order.status == _status_value(status))

    if search:
        like = f"%{search}%"
        query = query.where(
            or_(
                Order.reference.ilike(like),
                Order.payment_id.ilike(like),
                cast(Order.id, String).ilike(like),
            )
        )

    return query.order_by(Order.created_at.desc(), Order.id.desc())


def has_other_completed(session: Session, order: Order) -> bool:
    """Another completed order still pays for the same (user, course)."""
    return session.exec(
        select(Order.id)
        .where(Order.user_id == order.user_id)
        .where(Order.course_id == order.course_id)
        .where(Order.status == OrderStatus.completed.value)
        .where(Order.id != order.id)
    ).first() is not None
