"""
Repair drift between orders and course access.

Completed orders must have their course granted; refunded orders must not
leave access behind unless another completed order pays for it. Run from
cron: ``python -m coursestore.jobs.reconcile_entitlements``.
"""
import logging

from sqlmodel import Session, select

from coursestore.constants.order_status import OrderStatus
from coursestore.database import engine
from coursestore.exceptions import ConflictError
from coursestore.models.order import Order
from coursestore.services import entitlements, order_store
from coursestore.services.order_event_service import log_order_event

logger = logging.getLogger(__name__)


def reconcile_entitlements(session: Session) -> dict:
    granted = 0
    revoked = 0

    completed = session.exec(
        select(Order).where(Order.status == OrderStatus.completed.value)
    ).all()
    for order in completed:
        try:
            if entitlements.grant(session, order.user_id, order.course_id):
                log_order_event(session, order.id, "course_access_granted", "Course access restored", created_by="reconciler")
                session.commit()
                granted += 1
        except ConflictError:
            session.rollback()

    refunded = session.exec(
        select(Order).where(Order.status == OrderStatus.refunded.value)
    ).all()
    for order in refunded:
        if order_store.has_other_completed(session, order):
            continue
        if entitlements.revoke(session, order.user_id, order.course_id):
            log_order_event(session, order.id, "course_access_revoked", "Leftover course access removed", created_by="reconciler")
            session.commit()
            revoked += 1

    if granted or revoked:
        logger.warning("Entitlement drift repaired: %s granted, %s revoked", granted, revoked)
    else:
        logger.info("No entitlement drift found")

    return {"granted": granted, "revoked": revoked}


def run():
    with Session(engine) as session:
        return reconcile_entitlements(session)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    result = run()
    logger.info("Entitlement reconciliation finished: %s", result)
