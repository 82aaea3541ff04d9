"""
Order lifecycle: checkout, provider events, admin actions.

Every status change is a conditional update in ``order_store`` and every
completion grants the course inside the same database transaction, so a
reader never sees a completed order without its entitlement. Refunds are
the exception: the provider is called first, the refunded status is
committed next, and access is revoked last in its own transaction.

Notifications go out after commit and never affect order state.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from coursestore.constants.order_status import (
    OPEN_STATUSES,
    PAYABLE_STATUSES,
    OrderStatus,
    PaymentMethod,
    can_transition,
)
from coursestore.exceptions import (
    AuthorizationError,
    ConcurrentUpdateError,
    ConflictError,
    NotFoundError,
    ProviderError,
    ValidationError,
)
from coursestore.models.course import Course
from coursestore.models.order import Order
from coursestore.models.user import User
from coursestore.notifications import NotificationEvent, dispatch_order_event
from coursestore.services import catalog, entitlements, order_store
from coursestore.services.order_event_service import log_order_event
from coursestore.services.payment_gateways import Outcome, PaymentEvent, PaymentGateways
from coursestore.utils.pagination import paginate

logger = logging.getLogger(__name__)

DEFAULT_CONFIRMATION_DETAILS = "Manually confirmed"
DEFAULT_REFUND_REASON = "Refunded by admin"

METHOD_BY_PROVIDER = {
    "stripe": PaymentMethod.card,
    "razorpay": PaymentMethod.wallet,
}


# -------------------------
# HELPERS
# -------------------------

def _is_admin(actor: Optional[User]) -> bool:
    return actor is not None and actor.is_admin


def _require_admin(actor: Optional[User]):
    if not _is_admin(actor):
        raise AuthorizationError("Admin access required")


def _require_owner_or_admin(order: Order, actor: User):
    if not _is_admin(actor) and order.user_id != actor.id:
        raise AuthorizationError("This order belongs to another user")


def _actor_label(actor: Optional[User]) -> str:
    if actor is None:
        return "system"
    return f"{actor.role}:{actor.id}"


def _payment_method(method) -> PaymentMethod:
    try:
        return PaymentMethod(getattr(method, "value", method))
    except ValueError:
        raise ValidationError(f"Unsupported payment method: {method}")


def _order_status(status) -> OrderStatus:
    try:
        return OrderStatus(getattr(status, "value", status))
    except ValueError:
        raise ValidationError(f"Invalid status: {status}")


def _audit_meta(event: PaymentEvent) -> dict:
    return {
        "provider": event.provider,
        "event_type": event.event_type,
        "provider_payment_id": event.provider_payment_id,
        "outcome": event.outcome.value,
        "amount": str(event.amount) if event.amount is not None else None,
        "payload": event.raw_payload,
    }


def _with_retry(session: Session, action: str, func):
    """Run ``func`` again once after a lost race; the retry sees the winner's state.

    Business rule conflicts propagate untouched.
    """
    try:
        return func()
    except ConcurrentUpdateError as exc:
        session.rollback()
        logger.warning("%s lost a concurrent update (%s), retrying once", action, exc)
        return func()


def _notify(session: Session, event: NotificationEvent, order: Order, extra: Optional[dict] = None):
    try:
        user = session.get(User, order.user_id)
        dispatch_order_event(event=event, order=order, user=user, session=session, extra=extra)
    except Exception:
        logger.exception("Notification %s for order %s failed", event.value, order.id)


def _complete_order(
    session: Session,
    order: Order,
    *,
    label: str,
    created_by: str,
    transaction_details: Optional[str] = None,
    meta: Optional[dict] = None,
) -> Order:
    patch = {}
    if transaction_details and not order.transaction_details:
        patch["transaction_details"] = transaction_details

    order = order_store.transition(
        session,
        order.id,
        OrderStatus.completed,
        expected=order.status,
        patch=patch,
    )
    granted = entitlements.grant(session, order.user_id, order.course_id)

    log_order_event(session, order.id, "payment_completed", label, created_by=created_by, meta=meta)
    if granted:
        log_order_event(session, order.id, "course_access_granted", "Course added to library", created_by=created_by)

    session.commit()
    session.refresh(order)
    logger.info("Order %s completed (%s)", order.id, label)

    course = session.get(Course, order.course_id)
    course_title = course.title if course else ""
    _notify(session, NotificationEvent.PAYMENT_SUCCESS, order, {"course_title": course_title})
    if granted:
        _notify(session, NotificationEvent.COURSE_ACCESS_GRANTED, order, {"course_title": course_title})
    return order


def _revoke_access(session: Session, order: Order):
    try:
        if order_store.has_other_completed(session, order):
            logger.info(
                "User %s keeps course %s through another completed order",
                order.user_id, order.course_id,
            )
            return
        if entitlements.revoke(session, order.user_id, order.course_id):
            log_order_event(session, order.id, "course_access_revoked", "Course removed from library")
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.error(
            "Could not revoke course %s from user %s after refunding order %s",
            order.course_id, order.user_id, order.id,
            exc_info=True,
        )


# -------------------------
# CHECKOUT
# -------------------------

def create_checkout(
    session: Session,
    *,
    buyer: User,
    course_id: int,
    method,
    gateways: PaymentGateways,
) -> dict:
    """
    Open an order for ``course_id`` and the provider intent that pays it.

    The amount always comes from the catalog. If the provider call fails
    the pending order is rolled back and nothing is stored.
    """
    method = _payment_method(method)
    course = catalog.get_course(session, course_id)
    amount = catalog.get_item_price(session, course.id).quantize(Decimal("0.01"))

    if entitlements.owns(session, buyer.id, course.id):
        raise ConflictError("You already own this course")

    gateway = gateways.for_method(method)

    order = order_store.create(
        session,
        Order(
            user_id=buyer.id,
            course_id=course.id,
            amount=amount,
            status=gateway.initial_status.value,
            payment_method=method.value,
        ),
    )

    try:
        handle = gateway.create_checkout(order=order, course=course, buyer=buyer)
    except ProviderError:
        session.rollback()
        logger.warning("Checkout for course %s by user %s aborted by provider", course.id, buyer.id)
        raise

    order.payment_id = handle.payment_id
    order.reference = handle.reference
    session.add(order)

    log_order_event(
        session,
        order.id,
        "order_created",
        f"Order placed ({method.value})",
        created_by=_actor_label(buyer),
        meta={
            "amount": str(amount),
            "payment_id": handle.payment_id,
            "reference": handle.reference,
        },
    )
    session.commit()
    session.refresh(order)
    logger.info("Order %s created for course %s (%s, %s)", order.id, course.id, method.value, amount)

    if method == PaymentMethod.bank_transfer:
        _notify(session, NotificationEvent.BANK_TRANSFER_REQUESTED, order, {"course_title": course.title, **handle.data})
    else:
        _notify(session, NotificationEvent.ORDER_PLACED, order, {"course_title": course.title})

    return {
        "order_id": order.id,
        "method": method.value,
        "status": order.status,
        "amount": str(order.amount),
        "handle": handle.data,
    }


# -------------------------
# PROVIDER EVENTS
# -------------------------

def _create_order_from_event(session: Session, event: PaymentEvent) -> Order:
    """A paid provider intent with no local order: rebuild it from metadata."""
    if session.get(User, event.user_id) is None:
        raise NotFoundError(f"User {event.user_id} not found for payment {event.provider_payment_id}")

    method = METHOD_BY_PROVIDER.get(event.provider)
    if method is None:
        raise ValidationError(f"Provider {event.provider} cannot open orders")

    price = catalog.get_item_price(session, event.course_id)
    order = Order(
        user_id=event.user_id,
        course_id=event.course_id,
        amount=price.quantize(Decimal("0.01")),
        status=OrderStatus.pending.value,
        payment_method=method.value,
        payment_id=event.provider_payment_id,
    )
    try:
        order_store.create(session, order)
    except IntegrityError:
        # another delivery created it first
        session.rollback()
        winner = order_store.find_by_payment_id(session, event.provider_payment_id)
        if winner is None:
            raise
        return winner

    log_order_event(
        session,
        order.id,
        "order_created",
        "Order created from provider notification",
        created_by=event.provider,
        meta={"amount": str(order.amount), "payment_id": event.provider_payment_id},
    )
    logger.warning("Created order %s from %s payment %s", order.id, event.provider, event.provider_payment_id)
    return order


def _resolve_order(session: Session, event: PaymentEvent, *, create: bool = True) -> Order:
    order = order_store.find_by_payment_id(session, event.provider_payment_id)
    if order:
        return order

    if event.order_ref is not None:
        order = order_store.find_by_id(session, event.order_ref)
        if order and event.user_id is not None and order.user_id != event.user_id:
            order = None
        expected_method = METHOD_BY_PROVIDER.get(event.provider)
        if order and expected_method is not None and order.payment_method != expected_method.value:
            raise ValidationError(
                f"Order #{order.id} is a {order.payment_method} order, not payable through {event.provider}"
            )
        if order and order.payment_id is None:
            order.payment_id = event.provider_payment_id
            session.add(order)
            try:
                session.flush()
            except IntegrityError:
                raise ConflictError(f"Payment {event.provider_payment_id} already attached to another order")
            return order
        if order:
            logger.warning(
                "Order %s carries payment %s, event references %s",
                order.id, order.payment_id, event.provider_payment_id,
            )

    if create and event.user_id is not None and event.course_id is not None:
        return _create_order_from_event(session, event)

    raise NotFoundError(f"No order for payment {event.provider_payment_id}")


def _apply_payment_event(session: Session, event: PaymentEvent) -> str:
    # a failure with no local order has nothing to record against
    order = _resolve_order(session, event, create=event.outcome != Outcome.failed)

    if event.outcome == Outcome.failed:
        log_order_event(
            session, order.id, "payment_failed", f"Payment failed ({event.event_type})",
            created_by=event.provider, meta=_audit_meta(event),
        )
        session.commit()
        logger.info("Payment %s failed for order %s", event.provider_payment_id, order.id)
        if order.status in OPEN_STATUSES:
            _notify(session, NotificationEvent.PAYMENT_FAILED, order)
        return "failed"

    if event.outcome == Outcome.pending:
        if order.status not in (OrderStatus.pending.value, OrderStatus.awaiting_payment.value):
            logger.info("Ignoring pending event for order %s in status %s", order.id, order.status)
            session.commit()
            return "ignored"
        order_store.transition(session, order.id, OrderStatus.processing, expected=order.status)
        log_order_event(
            session, order.id, "payment_processing", "Payment submitted, awaiting settlement",
            created_by=event.provider, meta=_audit_meta(event),
        )
        session.commit()
        return "processing"

    if order.status == OrderStatus.completed.value:
        logger.info("Duplicate success for order %s (%s), ignoring", order.id, event.provider_payment_id)
        session.commit()
        return "duplicate"

    if order.status not in PAYABLE_STATUSES:
        logger.error(
            "Payment %s succeeded for %s order %s, refund it manually",
            event.provider_payment_id, order.status, order.id,
        )
        log_order_event(
            session, order.id, "payment_after_close", f"Payment received for a {order.status} order",
            created_by=event.provider, meta=_audit_meta(event),
        )
        session.commit()
        return "needs_refund"

    if event.amount is not None and event.amount != order.amount:
        logger.error(
            "Amount mismatch on order %s: paid %s, expected %s",
            order.id, event.amount, order.amount,
        )
        log_order_event(
            session, order.id, "amount_mismatch", f"Paid {event.amount}, expected {order.amount}",
            created_by=event.provider, meta=_audit_meta(event),
        )
        session.commit()
        raise ValidationError(f"Paid amount does not match order #{order.id}")

    _complete_order(
        session,
        order,
        label=f"Payment confirmed by {event.provider}",
        created_by=event.provider,
        transaction_details=f"{event.provider} {event.event_type} {event.provider_payment_id}",
        meta=_audit_meta(event),
    )
    return "completed"


def apply_payment_event(session: Session, event: PaymentEvent) -> str:
    """
    Apply a normalized provider event to its order.

    Returns what happened: completed, duplicate, processing, failed,
    ignored or needs_refund.
    """
    try:
        return _with_retry(
            session,
            f"Payment event {event.provider_payment_id}",
            lambda: _apply_payment_event(session, event),
        )
    except SQLAlchemyError:
        session.rollback()
        raise


def handle_provider_webhook(
    session: Session,
    *,
    provider: str,
    payload: bytes,
    signature: Optional[str],
    gateways: PaymentGateways,
) -> dict:
    """
    Verify and apply one webhook delivery.

    Signature failures propagate. Once the payload is authentic, order
    problems (unknown order, conflicting state, wrong amount) are logged
    and acknowledged so the provider stops redelivering; database faults
    propagate so it retries.
    """
    gateway = gateways.for_provider(provider)
    event = gateway.parse_webhook(payload, signature)
    if event is None:
        return {"status": "ignored"}

    try:
        result = apply_payment_event(session, event)
    except (NotFoundError, ConflictError, ValidationError) as exc:
        session.rollback()
        logger.warning(
            "Rejected %s %s for payment %s: %s",
            provider, event.event_type, event.provider_payment_id, exc.message,
        )
        return {"status": "rejected", "message": exc.message}

    return {"status": result}


def capture_wallet_payment(
    session: Session,
    *,
    buyer: User,
    order_id: int,
    provider_order_id: str,
    provider_payment_id: str,
    signature: str,
    gateways: PaymentGateways,
) -> dict:
    order = order_store.get_or_404(session, order_id)
    _require_owner_or_admin(order, buyer)

    if order.payment_method != PaymentMethod.wallet.value:
        raise ValidationError("Order is not a wallet payment")
    if order.payment_id != provider_order_id:
        raise ValidationError("Order mismatch")

    if order.status == OrderStatus.completed.value:
        return {"order_id": order.id, "status": order.status, "result": "duplicate"}
    if order.status not in PAYABLE_STATUSES:
        raise ConflictError(f"Order #{order.id} is {order.status} and can no longer be paid")

    gateway = gateways.for_method(PaymentMethod.wallet)
    event = gateway.capture(
        provider_order_id=provider_order_id,
        provider_payment_id=provider_payment_id,
        signature=signature,
    )
    result = apply_payment_event(session, event)

    order = order_store.get_or_404(session, order_id)
    return {"order_id": order.id, "status": order.status, "result": result}


# -------------------------
# ADMIN / BUYER ACTIONS
# -------------------------

def confirm_bank_transfer(
    session: Session,
    *,
    actor: User,
    order_id: int,
    transaction_details: Optional[str] = None,
) -> Order:
    _require_admin(actor)
    details = (transaction_details or "").strip() or DEFAULT_CONFIRMATION_DETAILS

    def confirm():
        order = order_store.get_or_404(session, order_id)
        if order.payment_method != PaymentMethod.bank_transfer.value:
            raise ValidationError("Only bank transfer orders can be confirmed manually")
        if order.status != OrderStatus.awaiting_payment.value:
            raise ConflictError(f"Order #{order.id} is {order.status}, expected awaiting_payment")

        return _complete_order(
            session,
            order,
            label="Bank transfer confirmed",
            created_by=_actor_label(actor),
            transaction_details=details,
            meta={"transaction_details": details},
        )

    return _with_retry(session, f"Bank confirmation of order {order_id}", confirm)


def refund_order(
    session: Session,
    *,
    actor: User,
    order_id: int,
    gateways: PaymentGateways,
    reason: Optional[str] = None,
) -> Order:
    """
    Refund a completed order.

    The provider refund runs first; a provider failure leaves the order
    completed. Access is revoked after the refunded status is committed
    and a revocation failure only gets logged.
    """
    _require_admin(actor)
    order = order_store.get_or_404(session, order_id)

    if order.status == OrderStatus.refunded.value:
        raise ConflictError(f"Order #{order.id} is already refunded")
    if order.status != OrderStatus.completed.value:
        raise ConflictError(f"Only completed orders can be refunded, order #{order.id} is {order.status}")

    gateway = gateways.for_method(order.payment_method)
    result = gateway.refund(payment_id=order.payment_id, amount=order.amount, order_id=order.id)

    try:
        order = order_store.transition(
            session,
            order.id,
            OrderStatus.refunded,
            expected=OrderStatus.completed,
            patch={
                "refund_reason": (reason or "").strip() or DEFAULT_REFUND_REASON,
                "refund_date": datetime.utcnow(),
                "refund_reference": result.reference,
            },
        )
    except ConflictError:
        session.rollback()
        logger.error("Provider refund %s issued but order %s changed concurrently", result.reference, order_id)
        raise

    log_order_event(
        session,
        order.id,
        "refunded",
        "Refund marked for manual payout" if result.manual else "Refund issued",
        created_by=_actor_label(actor),
        meta={
            "refund_reference": result.reference,
            "refund_status": result.status,
            "manual": result.manual,
        },
    )
    session.commit()
    session.refresh(order)
    logger.info("Order %s refunded (%s)", order.id, result.status)

    _revoke_access(session, order)
    _notify(session, NotificationEvent.REFUND_PROCESSED, order, {"refund_reference": result.reference})
    return order


def cancel_order(
    session: Session,
    *,
    actor: User,
    order_id: int,
    reason: Optional[str] = None,
) -> Order:
    order = order_store.get_or_404(session, order_id)
    _require_owner_or_admin(order, actor)

    if order.status == OrderStatus.cancelled.value:
        return order
    if order.status not in OPEN_STATUSES:
        raise ConflictError(f"Order #{order.id} is {order.status} and can no longer be cancelled")

    order = order_store.transition(session, order.id, OrderStatus.cancelled, expected=order.status)
    log_order_event(
        session,
        order.id,
        "cancelled",
        "Order cancelled",
        created_by=_actor_label(actor),
        meta={"reason": reason} if reason else None,
    )
    session.commit()
    session.refresh(order)
    logger.info("Order %s cancelled by %s", order.id, _actor_label(actor))

    _notify(session, NotificationEvent.ORDER_CANCELLED, order)
    return order


def set_order_status(
    session: Session,
    *,
    actor: User,
    order_id: int,
    new_status,
    gateways: PaymentGateways,
    reason: Optional[str] = None,
) -> Order:
    """Admin override along an allowed edge; completion grants, refund goes through refund_order."""
    _require_admin(actor)
    new_status = _order_status(new_status)
    order = order_store.get_or_404(session, order_id)

    if order.status == new_status.value:
        return order
    if not can_transition(order.status, new_status.value):
        raise ConflictError(f"Cannot move order #{order.id} from {order.status} to {new_status.value}")

    if new_status == OrderStatus.refunded:
        return refund_order(session, actor=actor, order_id=order.id, gateways=gateways, reason=reason)

    if new_status == OrderStatus.completed:
        return _with_retry(
            session,
            f"Status override of order {order_id}",
            lambda: _complete_order(
                session,
                order_store.get_or_404(session, order_id),
                label="Status set to completed by admin",
                created_by=_actor_label(actor),
                transaction_details=reason or f"Status override by {_actor_label(actor)}",
            ),
        )

    if new_status == OrderStatus.cancelled:
        return cancel_order(session, actor=actor, order_id=order.id, reason=reason)

    previous = order.status
    order = order_store.transition(session, order.id, new_status, expected=previous)
    log_order_event(
        session,
        order.id,
        "status_changed",
        f"Status changed from {previous} to {new_status.value}",
        created_by=_actor_label(actor),
        meta={"reason": reason} if reason else None,
    )
    session.commit()
    session.refresh(order)
    return order


# -------------------------
# READS
# -------------------------

def get_order(session: Session, *, actor: User, order_id: int) -> Order:
    order = order_store.get_or_404(session, order_id)
    _require_owner_or_admin(order, actor)
    return order


def list_orders(
    session: Session,
    *,
    actor: User,
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    search: Optional[str] = None,
    user_id: Optional[int] = None,
) -> dict:
    """Buyers see their own orders; admins see everything and may filter by buyer."""
    if not _is_admin(actor):
        if user_id is not None and user_id != actor.id:
            raise AuthorizationError("You can only list your own orders")
        user_id = actor.id

    query = order_store.build_order_query(user_id=user_id, status=status, search=search)
    return paginate(session=session, query=query, page=page, limit=limit)
