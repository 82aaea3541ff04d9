from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from coursestore.database import get_session
from coursestore.dependencies.admin import require_admin
from coursestore.models.user import User
from coursestore.schemas.orders_schemas import OrderEventOut, OrderOut, OrderPage
from coursestore.schemas.payment_schemas import (
    BankConfirmRequest,
    RefundRequest,
    StatusUpdateRequest,
)
from coursestore.services import order_store
from coursestore.services.order_event_service import list_order_events
from coursestore.services.payment_gateways import PaymentGateways, get_payment_gateways
from coursestore.services.reconciliation import (
    confirm_bank_transfer,
    list_orders,
    refund_order,
    set_order_status,
)

router = APIRouter()


@router.get("", response_model=OrderPage)
def admin_list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    search: Optional[str] = None,
    user_id: Optional[int] = None,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    return list_orders(
        session,
        actor=admin,
        page=page,
        limit=limit,
        status=status,
        search=search,
        user_id=user_id,
    )


@router.get("/{order_id}/events", response_model=List[OrderEventOut])
def admin_order_events(
    order_id: int,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    order = order_store.get_or_404(session, order_id)
    return list_order_events(session, order.id)


@router.post("/{order_id}/confirm-bank-transfer", response_model=OrderOut)
def admin_confirm_bank_transfer(
    order_id: int,
    data: Optional[BankConfirmRequest] = None,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
):
    return confirm_bank_transfer(
        session,
        actor=admin,
        order_id=order_id,
        transaction_details=data.transaction_details if data else None,
    )


@router.patch("/{order_id}/status", response_model=OrderOut)
def admin_update_status(
    order_id: int,
    data: StatusUpdateRequest,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
    gateways: PaymentGateways = Depends(get_payment_gateways),
):
    return set_order_status(
        session,
        actor=admin,
        order_id=order_id,
        new_status=data.status,
        reason=data.reason,
        gateways=gateways,
    )


@router.post("/{order_id}/refund", response_model=OrderOut)
def admin_refund(
    order_id: int,
    data: Optional[RefundRequest] = None,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
    gateways: PaymentGateways = Depends(get_payment_gateways),
):
    return refund_order(
        session,
        actor=admin,
        order_id=order_id,
        reason=data.reason if data else None,
        gateways=gateways,
    )
