from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from coursestore.database import get_session
from coursestore.models.user import User
from coursestore.schemas.orders_schemas import OrderOut, OrderPage
from coursestore.schemas.payment_schemas import CancelOrderRequest
from coursestore.services.reconciliation import cancel_order, get_order, list_orders
from coursestore.utils.token import get_current_user

router = APIRouter()


# Payment history

@router.get("/orders", response_model=OrderPage)
def my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return list_orders(
        session,
        actor=current_user,
        page=page,
        limit=limit,
        status=status,
        user_id=current_user.id,
    )


@router.get("/orders/{order_id}", response_model=OrderOut)
def order_detail(
    order_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return get_order(session, actor=current_user, order_id=order_id)


@router.post("/orders/{order_id}/cancel", response_model=OrderOut)
def cancel_my_order(
    order_id: int,
    data: Optional[CancelOrderRequest] = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return cancel_order(
        session,
        actor=current_user,
        order_id=order_id,
        reason=data.reason if data else None,
    )
