from fastapi import APIRouter, Depends, Response
from sqlmodel import Session

from coursestore.config import settings
from coursestore.database import get_session
from coursestore.models.user import User
from coursestore.services.invoice_service import build_invoice, render_invoice_pdf
from coursestore.services.reconciliation import get_order
from coursestore.utils.token import get_current_user

router = APIRouter()


@router.get("/invoices/{order_id}")
def view_invoice(
    order_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    order = get_order(session, actor=current_user, order_id=order_id)
    return build_invoice(session, order)


@router.get("/invoices/{order_id}/download")
def download_invoice(
    order_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    order = get_order(session, actor=current_user, order_id=order_id)
    pdf = render_invoice_pdf(build_invoice(session, order), settings.STORE_NAME, settings.CURRENCY)

    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="invoice_{order.id}.pdf"'},
    )
