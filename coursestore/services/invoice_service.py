import io

from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas
from sqlmodel import Session

from coursestore.models.course import Course
from coursestore.models.order import Order
from coursestore.models.user import User


def build_invoice(session: Session, order: Order) -> dict:
    user = session.get(User, order.user_id)
    course = session.get(Course, order.course_id)

    return {
        "invoice_id": f"INV-{order.id}",
        "order_id": order.id,
        "customer": {
            "name": f"{user.first_name} {user.last_name}",
            "email": user.email,
        },
        "item": {
            "course_id": order.course_id,
            "title": course.title if course else f"Course #{order.course_id}",
            "price": order.amount,
        },
        "payment": {
            "method": order.payment_method,
            "payment_id": order.payment_id,
            "reference": order.reference,
            "status": order.status,
        },
        "date": order.created_at,
        "total": order.amount,
        "status": order.status,
        "refund_date": order.refund_date,
    }


def render_invoice_pdf(invoice: dict, store_name: str, currency: str) -> bytes:
    """Invoice PDF rendered in memory."""
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=letter)
    width, height = letter
    y = height - 50
    currency = currency.upper()

    # Title
    c.setFont("Helvetica-Bold", 18)
    c.drawString(100, y, f"{store_name} Invoice {invoice['invoice_id']}")
    y -= 30

    # Customer Info
    c.setFont("Helvetica", 12)
    c.drawString(100, y, f"Customer: {invoice['customer']['name']}")
    y -= 18
    c.drawString(100, y, f"Email: {invoice['customer']['email']}")
    y -= 18
    c.drawString(100, y, f"Date: {invoice['date'].strftime('%Y-%m-%d')}")
    y -= 25

    # Item
    c.setFont("Helvetica-Bold", 12)
    c.drawString(100, y, "Item:")
    y -= 20
    c.setFont("Helvetica", 11)
    c.drawString(100, y, f"{invoice['item']['title']}: {invoice['item']['price']} {currency}")
    y -= 15

    # Totals
    y -= 20
    c.setFont("Helvetica-Bold", 12)
    c.drawString(100, y, f"Total: {invoice['total']} {currency}")
    y -= 20
    c.drawString(100, y, f"Payment method: {invoice['payment']['method']}")
    y -= 20
    c.drawString(100, y, f"Status: {invoice['status']}")
    if invoice["payment"]["reference"]:
        y -= 20
        c.drawString(100, y, f"Transfer reference: {invoice['payment']['reference']}")

    c.showPage()
    c.save()
    return buffer.getvalue()
