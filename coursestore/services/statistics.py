"""
Sales rollups over completed orders.

Totals cover every completed order; the per-day, per-method and
top-course breakdowns cover the selected period only.
"""
import io
from datetime import datetime, timedelta
from decimal import Decimal

from openpyxl import Workbook
from openpyxl.chart import BarChart, Reference
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from sqlmodel import Session, func, select

from coursestore.constants.order_status import OrderStatus
from coursestore.exceptions import AuthorizationError
from coursestore.models.course import Course
from coursestore.models.order import Order
from coursestore.models.user import User

PERIOD_DAYS = {
    "7days": 7,
    "30days": 30,
    "90days": 90,
    "year": 365,
}
DEFAULT_PERIOD = "30days"

COMPLETED = OrderStatus.completed.value


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal("0.01"))


def period_start(period: str, now: datetime | None = None) -> datetime:
    now = now or datetime.utcnow()
    return now - timedelta(days=PERIOD_DAYS[period])


def compute_statistics(session: Session, *, actor: User, period: str | None = None) -> dict:
    if actor is None or actor.role != "admin":
        raise AuthorizationError("Admin access required")

    # unknown periods fall back to the default window
    if period not in PERIOD_DAYS:
        period = DEFAULT_PERIOD
    start = period_start(period)

    total_revenue = _money(session.exec(
        select(func.sum(Order.amount)).where(Order.status == COMPLETED)
    ).one())

    total_orders = session.exec(
        select(func.count(Order.id)).where(Order.status == COMPLETED)
    ).one() or 0

    average = _money(total_revenue / total_orders) if total_orders else _money(0)

    day = func.date(Order.created_at)
    by_day = session.exec(
        select(day, func.sum(Order.amount), func.count(Order.id))
        .where(Order.status == COMPLETED)
        .where(Order.created_at >= start)
        .group_by(day)
        .order_by(day)
    ).all()

    by_method = session.exec(
        select(Order.payment_method, func.sum(Order.amount), func.count(Order.id))
        .where(Order.status == COMPLETED)
        .where(Order.created_at >= start)
        .group_by(Order.payment_method)
        .order_by(Order.payment_method)
    ).all()

    sold = func.count(Order.id).label("sold")
    top = session.exec(
        select(Order.course_id, Course.title, func.sum(Order.amount), sold)
        .join(Course, Course.id == Order.course_id)
        .where(Order.status == COMPLETED)
        .where(Order.created_at >= start)
        .group_by(Order.course_id, Course.title)
        .order_by(sold.desc(), Order.course_id)
        .limit(5)
    ).all()

    total_users = session.exec(select(func.count(User.id))).one() or 0
    conversion = round(total_orders / total_users * 100, 2) if total_users else 0

    return {
        "period": period,
        "total_revenue": total_revenue,
        "total_orders": total_orders,
        "average_order_value": average,
        "sales_by_period": [
            {"date": str(d), "revenue": _money(revenue), "count": count}
            for d, revenue, count in by_day
        ],
        "sales_by_payment_method": [
            {"method": method, "revenue": _money(revenue), "count": count}
            for method, revenue, count in by_method
        ],
        "top_courses": [
            {"course_id": course_id, "title": title, "revenue": _money(revenue), "count": count}
            for course_id, title, revenue, count in top
        ],
        "conversion_rate": conversion,
    }


def _style_header(ws, header_font, header_fill, border, center):
    for cell in ws[1]:
        cell.font = header_font
        cell.fill = header_fill
        cell.border = border
        cell.alignment = center


def _style_rows(ws, border, center, money_columns=()):
    for row in ws.iter_rows(min_row=2):
        for index in money_columns:
            row[index].number_format = "#,##0.00"
        for cell in row:
            cell.border = border
            cell.alignment = center


def build_statistics_workbook(stats: dict) -> bytes:
    wb = Workbook()
    thin = Border(
        left=Side(style="thin"),
        right=Side(style="thin"),
        top=Side(style="thin"),
        bottom=Side(style="thin"),
    )
    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill("solid", fgColor="4F81BD")
    center = Alignment(horizontal="center")

    # =========================
    # Sheet 1: Overview
    # =========================
    ws = wb.active
    ws.title = "Overview"
    ws.append(["Metric", "Value"])
    _style_header(ws, header_font, header_fill, thin, center)
    ws.append(["Period", stats["period"]])
    ws.append(["Total Revenue", float(stats["total_revenue"])])
    ws.append(["Total Orders", stats["total_orders"]])
    ws.append(["Average Order Value", float(stats["average_order_value"])])
    ws.append(["Conversion Rate (%)", stats["conversion_rate"]])
    _style_rows(ws, thin, center)
    ws.column_dimensions["A"].width = 24
    ws.column_dimensions["B"].width = 18

    # =========================
    # Sheet 2: Revenue by Day
    # =========================
    ws2 = wb.create_sheet("Revenue")
    ws2.append(["Date", "Revenue", "Orders"])
    _style_header(ws2, header_font, header_fill, thin, center)
    for row in stats["sales_by_period"]:
        ws2.append([row["date"], float(row["revenue"]), row["count"]])
    _style_rows(ws2, thin, center, money_columns=(1,))

    if stats["sales_by_period"]:
        chart = BarChart()
        chart.title = "Revenue Trend"
        rows = len(stats["sales_by_period"])
        chart.add_data(Reference(ws2, min_col=2, min_row=1, max_row=rows + 1), titles_from_data=True)
        chart.set_categories(Reference(ws2, min_col=1, min_row=2, max_row=rows + 1))
        ws2.add_chart(chart, "E2")

    # =========================
    # Sheet 3: Payment Methods
    # =========================
    ws3 = wb.create_sheet("Payment Methods")
    ws3.append(["Method", "Revenue", "Orders"])
    _style_header(ws3, header_font, header_fill, thin, center)
    for row in stats["sales_by_payment_method"]:
        ws3.append([row["method"], float(row["revenue"]), row["count"]])
    _style_rows(ws3, thin, center, money_columns=(1,))

    # =========================
    # Sheet 4: Top Courses
    # =========================
    ws4 = wb.create_sheet("Top Courses")
    ws4.append(["Course", "Title", "Revenue", "Sold"])
    _style_header(ws4, header_font, header_fill, thin, center)
    for row in stats["top_courses"]:
        ws4.append([row["course_id"], row["title"], float(row["revenue"]), row["count"]])
    _style_rows(ws4, thin, center, money_columns=(2,))
    ws4.column_dimensions["B"].width = 40

    stream = io.BytesIO()
    wb.save(stream)
    return stream.getvalue()
