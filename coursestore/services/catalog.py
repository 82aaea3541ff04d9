from decimal import Decimal

from sqlmodel import Session

from coursestore.exceptions import NotFoundError, ValidationError
from coursestore.models.course import Course


def get_course(session: Session, course_id: int) -> Course:
    course = session.get(Course, course_id)
    if not course or not course.is_published:
        raise NotFoundError("Course not found")
    return course


def get_item_price(session: Session, course_id: int) -> Decimal:
    """Authoritative price for a course; client-supplied amounts are never used."""
    course = get_course(session, course_id)
    price = Decimal(course.price)
    if price <= 0:
        raise ValidationError("Course price is not set")
    return price
