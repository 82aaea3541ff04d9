import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from coursestore.exceptions import ConcurrentUpdateError
from coursestore.models.user_course import UserCourse

logger = logging.getLogger(__name__)


def find(session: Session, user_id: int, course_id: int) -> Optional[UserCourse]:
    return session.exec(
        select(UserCourse)
        .where(UserCourse.user_id == user_id)
        .where(UserCourse.course_id == course_id)
    ).first()


def owns(session: Session, user_id: int, course_id: int) -> bool:
    return find(session, user_id, course_id) is not None


def grant(session: Session, user_id: int, course_id: int) -> bool:
    """
    Attach a course to the user's library.

    Returns True when a row was inserted, False when the user already
    owned it. A concurrent insert that wins the unique (user, course) key
    surfaces as ConcurrentUpdateError; the caller rolls back and retries, and the
    retry sees the existing row.
    """
    if owns(session, user_id, course_id):
        return False

    session.add(
        UserCourse(
            user_id=user_id,
            course_id=course_id,
            purchased_at=datetime.utcnow(),
            completed=False,
            progress=0,
        )
    )
    try:
        session.flush()
    except IntegrityError:
        raise ConcurrentUpdateError(f"Course {course_id} granted concurrently to user {user_id}")

    logger.info("Granted course %s to user %s", course_id, user_id)
    return True


def revoke(session: Session, user_id: int, course_id: int) -> bool:
    """Remove the grant; a missing grant is not an error."""
    entitlement = find(session, user_id, course_id)
    if entitlement is None:
        return False

    session.delete(entitlement)
    session.flush()
    logger.info("Revoked course %s from user %s", course_id, user_id)
    return True


def list_for_user(session: Session, user_id: int):
    return session.exec(
        select(UserCourse)
        .where(UserCourse.user_id == user_id)
        .order_by(UserCourse.purchased_at.desc())
    ).all()
