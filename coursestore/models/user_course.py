from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import CheckConstraint, UniqueConstraint
from typing import Optional, TYPE_CHECKING
from datetime import datetime

if TYPE_CHECKING:
    from .user import User


class UserCourse(SQLModel, table=True):
    """A user's access grant to a purchased course (one per user/course)."""

    __tablename__ = "user_course"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_user_course"),
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_user_course_progress"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    course_id: int = Field(foreign_key="course.id", index=True)

    purchased_at: datetime = Field(default_factory=datetime.utcnow)
    access_until: Optional[datetime] = None
    completed: bool = Field(default=False)
    progress: int = Field(default=0)

    user: Optional["User"] = Relationship(back_populates="courses")
