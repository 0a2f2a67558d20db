import enum
from sqlalchemy import (
    Column, Integer, String, Text, Float, Boolean, DateTime, ForeignKey, JSON,
    UniqueConstraint, Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
from campusskill.database import Base
from campusskill.utils.dates import utcnow


class UserRole(str, enum.Enum):
    TEACHER = "teacher"  # grantor: tasks carry credit points
    STUDENT = "student"

    @property
    def grants_credit(self) -> bool:
        if self is UserRole.TEACHER:
            return True
        if self is UserRole.STUDENT:
            return False
        raise ValueError(f"Unhandled role: {self}")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(50), nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    bio = Column(Text, default="")
    skills = Column(JSON, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Ledger fields. total_points and average_rating are derived, see services/ledger.py
    credit_points = Column(Integer, default=0, nullable=False)
    rating_points = Column(Integer, default=0, nullable=False)
    total_points = Column(Integer, default=0, nullable=False, index=True)
    tasks_completed = Column(Integer, default=0, nullable=False)
    tasks_posted = Column(Integer, default=0, nullable=False)
    average_rating = Column(Float, default=0.0, nullable=False)

    ratings = relationship(
        "Rating",
        foreign_keys="Rating.user_id",
        order_by="Rating.id",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"


class Rating(Base):
    __tablename__ = "user_ratings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)      # Who is rated
    rated_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)              # Who rates
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=True)
    rating = Column(Integer, nullable=False)     # 1-5
    review = Column(Text, default="")
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # NULL task_id never collides, so untied peer ratings may repeat
    __table_args__ = (UniqueConstraint("user_id", "rated_by_id", "task_id", name="uq_rating_rater_task"),)
