import enum
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON,
    Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
from campusskill.database import Base
from campusskill.utils.dates import utcnow
from campusskill.models.user import UserRole


class TaskStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    COMPLETED = "completed"
    REASSIGNED = "reassigned"


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False)
    skills = Column(JSON, default=list, nullable=False)
    credit_points = Column(Integer, default=0, nullable=False)
    deadline = Column(DateTime(timezone=True), nullable=False)
    status = Column(SQLEnum(TaskStatus), default=TaskStatus.OPEN, nullable=False, index=True)

    posted_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    poster_role = Column(SQLEnum(UserRole), nullable=False)
    taken_by_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    submission_content = Column(Text, default="", nullable=False)
    submission_submitted_at = Column(DateTime(timezone=True), nullable=True)
    submission_files = Column(JSON, default=list, nullable=False)  # [{"name", "url"}]

    review_satisfied = Column(Boolean, nullable=True)  # None = not reviewed
    review_feedback = Column(Text, default="", nullable=False)
    review_reviewed_at = Column(DateTime(timezone=True), nullable=True)

    # Plain id, no FK: tasks and chat rooms only reference each other by id
    chat_room_id = Column(Integer, nullable=True, index=True)
    reassign_count = Column(Integer, default=0, nullable=False)

    # Bumped on every UPDATE/DELETE; a stale writer fails with StaleDataError
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    previous_assignees = relationship(
        "PreviousAssignee",
        order_by="PreviousAssignee.id",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    def was_assigned_to(self, user_id: int) -> bool:
        return any(entry.user_id == user_id for entry in self.previous_assignees)

    def __repr__(self):
        return f"<Task {self.id}: {self.title} ({self.status})>"


class PreviousAssignee(Base):
    __tablename__ = "task_previous_assignees"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    reason = Column(Text, nullable=False)
    date = Column(DateTime(timezone=True), default=utcnow)
