"""
Task Lifecycle Engine.

    open -> in_progress -> submitted -> completed
              in_progress | submitted -> reassigned -> in_progress

Every transition writes through the ORM with Task.version as the version
counter, so the UPDATE only matches the row that was read. Two students
racing to take the same open task both pass the status check, but only the
first flush matches; the second gets StaleDataError, which is rolled back and
reported as ConflictError. Nothing is retried here.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from campusskill.config import settings
from campusskill.core.auth import Identity
from campusskill.errors import (
    CampusSkillError, NotFoundError, ForbiddenError, InvalidStateError,
    ConflictError, AlreadyAssignedError, ValidationError,
)
from campusskill.models.chat import MessageType
from campusskill.models.task import Task, TaskStatus, PreviousAssignee
from campusskill.models.user import UserRole
from campusskill.services import chat, ledger
from campusskill.utils.dates import utcnow

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: Dict[TaskStatus, List[TaskStatus]] = {
    TaskStatus.OPEN: [TaskStatus.IN_PROGRESS],
    TaskStatus.IN_PROGRESS: [TaskStatus.SUBMITTED, TaskStatus.REASSIGNED],
    TaskStatus.SUBMITTED: [TaskStatus.COMPLETED, TaskStatus.REASSIGNED],
    TaskStatus.REASSIGNED: [TaskStatus.IN_PROGRESS],
    TaskStatus.COMPLETED: [],  # Terminal state
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in VALID_TRANSITIONS.get(current, [])


def _require_transition(task: Task, target: TaskStatus, message: str) -> None:
    if not can_transition(task.status, target):
        raise InvalidStateError(message)


async def get_task(db: AsyncSession, task_id: int) -> Task:
    task = await db.get(Task, task_id)
    if task is None:
        raise NotFoundError("Task not found")
    return task


async def _current_status(db: AsyncSession, task_id: int) -> Optional[TaskStatus]:
    result = await db.execute(select(Task.status).where(Task.id == task_id))
    return result.scalar_one_or_none()


@asynccontextmanager
async def _transaction(db: AsyncSession, task_id: int, action: str):
    """Commit on success; roll back and translate a lost version check into ConflictError."""
    try:
        yield
        await db.commit()
    except StaleDataError:
        await db.rollback()
        status = await _current_status(db, task_id)
        logger.info("Lost race on task %s while trying to %s (now %s)", task_id, action, status)
        shown = status.value if status is not None else "deleted"
        raise ConflictError(f"Task was modified concurrently and is now {shown}; reload and retry")
    except CampusSkillError:
        await db.rollback()
        raise


async def create_task(
    db: AsyncSession,
    identity: Identity,
    title: str,
    description: str,
    skills: Sequence[str],
    deadline: datetime,
    credit_points: Optional[int] = None,
) -> Task:
    if identity.role.grants_credit:
        credits = settings.DEFAULT_TEACHER_CREDITS if credit_points is None else credit_points
    else:
        credits = 0
    if credits < 0:
        raise ValidationError("Credit points cannot be negative")

    task = Task(
        title=title,
        description=description,
        skills=sorted(set(skills)),
        credit_points=credits,
        deadline=deadline,
        status=TaskStatus.OPEN,
        posted_by_id=identity.user_id,
        poster_role=identity.role,
        submission_files=[],
        previous_assignees=[],
    )
    db.add(task)
    await ledger.count_posted(db, identity.user_id)
    await db.commit()
    logger.info("User %s posted task %s (%d credits)", identity.user_id, task.id, credits)
    return task


async def take_task(db: AsyncSession, identity: Identity, task_id: int) -> Task:
    task = await get_task(db, task_id)
    if task.status not in (TaskStatus.OPEN, TaskStatus.REASSIGNED):
        raise InvalidStateError("This task is not available")
    if task.posted_by_id == identity.user_id:
        raise ForbiddenError("You cannot take your own task")
    if task.was_assigned_to(identity.user_id):
        raise AlreadyAssignedError("You were previously assigned to this task and cannot take it again")

    async with _transaction(db, task_id, "take"):
        task.status = TaskStatus.IN_PROGRESS
        task.taken_by_id = identity.user_id
        room = await chat.create_for_task(
            db,
            task.id,
            (task.posted_by_id, identity.user_id),
            f"{identity.name or 'A student'} has taken this task",
            narrator_id=identity.user_id,
        )
        task.chat_room_id = room.id

    logger.info("User %s took task %s", identity.user_id, task_id)
    return task


async def submit_task(
    db: AsyncSession,
    identity: Identity,
    task_id: int,
    content: str,
    files: Optional[List[dict]] = None,
) -> Task:
    task = await get_task(db, task_id)
    if task.taken_by_id != identity.user_id:
        raise ForbiddenError("You are not assigned to this task")
    _require_transition(task, TaskStatus.SUBMITTED, "Task cannot be submitted at this stage")

    async with _transaction(db, task_id, "submit"):
        task.status = TaskStatus.SUBMITTED
        task.submission_content = content
        task.submission_submitted_at = utcnow()
        task.submission_files = list(files or [])
        if task.chat_room_id is not None:
            await chat.append_message(
                db, task.chat_room_id, identity.user_id,
                "Work has been submitted for review", MessageType.SYSTEM,
            )

    logger.info("User %s submitted task %s", identity.user_id, task_id)
    return task


async def review_task(
    db: AsyncSession,
    identity: Identity,
    task_id: int,
    satisfied: bool,
    feedback: str = "",
    rating: Optional[int] = None,
) -> Task:
    """
    Record the poster's review. A satisfied review completes the task and pays
    the taker; an unsatisfied one leaves the task submitted until the poster
    reassigns it.
    """
    task = await get_task(db, task_id)
    if task.posted_by_id != identity.user_id:
        raise ForbiddenError("Only the task poster can review submissions")
    if task.status != TaskStatus.SUBMITTED:
        raise InvalidStateError("Task has not been submitted yet")
    if rating is not None and not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")

    taker_id = task.taken_by_id
    async with _transaction(db, task_id, "review"):
        task.review_satisfied = satisfied
        task.review_feedback = feedback or ""
        task.review_reviewed_at = utcnow()
        if satisfied:
            task.status = TaskStatus.COMPLETED
            # Flush first: a stale review must fail before anything is paid
            await db.flush()
            await _settle_completion(db, identity, task, taker_id, feedback, rating)

    logger.info(
        "Poster %s reviewed task %s (satisfied=%s)", identity.user_id, task_id, satisfied
    )
    return task


async def _settle_completion(
    db: AsyncSession,
    identity: Identity,
    task: Task,
    taker_id: int,
    feedback: str,
    rating: Optional[int],
) -> None:
    awarded = task.credit_points if task.poster_role.grants_credit else 0
    if awarded > 0:
        await ledger.award_completion_credit(db, taker_id, awarded)
    if rating is not None:
        await ledger.record_review_rating(db, taker_id, identity.user_id, rating, feedback, task.id)
    await ledger.count_completed(db, taker_id)
    await ledger.recompute(db, taker_id)

    if task.chat_room_id is not None:
        summary = "Task completed!"
        if task.poster_role.grants_credit:
            summary = f"Task completed! {awarded} credits awarded."
        await chat.deactivate(db, task.chat_room_id, summary, narrator_id=identity.user_id)


async def reassign_task(db: AsyncSession, identity: Identity, task_id: int, reason: str = "") -> Task:
    task = await get_task(db, task_id)
    if task.posted_by_id != identity.user_id:
        raise ForbiddenError("Only the task poster can reassign tasks")
    _require_transition(task, TaskStatus.REASSIGNED, "Task cannot be reassigned at this stage")

    reason = (reason or "").strip()
    async with _transaction(db, task_id, "reassign"):
        task.previous_assignees.append(
            PreviousAssignee(user_id=task.taken_by_id, reason=reason or "Task reassigned", date=utcnow())
        )
        task.status = TaskStatus.REASSIGNED
        task.taken_by_id = None
        task.submission_content = ""
        task.submission_submitted_at = None
        task.submission_files = []
        task.review_satisfied = None
        task.review_feedback = ""
        task.review_reviewed_at = None
        task.reassign_count += 1
        await db.flush()
        if task.chat_room_id is not None:
            await chat.deactivate(
                db, task.chat_room_id,
                f"Task has been reassigned. Reason: {reason or 'Not specified'}",
                narrator_id=identity.user_id,
            )
        task.chat_room_id = None

    logger.info("Poster %s reassigned task %s", identity.user_id, task_id)
    return task


async def delete_task(db: AsyncSession, identity: Identity, task_id: int) -> None:
    task = await get_task(db, task_id)
    if task.posted_by_id != identity.user_id:
        raise ForbiddenError("Not authorized to delete this task")
    if task.status != TaskStatus.OPEN:
        raise InvalidStateError("Cannot delete a task that has been taken")

    async with _transaction(db, task_id, "delete"):
        await db.delete(task)
        await db.flush()
        await ledger.count_posted(db, identity.user_id, -1)

    logger.info("Poster %s deleted task %s", identity.user_id, task_id)


async def list_tasks(
    db: AsyncSession,
    status: Optional[TaskStatus] = None,
    poster_role: Optional[UserRole] = None,
    skill: Optional[str] = None,
) -> List[Task]:
    query = select(Task).order_by(Task.created_at.desc(), Task.id.desc())
    if status is not None:
        query = query.where(Task.status == status)
    if poster_role is not None:
        query = query.where(Task.poster_role == poster_role)
    result = await db.execute(query)
    tasks = list(result.scalars())
    if skill:
        # skills is a JSON list; filtering in Python keeps this dialect-neutral
        tasks = [t for t in tasks if skill in (t.skills or [])]
    return tasks


async def list_my_tasks(db: AsyncSession, identity: Identity) -> dict:
    posted = await db.execute(
        select(Task).where(Task.posted_by_id == identity.user_id).order_by(Task.created_at.desc())
    )
    taken = await db.execute(
        select(Task).where(Task.taken_by_id == identity.user_id).order_by(Task.created_at.desc())
    )
    return {"posted_tasks": list(posted.scalars()), "taken_tasks": list(taken.scalars())}
