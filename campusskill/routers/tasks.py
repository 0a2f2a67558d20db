from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime, timezone
from typing import List, Optional
from campusskill.database import get_db
from campusskill.core.auth import Identity, get_identity, get_current_student
from campusskill.models.task import TaskStatus
from campusskill.models.user import UserRole
from campusskill.realtime.hub import BroadcastHub, get_hub, TASK_TAKEN, TASK_SUBMITTED, TASK_COMPLETED
from campusskill.schemas.task import (
    TaskCreate, TaskSubmit, TaskReview, TaskReassign, TaskResponse, MyTasksResponse,
)
from campusskill.services import lifecycle

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=List[TaskResponse])
async def list_tasks(
    task_status: Optional[TaskStatus] = Query(None, alias="status"),
    poster_role: Optional[UserRole] = None,
    skill: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    return await lifecycle.list_tasks(db, status=task_status, poster_role=poster_role, skill=skill)


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_in: TaskCreate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    deadline = task_in.deadline
    if deadline.tzinfo is None:
        deadline = deadline.replace(tzinfo=timezone.utc)
    if deadline <= datetime.now(timezone.utc):
        raise HTTPException(400, "Deadline must be in the future")

    return await lifecycle.create_task(
        db,
        identity,
        title=task_in.title,
        description=task_in.description,
        skills=task_in.skills,
        deadline=deadline,
        credit_points=task_in.credit_points,
    )


@router.get("/my-tasks", response_model=MyTasksResponse)
async def my_tasks(
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    return await lifecycle.list_my_tasks(db, identity)


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(task_id: int, db: AsyncSession = Depends(get_db)):
    return await lifecycle.get_task(db, task_id)


@router.put("/{task_id}/take", response_model=TaskResponse)
async def take_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_current_student),
    hub: BroadcastHub = Depends(get_hub),
):
    task = await lifecycle.take_task(db, identity, task_id)
    await hub.notify_user(
        task.posted_by_id, TASK_TAKEN, f"{identity.name} has taken your task \"{task.title}\"",
        taskId=task.id,
    )
    return task


@router.put("/{task_id}/submit", response_model=TaskResponse)
async def submit_task(
    task_id: int,
    submission: TaskSubmit,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
    hub: BroadcastHub = Depends(get_hub),
):
    task = await lifecycle.submit_task(
        db, identity, task_id, submission.content, [f.model_dump() for f in submission.files],
    )
    await hub.notify_user(
        task.posted_by_id, TASK_SUBMITTED, f"Work has been submitted for \"{task.title}\"",
        taskId=task.id,
    )
    return task


@router.put("/{task_id}/review", response_model=TaskResponse)
async def review_task(
    task_id: int,
    review: TaskReview,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
    hub: BroadcastHub = Depends(get_hub),
):
    task = await lifecycle.review_task(
        db, identity, task_id, review.satisfied, review.feedback, review.rating,
    )
    if task.status == TaskStatus.COMPLETED:
        credits = task.credit_points if task.poster_role.grants_credit else 0
        await hub.notify_user(
            task.taken_by_id, TASK_COMPLETED, f"\"{task.title}\" was marked complete",
            taskId=task.id, credits=credits,
        )
    return task


@router.put("/{task_id}/reassign", response_model=TaskResponse)
async def reassign_task(
    task_id: int,
    body: TaskReassign,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    return await lifecycle.reassign_task(db, identity, task_id, body.reason)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    await lifecycle.delete_task(db, identity, task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
