from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from campusskill.models.task import TaskStatus
from campusskill.models.user import UserRole

class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=2000)
    skills: List[str] = Field(..., min_length=1)
    credit_points: Optional[int] = Field(None, ge=0)  # ignored unless posted by a teacher
    deadline: datetime

class SubmissionFile(BaseModel):
    name: str
    url: str

class TaskSubmit(BaseModel):
    content: str = Field(..., min_length=1)
    files: List[SubmissionFile] = []

class TaskReview(BaseModel):
    satisfied: bool
    feedback: str = ""
    rating: Optional[int] = Field(None, ge=1, le=5)

class TaskReassign(BaseModel):
    reason: str = ""

class PreviousAssigneeResponse(BaseModel):
    user_id: int
    reason: str
    date: Optional[datetime]

    model_config = {"from_attributes": True}

class TaskResponse(BaseModel):
    id: int
    title: str
    description: str
    skills: List[str]
    credit_points: int
    deadline: datetime
    status: TaskStatus
    posted_by_id: int
    poster_role: UserRole
    taken_by_id: Optional[int]
    submission_content: str
    submission_submitted_at: Optional[datetime]
    submission_files: List[SubmissionFile]
    review_satisfied: Optional[bool]
    review_feedback: str
    review_reviewed_at: Optional[datetime]
    chat_room_id: Optional[int]
    reassign_count: int
    previous_assignees: List[PreviousAssigneeResponse]
    created_at: Optional[datetime]

    model_config = {"from_attributes": True}

class MyTasksResponse(BaseModel):
    posted_tasks: List[TaskResponse]
    taken_tasks: List[TaskResponse]
