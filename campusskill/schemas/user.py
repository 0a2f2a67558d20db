from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional
from datetime import datetime
from campusskill.models.user import UserRole

class UserCreate(BaseModel):
    email: EmailStr
    name: str = Field(..., min_length=2, max_length=50)
    password: str = Field(..., min_length=8, max_length=72)
    role: UserRole

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class UserResponse(BaseModel):
    id: int
    email: EmailStr
    name: str
    role: UserRole
    is_active: bool
    credit_points: int
    rating_points: int
    total_points: int
    tasks_completed: int
    tasks_posted: int
    average_rating: float

    model_config = {"from_attributes": True}

class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str
    user: UserResponse

class RatingCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    review: str = ""
    task_id: Optional[int] = None

class RatingResponse(BaseModel):
    average_rating: float
    total_ratings: int

class UserStats(BaseModel):
    credit_points: int
    rating_points: int
    total_points: int
    tasks_completed: int
    tasks_posted: int
    average_rating: float
    total_ratings: int
    rank: int

class LeaderboardEntry(BaseModel):
    rank: int
    id: int
    name: str
    role: UserRole
    credit_points: int
    rating_points: int
    total_points: int
    tasks_completed: int
    average_rating: float

class LeaderboardResponse(BaseModel):
    count: int
    users: List[LeaderboardEntry]
