from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from campusskill.database import get_db
from campusskill.core.auth import Identity, get_identity
from campusskill.models.user import UserRole
from campusskill.schemas.user import (
    UserResponse, RatingCreate, RatingResponse, UserStats, LeaderboardEntry, LeaderboardResponse,
)
from campusskill.services import ledger

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    role: Optional[UserRole] = None,
    limit: Optional[int] = Query(None, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    entries = await ledger.leaderboard(db, role=role, limit=limit)
    users = [
        LeaderboardEntry(
            rank=entry["rank"],
            id=entry["user"].id,
            name=entry["user"].name,
            role=entry["user"].role,
            credit_points=entry["user"].credit_points,
            rating_points=entry["user"].rating_points,
            total_points=entry["user"].total_points,
            tasks_completed=entry["user"].tasks_completed,
            average_rating=entry["user"].average_rating,
        )
        for entry in entries
    ]
    return LeaderboardResponse(count=len(users), users=users)


@router.get("/stats", response_model=UserStats)
async def get_my_stats(
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    return await ledger.get_stats(db, identity.user_id)


@router.get("/profile/{user_id}", response_model=UserResponse)
async def get_profile(user_id: int, db: AsyncSession = Depends(get_db)):
    return await ledger.get_user(db, user_id)


@router.post("/{user_id}/rate", response_model=RatingResponse)
async def rate_user(
    user_id: int,
    rating_in: RatingCreate,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    # Records the rating only; rating points come from task reviews
    user = await ledger.rate_peer(
        db, identity, user_id, rating_in.rating, rating_in.review, rating_in.task_id,
    )
    return RatingResponse(average_rating=user.average_rating, total_ratings=len(user.ratings))
