"""
Credit & Rating Ledger.

Point fields on User are only ever changed with SQL-side increments
(``credit_points = credit_points + :n``), never by writing back a value read
earlier, so concurrent awards to the same user cannot lose updates. Derived
fields (total_points, average_rating) are recomputed in SQL as well.

Rating points have exactly one source: a rating given while the poster
completes a task (record_review_rating). The standalone peer rating path
(rate_peer) only stores the qualitative entry.
"""
import logging
from typing import List, Optional
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campusskill.config import settings
from campusskill.core.auth import Identity
from campusskill.errors import NotFoundError, ForbiddenError, DuplicateRatingError, ValidationError
from campusskill.models.user import User, UserRole, Rating

logger = logging.getLogger(__name__)


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _increment(db: AsyncSession, user_id: int, **deltas) -> None:
    values = {name: getattr(User, name) + delta for name, delta in deltas.items()}
    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFoundError("User not found")


async def award_completion_credit(db: AsyncSession, user_id: int, points: int) -> None:
    """Credit a taker for a completed task. Only called from the completion branch of a review."""
    if points < 0:
        raise ValidationError("Credit points cannot be negative")
    await _increment(db, user_id, credit_points=points)
    logger.info("Awarded %d credit points to user %s", points, user_id)


async def count_completed(db: AsyncSession, user_id: int) -> None:
    await _increment(db, user_id, tasks_completed=1)


async def count_posted(db: AsyncSession, user_id: int, delta: int = 1) -> None:
    await _increment(db, user_id, tasks_posted=delta)


async def record_rating(
    db: AsyncSession,
    user_id: int,
    rated_by_id: int,
    rating: int,
    review: str = "",
    task_id: Optional[int] = None,
) -> Rating:
    """
    Append a rating entry. Never touches rating_points.

    At most one entry per (rater, task) for the rated user; untied ratings
    (task_id None) are not limited.
    """
    if not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")
    if rated_by_id == user_id:
        raise ForbiddenError("You cannot rate yourself")
    await get_user(db, user_id)

    if task_id is not None:
        existing = await db.execute(
            select(Rating.id)
            .where(Rating.user_id == user_id)
            .where(Rating.rated_by_id == rated_by_id)
            .where(Rating.task_id == task_id)
        )
        if existing.first() is not None:
            raise DuplicateRatingError("You have already rated this user for this task")

    entry = Rating(
        user_id=user_id,
        rated_by_id=rated_by_id,
        task_id=task_id,
        rating=rating,
        review=review or "",
    )
    db.add(entry)
    try:
        await db.flush()
    except IntegrityError:
        # A concurrent insert for the same (rater, task) won; the whole operation is void
        await db.rollback()
        raise DuplicateRatingError("You have already rated this user for this task")
    return entry


async def _accrue_rating_points(db: AsyncSession, user_id: int, rating: int) -> int:
    points = rating * settings.RATING_POINTS_PER_STAR
    await _increment(db, user_id, rating_points=points)
    logger.info("Accrued %d rating points to user %s", points, user_id)
    return points


async def record_review_rating(
    db: AsyncSession,
    user_id: int,
    rated_by_id: int,
    rating: int,
    review: str,
    task_id: int,
) -> Rating:
    """Rating given by a poster while completing a task; the one path that accrues rating points."""
    entry = await record_rating(db, user_id, rated_by_id, rating, review, task_id)
    await _accrue_rating_points(db, user_id, rating)
    return entry


async def recompute(db: AsyncSession, user_id: int) -> User:
    """Refresh the derived fields from the stored ones and return the fresh row."""
    avg_rating = (
        select(func.avg(Rating.rating))
        .where(Rating.user_id == user_id)
        .scalar_subquery()
    )
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(
            total_points=User.credit_points + User.rating_points,
            average_rating=func.coalesce(func.round(avg_rating, 1), 0),
        )
        .execution_options(synchronize_session=False)
    )
    user = await get_user(db, user_id)
    await db.refresh(user)
    return user


async def rank(db: AsyncSession, user_id: int) -> int:
    """1 + number of users with strictly more total points."""
    own_points = (await db.execute(select(User.total_points).where(User.id == user_id))).scalar_one_or_none()
    if own_points is None:
        raise NotFoundError("User not found")
    result = await db.execute(
        select(func.count(User.id)).where(User.total_points > own_points)
    )
    return result.scalar_one() + 1


async def rate_peer(
    db: AsyncSession,
    identity: Identity,
    user_id: int,
    rating: int,
    review: str = "",
    task_id: Optional[int] = None,
) -> User:
    """Standalone rating of another user. Records the entry only; no rating points."""
    await record_rating(db, user_id, identity.user_id, rating, review, task_id)
    user = await recompute(db, user_id)
    await db.commit()
    logger.info("User %s rated user %s (%d stars)", identity.user_id, user_id, rating)
    return user


async def get_stats(db: AsyncSession, user_id: int) -> dict:
    user = await get_user(db, user_id)
    await db.refresh(user)
    return {
        "credit_points": user.credit_points,
        "rating_points": user.rating_points,
        "total_points": user.total_points,
        "tasks_completed": user.tasks_completed,
        "tasks_posted": user.tasks_posted,
        "average_rating": user.average_rating,
        "total_ratings": len(user.ratings),
        "rank": await rank(db, user_id),
    }


async def leaderboard(db: AsyncSession, role: Optional[UserRole] = None, limit: Optional[int] = None) -> List[dict]:
    query = select(User).order_by(User.total_points.desc(), User.tasks_completed.desc(), User.id)
    if role is not None:
        query = query.where(User.role == role)
    result = await db.execute(query.limit(limit or settings.LEADERBOARD_DEFAULT_LIMIT))
    return [
        {"rank": index, "user": user}
        for index, user in enumerate(result.scalars(), start=1)
    ]
