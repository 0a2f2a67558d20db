"""
Pytest configuration for CampusSkill tests.

Every test gets its own file-backed SQLite database so that two sessions can
interleave against the same rows.
"""
import os
import tempfile
from datetime import datetime, timedelta, timezone

# Set up test environment before importing the app
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{tempfile.mkdtemp()}/campusskill-test.db")
os.environ.setdefault("SECRET_KEY", "test-secret")

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from campusskill.core.auth import Identity
from campusskill.database import Base
from campusskill.models.user import User, UserRole
from campusskill.models import task as _task_models, chat as _chat_models  # noqa: F401  (register tables)
from campusskill.services import lifecycle


# -----------------------------------------------------------------------------
# Database Fixtures
# -----------------------------------------------------------------------------
@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
async def make_user(db: AsyncSession, name: str, role: UserRole = UserRole.STUDENT) -> Identity:
    user = User(
        email=f"{name.lower()}@campus.edu",
        name=name,
        role=role,
        hashed_password="not-a-real-hash",
        skills=[],
        ratings=[],
    )
    db.add(user)
    await db.commit()
    return Identity(user_id=user.id, role=role, name=name)


async def post_task(db: AsyncSession, poster: Identity, credit_points=None, title: str = "Build a landing page"):
    return await lifecycle.create_task(
        db,
        poster,
        title=title,
        description="Responsive page for the robotics club",
        skills=["html", "css"],
        deadline=datetime.now(timezone.utc) + timedelta(days=7),
        credit_points=credit_points,
    )


async def load_user(db: AsyncSession, identity: Identity) -> User:
    user = await db.get(User, identity.user_id)
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def teacher(db):
    return await make_user(db, "Grace", UserRole.TEACHER)


@pytest_asyncio.fixture
async def alice(db):
    return await make_user(db, "Alice")


@pytest_asyncio.fixture
async def bob(db):
    return await make_user(db, "Bob")


