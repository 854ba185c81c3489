"""Global pytest fixtures for MAKER.

This module provides shared fixtures for testing including:
- A mock async database session
- ORM object builders for users, quests and progress records
- An in-memory UserQuestStore for the quest progress engine
- Real sessions on a throwaway SQLite file, or on Postgres when TEST_DATABASE_URL is set
- An httpx client bound to the app with auth dependencies overridden
"""

import os
import re

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")

from collections.abc import AsyncGenerator
from dataclasses import replace
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.schema import CreateColumn

from maker.database import asyncpg_url, session_factory
from maker.models import Base, Quest, User, WorkshopRole
from maker.services.quest_progress import COMPLETED, IN_PROGRESS, ProgressRecord
from maker.services.quest_state import COMPLETE


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ===========================================
# DATABASE SESSION FIXTURES
# ===========================================


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncMock, None]:
    """Mock async database session for unit and route tests."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.rollback = AsyncMock()
    session.delete = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    session.add_all = MagicMock()

    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)

    yield session


def scalar_result(value) -> MagicMock:
    """A Result whose scalar_one_or_none()/scalar() returns ``value``."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.scalar.return_value = value
    return result


def scalars_result(values: list) -> MagicMock:
    """A Result whose scalars().all() returns ``values``."""
    result = MagicMock()
    result.scalars.return_value.all.return_value = values
    return result


# ===========================================
# ORM OBJECT BUILDERS
# ===========================================


def make_user(**overrides) -> User:
    fields = {
        "id": uuid4(),
        "email": f"user-{uuid4().hex[:8]}@example.com",
        "display_name": "Test User",
        "password_hash": "not-a-real-hash",
        "bio": None,
        "xp": 0,
        "level": 1,
        "status": "active",
        "created_at": utcnow(),
        "updated_at": utcnow(),
    }
    fields.update(overrides)
    return User(**fields)


def make_quest(**overrides) -> Quest:
    fields = {
        "id": uuid4(),
        "title": "Light The Tower",
        "description": "Wire an LED lighthouse.",
        "difficulty": "beginner",
        "xp_reward": 100,
        "status": "published",
        "is_active": True,
        "created_by": None,
        "created_at": utcnow(),
        "updated_at": utcnow(),
    }
    fields.update(overrides)
    return Quest(**fields)


# ===========================================
# REAL DATABASE FIXTURES
# ===========================================


@compiles(CreateColumn, "sqlite")
def _sqlite_timestamps(element, compiler, **kw):
    """SQLite has no now(); timestamp defaults use CURRENT_TIMESTAMP there."""
    text = compiler.visit_create_column(element, **kw)
    return re.sub(r"DEFAULT \(?now\(\)\)?", "DEFAULT CURRENT_TIMESTAMP", text)


@pytest_asyncio.fixture
async def sql_session(tmp_path) -> AsyncGenerator[AsyncSession, None]:
    """A real AsyncSession on a throwaway SQLite file, configured like the app's."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'maker.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with session_factory(engine)() as session:
        yield session
    await engine.dispose()


@pytest_asyncio.fixture
async def pg_session() -> AsyncGenerator[AsyncSession, None]:
    """A real AsyncSession on Postgres. TEST_DATABASE_URL must name a scratch database."""
    url = os.getenv("TEST_DATABASE_URL")
    if not url:
        pytest.skip("TEST_DATABASE_URL is not set")
    engine = create_async_engine(asyncpg_url(url))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    async with session_factory(engine)() as session:
        yield session
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


# ===========================================
# IN-MEMORY PROGRESS STORE
# ===========================================


class InMemoryUserQuestStore:
    """UserQuestStore keeping records in a dict, with the same write guards."""

    def __init__(self):
        self.records: dict[tuple[UUID, UUID], ProgressRecord] = {}
        self.fail_next = 0
        self.writes = 0

    def _maybe_fail(self):
        if self.fail_next > 0:
            self.fail_next -= 1
            raise OperationalError("UPDATE user_quests", {}, Exception("connection reset"))

    def _key_for(self, user_quest_id: UUID) -> tuple[UUID, UUID]:
        return next(k for k, r in self.records.items() if r.id == user_quest_id)

    async def get(self, user_id, quest_id):
        return self.records.get((user_id, quest_id))

    async def create_if_absent(self, user_id, quest_id):
        self._maybe_fail()
        key = (user_id, quest_id)
        if key not in self.records:
            self.writes += 1
            self.records[key] = ProgressRecord(
                id=uuid4(),
                user_id=user_id,
                quest_id=quest_id,
                status=IN_PROGRESS,
                progress=0,
                started_at=utcnow(),
            )
        return self.records[key]

    async def raise_progress(self, user_quest_id, progress):
        self._maybe_fail()
        key = self._key_for(user_quest_id)
        record = self.records[key]
        if record.status == COMPLETED or record.progress >= progress:
            return None
        self.writes += 1
        self.records[key] = replace(record, progress=progress, status=IN_PROGRESS)
        return self.records[key]

    async def complete(self, user_quest_id):
        self._maybe_fail()
        key = self._key_for(user_quest_id)
        record = self.records[key]
        if record.status != COMPLETED:
            self.writes += 1
            self.records[key] = replace(
                record, status=COMPLETED, progress=COMPLETE, completed_at=utcnow()
            )
        return self.records[key]


@pytest.fixture
def store() -> InMemoryUserQuestStore:
    return InMemoryUserQuestStore()


# ===========================================
# HTTP CLIENT
# ===========================================


@pytest.fixture
def app():
    from maker.main import app as fastapi_app

    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app, db_session) -> AsyncGenerator[AsyncClient, None]:
    """Client with the database dependency replaced by the mock session."""
    from maker.database import get_db

    async def _db():
        yield db_session

    app.dependency_overrides[get_db] = _db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def act_as(app):
    """Override authentication so requests run as ``user`` holding ``role``."""
    from maker.auth import Actor, get_current_actor, get_current_user

    def _act_as(user: User, role: WorkshopRole | None) -> Actor:
        actor = Actor(user=user, role=role)
        app.dependency_overrides[get_current_user] = lambda: user
        app.dependency_overrides[get_current_actor] = lambda: actor
        return actor

    return _act_as
