"""Shared pytest fixtures.

Database tests run against TEST_DATABASE_URL when it is set (PostgreSQL; the
database name must contain "test"), otherwise against a fresh in-memory
SQLite database per test. Tables are created from the ORM metadata.
"""

import hashlib
import os
import uuid
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from qa_engine.models import Answer, Base, Question, User

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
IS_SQLITE = TEST_DATABASE_URL.startswith("sqlite")

if not IS_SQLITE and "test" not in TEST_DATABASE_URL.rsplit("/", 1)[-1]:
    raise RuntimeError(
        f"TEST_DATABASE_URL must point to a test database (name containing 'test'): {TEST_DATABASE_URL}"
    )

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
MEDIUM_BODY = "x" * 500  # optimal length bucket, +10


class FakeRedis:
    """Rate limiter stand-in; set allowed = 0 to simulate an empty bucket."""

    def __init__(self):
        self.calls: list[str] = []
        self.allowed = 1

    async def eval(self, script, numkeys, key, *args):
        self.calls.append(key)
        return self.allowed


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    if IS_SQLITE:
        test_engine = create_async_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        test_engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


class Factory:
    """Creates committed rows with explicit timestamps."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def user(
        self,
        display_name: Optional[str] = None,
        api_key: Optional[str] = None,
        is_admin: bool = False,
    ) -> User:
        user = User(
            id=uuid.uuid4(),
            display_name=display_name,
            api_key_hash=hashlib.sha256(api_key.encode()).hexdigest() if api_key else None,
            is_admin=is_admin,
            created_at=NOW - timedelta(days=60),
            updated_at=NOW - timedelta(days=60),
        )
        self.db.add(user)
        await self.db.commit()
        return user

    async def question(
        self,
        author: User,
        category: str = "tax",
        created_at: Optional[datetime] = None,
        views_count: int = 0,
        answers_count: int = 0,
        is_hidden: bool = False,
        title: str = "How do I file quarterly estimates?",
    ) -> Question:
        created_at = created_at or NOW - timedelta(days=2)
        question = Question(
            id=uuid.uuid4(),
            author_id=author.id,
            title=title,
            category=category,
            views_count=views_count,
            answers_count=answers_count,
            is_hidden=is_hidden,
            created_at=created_at,
            updated_at=created_at,
        )
        self.db.add(question)
        await self.db.commit()
        return question

    async def answer(
        self,
        question: Question,
        author: User,
        body: str = MEDIUM_BODY,
        response_minutes: float = 600,
        is_hidden: bool = False,
        is_featured: bool = False,
    ) -> Answer:
        created_at = question.created_at + timedelta(minutes=response_minutes)
        answer = Answer(
            id=uuid.uuid4(),
            question_id=question.id,
            author_id=author.id,
            body=body,
            is_hidden=is_hidden,
            is_featured=is_featured,
            created_at=created_at,
            updated_at=created_at,
        )
        self.db.add(answer)
        await self.db.commit()
        return answer


@pytest.fixture
def factory(db: AsyncSession) -> Factory:
    return Factory(db)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest_asyncio.fixture
async def client(session_factory, fake_redis) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with a per-request session on the test database."""
    from qa_engine.database import get_db
    from qa_engine.dependencies import get_redis
    from qa_engine.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return fake_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
