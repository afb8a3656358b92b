from sqlalchemy import case
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from qa_engine.config import settings

engine = create_async_engine(settings.database_url, echo=settings.debug)

async_session_factory = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def get_db():
    """FastAPI dependency: yields AsyncSession per request."""
    async with async_session_factory() as session:
        yield session


def upsert_insert(db: AsyncSession, model):
    """Return a dialect-specific INSERT that supports on_conflict_do_update().

    PostgreSQL in production, SQLite for the in-memory test database. Both
    accept index_elements=..., so callers never name constraints.
    """
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert(model)
    return postgresql.insert(model)


def shift_counter(column, delta: int):
    """column + delta as a SQL expression; decrements floor at zero."""
    if delta >= 0:
        return column + delta
    return case((column + delta < 0, 0), else_=column + delta)
