"""Seed the badge catalog into the database.

Upserts every entry of qa_engine.services.badges.BADGE_DEFINITIONS into the
badges table. Titles, descriptions and thresholds are overwritten from code,
so re-running after a catalog change brings the table up to date.

Usage:
    cd api
    DATABASE_URL="postgresql+asyncpg://..." python -m fixtures.seed_badges
"""
import asyncio

from sqlalchemy import func, select

from qa_engine.database import async_session_factory
from qa_engine.models.badge import Badge
from qa_engine.services.badges import sync_badge_catalog


async def seed() -> None:
    async with async_session_factory() as session:
        count = await sync_badge_catalog(session)
        await session.commit()

        result = await session.execute(select(func.count(Badge.id)))
        print(f"Synced {count} badge definitions ({result.scalar_one()} rows in badges).")


if __name__ == "__main__":
    asyncio.run(seed())
