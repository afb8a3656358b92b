import hashlib
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from qa_engine.config import settings
from qa_engine.database import get_db
from qa_engine.models.user import User

DbSession = Annotated[AsyncSession, Depends(get_db)]

api_key_header = APIKeyHeader(name=settings.api_key_header_name, auto_error=True)


async def get_redis(request: Request) -> aioredis.Redis:
    """Redis client created in the app lifespan."""
    return request.app.state.redis


async def get_current_user(
    raw_key: str = Security(api_key_header),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the caller from the X-API-Key header.

    Keys are stored as SHA-256 hashes. Missing and unknown keys both get 401.
    """
    key_hash = hashlib.sha256(raw_key.encode()).hexdigest()
    result = await db.execute(select(User).where(User.api_key_hash == key_hash))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
RedisClient = Annotated[aioredis.Redis, Depends(get_redis)]


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Gate for /admin routes: 403 unless users.is_admin is set."""
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


RequireAdmin = Annotated[User, Depends(require_admin)]
