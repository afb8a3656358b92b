"""Per-user token bucket rate limiting in Redis.

Reads (quality, expertise, leaderboard, trending) and writes (reactions,
flags, acceptance, edits, admin actions) draw from separate buckets so a
burst of reaction toggles cannot lock a user out of browsing.

Key format: qa:rl:{user_id}:{bucket}
"""
import time
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException

from qa_engine.config import Settings, settings
from qa_engine.dependencies import CurrentUser, RedisClient
from qa_engine.models.user import User

# KEYS[1] = bucket key
# ARGV[1] = capacity, ARGV[2] = refill rate (tokens/s), ARGV[3] = now (unix seconds)
# Returns 1 when a token was consumed, 0 when the bucket is empty.
TOKEN_BUCKET_LUA = """
local key = KEYS[1]
local capacity = tonumber(ARGV[1])
local refill_rate = tonumber(ARGV[2])
local now = tonumber(ARGV[3])

local state = redis.call('HMGET', key, 'tokens', 'ts')
local tokens = tonumber(state[1]) or capacity
local ts = tonumber(state[2]) or now

tokens = math.min(capacity, tokens + (now - ts) * refill_rate)

local allowed = 0
if tokens >= 1 then
    tokens = tokens - 1
    allowed = 1
end

redis.call('HSET', key, 'tokens', tokens, 'ts', now)
redis.call('EXPIRE', key, 120)
return allowed
"""


def bucket_capacity(bucket: str, app_settings: Settings) -> int:
    if bucket == "read":
        return app_settings.rate_limit_read_per_minute
    return app_settings.rate_limit_write_per_minute


async def check_rate_limit(
    user: User,
    redis_client: aioredis.Redis,
    bucket: str,
    app_settings: Settings,
) -> None:
    """Consume one token from the user's bucket or raise HTTP 429.

    Args:
        user: Authenticated caller; the bucket is keyed by user id.
        redis_client: Async Redis client from app.state.
        bucket: "read" or "write".
        app_settings: Source of the per-minute capacities.
    """
    capacity = bucket_capacity(bucket, app_settings)
    # Full refill over one minute
    allowed = await redis_client.eval(
        TOKEN_BUCKET_LUA,
        1,
        f"qa:rl:{user.id}:{bucket}",
        capacity,
        capacity / 60.0,
        time.time(),
    )
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded",
            headers={"Retry-After": "60"},
        )


def require_rate_limit(bucket: str):
    """FastAPI dependency factory for one bucket."""

    async def _check(user: CurrentUser, redis_client: RedisClient) -> None:
        await check_rate_limit(user, redis_client, bucket, settings)

    return _check


ReadRateLimit = Annotated[None, Depends(require_rate_limit("read"))]
WriteRateLimit = Annotated[None, Depends(require_rate_limit("write"))]
