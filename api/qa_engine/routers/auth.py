"""API key issuance.

POST /api/v1/keys         -- register a user and issue a key (no auth)
GET  /api/v1/keys/verify  -- check the caller's key
"""

import hashlib
import secrets

from fastapi import APIRouter, HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from qa_engine.dependencies import CurrentUser, DbSession
from qa_engine.models.user import User
from qa_engine.schemas.auth import APIKeyCreate, APIKeyResponse

router = APIRouter(prefix="/api/v1", tags=["auth"])


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode()).hexdigest()


@router.post("/keys", response_model=APIKeyResponse, status_code=201)
async def issue_api_key(body: APIKeyCreate, db: DbSession) -> APIKeyResponse:
    """Register a user and return their API key once.

    Only the SHA-256 hash is stored. A duplicate email is a 409; a hash
    collision on the generated key is retried once with a fresh key.
    """
    if body.email:
        result = await db.execute(select(User.id).where(User.email == body.email))
        if result.scalar_one_or_none() is not None:
            raise HTTPException(status_code=409, detail="Email already registered")

    raw_key = secrets.token_urlsafe(32)
    user = User(api_key_hash=hash_api_key(raw_key), email=body.email, display_name=body.display_name)
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raw_key = secrets.token_urlsafe(32)
        user = User(api_key_hash=hash_api_key(raw_key), email=body.email, display_name=body.display_name)
        db.add(user)
        await db.commit()

    await db.refresh(user)
    return APIKeyResponse(api_key=raw_key, user_id=user.id)


@router.get("/keys/verify")
async def verify_api_key(user: CurrentUser) -> dict:
    return {"valid": True, "user_id": str(user.id), "is_admin": user.is_admin}
