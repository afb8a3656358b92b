"""Pydantic schemas for API key issuance."""

import uuid
from typing import Optional

from pydantic import BaseModel, Field


class APIKeyCreate(BaseModel):
    """Register a user and issue their API key."""

    email: Optional[str] = Field(None, max_length=255)
    display_name: Optional[str] = Field(None, max_length=100)


class APIKeyResponse(BaseModel):
    """The api_key is shown exactly once; only its SHA-256 hash is stored."""

    api_key: str
    user_id: uuid.UUID
    message: str = "Store this key securely -- it cannot be retrieved again"
