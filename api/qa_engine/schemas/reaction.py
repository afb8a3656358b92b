"""Pydantic schemas for reactions and flags on answers.

Reaction types and flag reasons are validated by the services (422 on unknown
values) so the allowed sets live in one place, the model enums.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ReactionCreate(BaseModel):
    type: str  # helpful | expert | not_helpful


class ReactionResponse(BaseModel):
    """Result of one toggle, with the answer's counters after it."""

    answer_id: uuid.UUID
    action: str  # added | changed | removed
    reaction: Optional[str] = None
    is_asker: bool
    helpful_count: int
    expert_badge_count: int


class MyReactionResponse(BaseModel):
    answer_id: uuid.UUID
    reaction: Optional[str] = None


class FlagCreate(BaseModel):
    reason: str  # SPAM | ABUSE | MISLEADING | LOW_QUALITY | OTHER
    note: Optional[str] = Field(None, max_length=500)


class FlagResponse(BaseModel):
    answer_id: uuid.UUID
    action: str  # created | updated | removed | unchanged
    reason: Optional[str] = None


class MyFlagResponse(BaseModel):
    answer_id: uuid.UUID
    flagged: bool
    reason: Optional[str] = None
    note: Optional[str] = None
    created_at: Optional[datetime] = None
