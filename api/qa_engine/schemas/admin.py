"""Pydantic schemas for the admin debug and maintenance endpoints."""

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class StoredMetric(BaseModel):
    aqs: int
    label: str
    details: Optional[dict[str, Any]] = None
    last_trigger: Optional[str] = None
    computed_at: Optional[datetime] = None


class FreshMetric(BaseModel):
    aqs: int
    label: str
    details: dict[str, int]


class DebugAnswer(BaseModel):
    id: uuid.UUID
    question_id: uuid.UUID
    author_id: uuid.UUID
    body_length: int
    is_accepted: bool
    is_hidden: bool
    helpful_count: int
    expert_badge_count: int
    edit_count: int
    created_at: datetime


class DebugReaction(BaseModel):
    user_id: uuid.UUID
    type: str
    is_asker: bool
    created_at: datetime


class DebugFlag(BaseModel):
    user_id: uuid.UUID
    reason: str
    note: Optional[str] = None
    created_at: datetime


class QualityDebugResponse(BaseModel):
    answer: DebugAnswer
    metric: Optional[StoredMetric] = None
    fresh: FreshMetric
    asker_id: uuid.UUID
    reactions: list[DebugReaction]
    flags: list[DebugFlag]
    author_expert_score: int
    author_expert_level: str


class RecomputeRequest(BaseModel):
    trigger: str = "RECONCILE"


class RecomputeResponse(BaseModel):
    answer_id: uuid.UUID
    aqs: int
    label: str
    previous_aqs: Optional[int] = None
    previous_label: Optional[str] = None
    changed: bool


class ReconcileRequest(BaseModel):
    max_age_days: Optional[int] = Field(None, ge=0)
    limit: Optional[int] = Field(None, ge=1, le=1000)


class ReconcileResponse(BaseModel):
    processed: int
    updated: int
    failed: int


class ExpertiseParityResponse(BaseModel):
    """Stored, freshly derived and leaderboard scores for one user.

    All three agree once the stored row has been refreshed; a difference
    means the incremental counters drifted.
    """

    user_id: uuid.UUID
    stored_score: Optional[int] = None
    stored_level: Optional[str] = None
    fresh_score: int
    fresh_level: str
    leaderboard_score: Optional[int] = None
    in_sync: bool


class BadgeGrantRequest(BaseModel):
    code: str


class BadgeGrantResponse(BaseModel):
    user_id: uuid.UUID
    code: str
    source: str
    created: bool
    awarded_at: datetime


class PendingBadgesGrantResponse(BaseModel):
    user_id: uuid.UUID
    granted: list[str]
