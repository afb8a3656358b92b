"""Pydantic schemas for answer quality, acceptance and edits."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AnswerEdit(BaseModel):
    body: str = Field(..., min_length=1)


class AnswerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    question_id: uuid.UUID
    author_id: uuid.UUID
    body: str
    is_accepted: bool
    accepted_at: Optional[datetime] = None
    helpful_count: int
    expert_badge_count: int
    edit_count: int
    edited_at: Optional[datetime] = None
    created_at: datetime


class RankedAnswerResponse(AnswerResponse):
    """Answer plus its stored AQS; aqs and label are null until first scored."""

    aqs: Optional[int] = None
    label: Optional[str] = None


class QualityResponse(BaseModel):
    answer_id: uuid.UUID
    aqs: int
    label: str
    last_trigger: Optional[str] = None
    computed_at: Optional[datetime] = None


class AcceptCreate(BaseModel):
    answer_id: uuid.UUID


class AcceptResponse(BaseModel):
    question_id: uuid.UUID
    accepted_answer_id: Optional[uuid.UUID] = None
    previous_answer_id: Optional[uuid.UUID] = None
    changed: bool
