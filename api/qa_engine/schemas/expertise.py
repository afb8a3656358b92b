"""Pydantic schemas for expertise, badges and public Q&A stats.

ExpertiseResponse is the top-level response for GET /api/v1/users/{user_id}/expertise.
QAStatsResponse backs the public profile's Q&A section.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class NextLevelItem(BaseModel):
    level: str
    min_score: int
    points_needed: int
    progress: int


class DomainExpertiseItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category: str
    total_answers: int
    expert_answers: int
    helpful_answers: int
    last_activity_at: Optional[datetime] = None


class BadgeItem(BaseModel):
    code: str
    title: str
    description: str
    category: str
    is_manual: bool
    source: Optional[str] = None
    awarded_at: Optional[datetime] = None


class ExpertiseResponse(BaseModel):
    user_id: uuid.UUID
    total_answers: int
    accepted_answers: int
    helpful_reactions: int
    expert_reactions: int
    featured_answers: int
    total_questions: int
    expert_score: int
    expert_level: str
    top_category: Optional[str] = None
    next_level: Optional[NextLevelItem] = None
    computed_at: Optional[datetime] = None
    badges: list[BadgeItem]
    pending_badges: list[BadgeItem]
    domains: list[DomainExpertiseItem]


class FeaturedAnswerItem(BaseModel):
    answer_id: uuid.UUID
    question_id: uuid.UUID
    question_title: str
    helpful_count: int
    expert_badge_count: int


class QAStatsResponse(BaseModel):
    user_id: uuid.UUID
    total_answers: int
    accepted_answers: int
    expert_answers: int
    helpful_reactions: int
    expert_reactions: int
    total_questions: int
    expert_score: int
    expert_level: str
    top_category: Optional[str] = None
    featured_answers: list[FeaturedAnswerItem]
