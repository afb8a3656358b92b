import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class TrendingQuestionItem(BaseModel):
    id: uuid.UUID
    title: str
    category: str
    author_id: uuid.UUID
    author_name: Optional[str] = None
    views_count: int
    answers_count: int
    reactions_count: int
    trending_score: float
    created_at: datetime


class TrendingResponse(BaseModel):
    period: str
    trending: list[TrendingQuestionItem]
