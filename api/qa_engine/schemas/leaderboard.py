import uuid
from typing import Optional

from pydantic import BaseModel


class LeaderboardItem(BaseModel):
    rank: int
    user_id: uuid.UUID
    display_name: Optional[str] = None
    expert_score: int
    expert_level: str
    total_answers: int
    accepted_answers: int
    acceptance_rate: int
    helpful_reactions: int
    expert_reactions: int
    total_questions: int
    avg_aqs: int
    star_count: int
    pro_count: int
    useful_count: int


class LeaderboardResponse(BaseModel):
    period: str
    category: Optional[str] = None
    experts: list[LeaderboardItem]
    total_experts: int
