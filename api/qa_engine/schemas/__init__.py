"""QA engine Pydantic schemas package.

Re-exports the request and response schemas for convenient importing:

    from qa_engine.schemas import ReactionCreate, QualityResponse, ...
"""

from qa_engine.schemas.answer import (
    AcceptCreate,
    AcceptResponse,
    AnswerEdit,
    AnswerResponse,
    QualityResponse,
    RankedAnswerResponse,
)
from qa_engine.schemas.auth import APIKeyCreate, APIKeyResponse
from qa_engine.schemas.expertise import ExpertiseResponse, QAStatsResponse
from qa_engine.schemas.leaderboard import LeaderboardItem, LeaderboardResponse
from qa_engine.schemas.reaction import (
    FlagCreate,
    FlagResponse,
    MyFlagResponse,
    MyReactionResponse,
    ReactionCreate,
    ReactionResponse,
)
from qa_engine.schemas.trending import TrendingQuestionItem, TrendingResponse

__all__ = [
    # Reactions and flags
    "ReactionCreate",
    "ReactionResponse",
    "MyReactionResponse",
    "FlagCreate",
    "FlagResponse",
    "MyFlagResponse",
    # Answers
    "AnswerEdit",
    "AnswerResponse",
    "RankedAnswerResponse",
    "QualityResponse",
    "AcceptCreate",
    "AcceptResponse",
    # Expertise
    "ExpertiseResponse",
    "QAStatsResponse",
    # Ranking
    "LeaderboardItem",
    "LeaderboardResponse",
    "TrendingQuestionItem",
    "TrendingResponse",
    # Auth
    "APIKeyCreate",
    "APIKeyResponse",
]
