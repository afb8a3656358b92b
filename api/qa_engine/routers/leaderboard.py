"""GET /api/v1/leaderboard -- top answerers by expert score."""

from typing import Optional

from fastapi import APIRouter, Query

from qa_engine.config import settings
from qa_engine.dependencies import CurrentUser, DbSession
from qa_engine.errors import QAEngineError, to_http_exception
from qa_engine.middleware.rate_limiter import ReadRateLimit
from qa_engine.schemas.leaderboard import LeaderboardItem, LeaderboardResponse
from qa_engine.services.leaderboard import get_leaderboard

router = APIRouter(prefix="/api/v1", tags=["leaderboard"])


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    user: CurrentUser,
    db: DbSession,
    _rate: ReadRateLimit,
    period: str = Query("all"),
    category: Optional[str] = Query(None, max_length=50),
    limit: int = Query(settings.leaderboard_default_limit, ge=1, le=settings.leaderboard_max_limit),
) -> LeaderboardResponse:
    """Rank authors by the expert score formula over the period's answers.

    period is one of all, month, week; category narrows to one question category.
    """
    try:
        entries = await get_leaderboard(db, period=period, category=category, limit=limit)
    except QAEngineError as exc:
        raise to_http_exception(exc)
    return LeaderboardResponse(
        period=period,
        category=category,
        experts=[
            LeaderboardItem(
                rank=e.rank,
                user_id=e.user_id,
                display_name=e.display_name,
                expert_score=e.expert_score,
                expert_level=e.expert_level.value,
                total_answers=e.total_answers,
                accepted_answers=e.accepted_answers,
                acceptance_rate=e.acceptance_rate,
                helpful_reactions=e.helpful_reactions,
                expert_reactions=e.expert_reactions,
                total_questions=e.total_questions,
                avg_aqs=e.avg_aqs,
                star_count=e.star_count,
                pro_count=e.pro_count,
                useful_count=e.useful_count,
            )
            for e in entries
        ],
        total_experts=len(entries),
    )
