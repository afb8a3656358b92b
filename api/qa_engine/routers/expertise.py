"""User expertise endpoints.

GET  /api/v1/users/{user_id}/expertise          -- stats, level, badges, domains
POST /api/v1/users/{user_id}/expertise/refresh  -- full rebuild (self or admin)
GET  /api/v1/users/{user_id}/qa-stats           -- public profile Q&A stats
"""

import uuid

from fastapi import APIRouter, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from qa_engine.dependencies import CurrentUser, DbSession
from qa_engine.errors import QAEngineError, to_http_exception
from qa_engine.middleware.rate_limiter import ReadRateLimit, WriteRateLimit
from qa_engine.models.expertise import UserExpertiseStats
from qa_engine.schemas.expertise import (
    BadgeItem,
    DomainExpertiseItem,
    ExpertiseResponse,
    FeaturedAnswerItem,
    NextLevelItem,
    QAStatsResponse,
)
from qa_engine.services.badges import BADGES_BY_CODE, evaluate_badges, get_awarded_badges, pending_badges
from qa_engine.services.expertise import (
    get_domain_expertise,
    get_next_level,
    get_or_create_expertise,
    get_user_qa_stats,
    refresh_expertise,
)

router = APIRouter(prefix="/api/v1", tags=["expertise"])


async def build_expertise_response(
    db: AsyncSession, user_id: uuid.UUID, stats: UserExpertiseStats
) -> ExpertiseResponse:
    domains = await get_domain_expertise(db, user_id)
    awarded = await get_awarded_badges(db, user_id)
    eligible = evaluate_badges(stats, domains)

    next_level = get_next_level(stats.expert_score)
    return ExpertiseResponse(
        user_id=user_id,
        total_answers=stats.total_answers,
        accepted_answers=stats.accepted_answers,
        helpful_reactions=stats.helpful_reactions,
        expert_reactions=stats.expert_reactions,
        featured_answers=stats.featured_answers,
        total_questions=stats.total_questions,
        expert_score=stats.expert_score,
        expert_level=stats.expert_level,
        top_category=stats.top_category,
        next_level=NextLevelItem(
            level=next_level.level.value,
            min_score=next_level.min_score,
            points_needed=next_level.points_needed,
            progress=next_level.progress,
        )
        if next_level
        else None,
        computed_at=stats.computed_at,
        badges=[
            BadgeItem(
                code=badge.code,
                title=badge.title,
                description=badge.description,
                category=badge.category,
                is_manual=badge.is_manual,
                source=user_badge.source,
                awarded_at=user_badge.awarded_at,
            )
            for user_badge, badge in awarded
        ],
        pending_badges=[
            BadgeItem(
                code=code,
                title=BADGES_BY_CODE[code].title,
                description=BADGES_BY_CODE[code].description,
                category=BADGES_BY_CODE[code].category.value,
                is_manual=BADGES_BY_CODE[code].is_manual,
            )
            for code in pending_badges(eligible, [badge.code for _, badge in awarded])
        ],
        domains=[DomainExpertiseItem.model_validate(d) for d in domains],
    )


@router.get("/users/{user_id}/expertise", response_model=ExpertiseResponse)
async def user_expertise(
    user_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    _rate: ReadRateLimit,
) -> ExpertiseResponse:
    """Stored expertise; built from the signal tables on first read.

    Pending badges are eligible but not yet granted. Reading never grants.
    """
    try:
        stats = await get_or_create_expertise(db, user_id)
        response = await build_expertise_response(db, user_id, stats)
    except QAEngineError as exc:
        raise to_http_exception(exc)
    await db.commit()
    return response


@router.post("/users/{user_id}/expertise/refresh", response_model=ExpertiseResponse)
async def refresh_user_expertise(
    user_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> ExpertiseResponse:
    """Rebuild stats from scratch. Users may refresh themselves; admins anyone."""
    if user.id != user_id and not user.is_admin:
        raise HTTPException(status_code=403, detail="Cannot refresh another user's expertise")
    try:
        stats = await refresh_expertise(db, user_id)
        response = await build_expertise_response(db, user_id, stats)
    except QAEngineError as exc:
        raise to_http_exception(exc)
    await db.commit()
    return response


@router.get("/users/{user_id}/qa-stats", response_model=QAStatsResponse)
async def user_qa_stats(
    user_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    _rate: ReadRateLimit,
) -> QAStatsResponse:
    try:
        stats = await get_user_qa_stats(db, user_id)
    except QAEngineError as exc:
        raise to_http_exception(exc)
    return QAStatsResponse(
        user_id=stats.user_id,
        total_answers=stats.total_answers,
        accepted_answers=stats.accepted_answers,
        expert_answers=stats.expert_answers,
        helpful_reactions=stats.helpful_reactions,
        expert_reactions=stats.expert_reactions,
        total_questions=stats.total_questions,
        expert_score=stats.expert_score,
        expert_level=stats.expert_level.value,
        top_category=stats.top_category,
        featured_answers=[
            FeaturedAnswerItem(
                answer_id=f.answer_id,
                question_id=f.question_id,
                question_title=f.question_title,
                helpful_count=f.helpful_count,
                expert_badge_count=f.expert_badge_count,
            )
            for f in stats.featured_answers
        ],
    )
