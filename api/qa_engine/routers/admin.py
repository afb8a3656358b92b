"""Admin-only quality and expertise maintenance endpoints.

GET  /api/v1/admin/answers/{answer_id}/quality            -- debug view
POST /api/v1/admin/answers/{answer_id}/quality/recompute  -- force recompute
POST /api/v1/admin/quality/reconcile                      -- one reconciliation batch
GET  /api/v1/admin/users/{user_id}/expertise              -- score parity check
POST /api/v1/admin/users/{user_id}/badges                 -- grant a badge
POST /api/v1/admin/users/{user_id}/badges/pending         -- grant pending auto badges
"""

import uuid
from typing import Optional

import structlog
from fastapi import APIRouter
from sqlalchemy import select

from qa_engine.dependencies import DbSession, RequireAdmin
from qa_engine.errors import QAEngineError, to_http_exception
from qa_engine.middleware.rate_limiter import ReadRateLimit, WriteRateLimit
from qa_engine.models.badge import BadgeSource
from qa_engine.models.expertise import UserExpertiseStats
from qa_engine.schemas.admin import (
    BadgeGrantRequest,
    BadgeGrantResponse,
    ExpertiseParityResponse,
    PendingBadgesGrantResponse,
    QualityDebugResponse,
    RecomputeRequest,
    RecomputeResponse,
    ReconcileRequest,
    ReconcileResponse,
)
from qa_engine.services.badges import grant_badge, grant_pending_badges
from qa_engine.services.expertise import compute_expertise_snapshot
from qa_engine.services.leaderboard import get_leaderboard_score
from qa_engine.services.recompute import (
    batch_recompute_stale,
    get_answer_quality_debug,
    parse_trigger_kind,
    recompute_answer,
)

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.get("/answers/{answer_id}/quality", response_model=QualityDebugResponse)
async def quality_debug(
    answer_id: uuid.UUID,
    admin: RequireAdmin,
    db: DbSession,
    _rate: ReadRateLimit,
) -> QualityDebugResponse:
    """Stored metric next to a fresh evaluation, with the raw signals."""
    try:
        data = await get_answer_quality_debug(db, answer_id)
    except QAEngineError as exc:
        raise to_http_exception(exc)
    return QualityDebugResponse.model_validate(data)


@router.post("/answers/{answer_id}/quality/recompute", response_model=RecomputeResponse)
async def force_recompute(
    answer_id: uuid.UUID,
    admin: RequireAdmin,
    db: DbSession,
    _rate: WriteRateLimit,
    body: Optional[RecomputeRequest] = None,
) -> RecomputeResponse:
    """Recompute synchronously; unlike the request-path dispatcher, errors surface."""
    try:
        trigger = parse_trigger_kind(body.trigger if body else "RECONCILE")
        result = await recompute_answer(db, answer_id, trigger)
    except QAEngineError as exc:
        await db.rollback()
        raise to_http_exception(exc)
    await db.commit()
    return RecomputeResponse(
        answer_id=result.answer_id,
        aqs=result.aqs,
        label=result.label,
        previous_aqs=result.previous_aqs,
        previous_label=result.previous_label,
        changed=result.changed,
    )


@router.post("/quality/reconcile", response_model=ReconcileResponse)
async def reconcile(
    admin: RequireAdmin,
    db: DbSession,
    _rate: WriteRateLimit,
    body: Optional[ReconcileRequest] = None,
) -> ReconcileResponse:
    body = body or ReconcileRequest()
    batch = await batch_recompute_stale(db, max_age_days=body.max_age_days, limit=body.limit)
    return ReconcileResponse(processed=batch.processed, updated=batch.updated, failed=batch.failed)


@router.get("/users/{user_id}/expertise", response_model=ExpertiseParityResponse)
async def expertise_parity(
    user_id: uuid.UUID,
    admin: RequireAdmin,
    db: DbSession,
    _rate: ReadRateLimit,
) -> ExpertiseParityResponse:
    """Compare the stored score, a fresh derivation and the all-time leaderboard."""
    result = await db.execute(select(UserExpertiseStats).where(UserExpertiseStats.user_id == user_id))
    stored = result.scalar_one_or_none()
    snapshot = await compute_expertise_snapshot(db, user_id)
    leaderboard_score = await get_leaderboard_score(db, user_id)

    fresh_score = snapshot.expert_score
    in_sync = (stored is None or stored.expert_score == fresh_score) and (
        leaderboard_score is None or leaderboard_score == fresh_score
    )
    if not in_sync:
        log.warning(
            "expertise_drift",
            user_id=str(user_id),
            stored_score=stored.expert_score if stored else None,
            fresh_score=fresh_score,
            leaderboard_score=leaderboard_score,
        )
    return ExpertiseParityResponse(
        user_id=user_id,
        stored_score=stored.expert_score if stored else None,
        stored_level=stored.expert_level if stored else None,
        fresh_score=fresh_score,
        fresh_level=snapshot.expert_level.value,
        leaderboard_score=leaderboard_score,
        in_sync=in_sync,
    )


@router.post("/users/{user_id}/badges", response_model=BadgeGrantResponse, status_code=201)
async def grant_user_badge(
    user_id: uuid.UUID,
    body: BadgeGrantRequest,
    admin: RequireAdmin,
    db: DbSession,
    _rate: WriteRateLimit,
) -> BadgeGrantResponse:
    """Grant any catalog badge, including manual ones. Re-granting is a no-op."""
    try:
        user_badge, created = await grant_badge(db, user_id, body.code, BadgeSource.admin)
        response = BadgeGrantResponse(
            user_id=user_id,
            code=body.code,
            source=user_badge.source,
            created=created,
            awarded_at=user_badge.awarded_at,
        )
    except QAEngineError as exc:
        await db.rollback()
        raise to_http_exception(exc)
    await db.commit()
    return response


@router.post("/users/{user_id}/badges/pending", response_model=PendingBadgesGrantResponse)
async def grant_user_pending_badges(
    user_id: uuid.UUID,
    admin: RequireAdmin,
    db: DbSession,
    _rate: WriteRateLimit,
) -> PendingBadgesGrantResponse:
    try:
        granted = await grant_pending_badges(db, user_id)
    except QAEngineError as exc:
        await db.rollback()
        raise to_http_exception(exc)
    await db.commit()
    return PendingBadgesGrantResponse(user_id=user_id, granted=granted)
