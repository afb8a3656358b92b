"""Answer signal and quality endpoints.

POST   /api/v1/answers/{answer_id}/reactions     -- toggle the caller's reaction
GET    /api/v1/answers/{answer_id}/reactions/me  -- caller's current reaction
POST   /api/v1/answers/{answer_id}/flags         -- flag (or update flag reason)
DELETE /api/v1/answers/{answer_id}/flags         -- remove the caller's flag
GET    /api/v1/answers/{answer_id}/flags/me      -- caller's current flag
PATCH  /api/v1/answers/{answer_id}               -- author edits the body
GET    /api/v1/answers/{answer_id}/quality       -- stored AQS and label

Every mutation commits first and recomputes afterwards, so the response never
depends on the recompute succeeding.
"""

import uuid

from fastapi import APIRouter

from qa_engine.dependencies import CurrentUser, DbSession
from qa_engine.errors import QAEngineError, to_http_exception
from qa_engine.middleware.rate_limiter import ReadRateLimit, WriteRateLimit
from qa_engine.schemas.answer import AnswerEdit, AnswerResponse, QualityResponse
from qa_engine.schemas.reaction import (
    FlagCreate,
    FlagResponse,
    MyFlagResponse,
    MyReactionResponse,
    ReactionCreate,
    ReactionResponse,
)
from qa_engine.services.answers import edit_answer
from qa_engine.services.flags import flag_answer, get_user_flag, unflag_answer
from qa_engine.services.reactions import get_user_reaction, toggle_reaction
from qa_engine.services.recompute import TriggerKind, get_answer_quality, run_recompute
from qa_engine.services.transactions import commit_with_retry

router = APIRouter(prefix="/api/v1", tags=["answers"])


@router.post("/answers/{answer_id}/reactions", response_model=ReactionResponse)
async def react_to_answer(
    answer_id: uuid.UUID,
    body: ReactionCreate,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> ReactionResponse:
    """Toggle a helpful / expert / not_helpful reaction.

    Same type again removes it, a different type switches it. Only the
    question asker's reaction triggers an immediate score recompute.
    """
    user_id = user.id
    try:
        outcome = await commit_with_retry(
            db, "toggle_reaction", lambda: toggle_reaction(db, answer_id, user_id, body.type)
        )
    except QAEngineError as exc:
        raise to_http_exception(exc)

    if outcome.is_asker:
        await run_recompute(db, answer_id, TriggerKind.REACTION)

    return ReactionResponse(
        answer_id=answer_id,
        action=outcome.action,
        reaction=outcome.reaction,
        is_asker=outcome.is_asker,
        helpful_count=outcome.helpful_count,
        expert_badge_count=outcome.expert_badge_count,
    )


@router.get("/answers/{answer_id}/reactions/me", response_model=MyReactionResponse)
async def my_reaction(
    answer_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    _rate: ReadRateLimit,
) -> MyReactionResponse:
    reaction = await get_user_reaction(db, answer_id, user.id)
    return MyReactionResponse(answer_id=answer_id, reaction=reaction)


@router.post("/answers/{answer_id}/flags", response_model=FlagResponse)
async def flag(
    answer_id: uuid.UUID,
    body: FlagCreate,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> FlagResponse:
    """Flag an answer. Flagging again updates the reason and note."""
    user_id = user.id
    try:
        outcome = await commit_with_retry(
            db, "flag_answer", lambda: flag_answer(db, answer_id, user_id, body.reason, body.note)
        )
    except QAEngineError as exc:
        raise to_http_exception(exc)

    if outcome.changed:
        await run_recompute(db, answer_id, TriggerKind.FLAG)
    return FlagResponse(answer_id=answer_id, action=outcome.action, reason=outcome.reason)


@router.delete("/answers/{answer_id}/flags", response_model=FlagResponse)
async def unflag(
    answer_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> FlagResponse:
    """Remove the caller's flag; a no-op when there is none."""
    user_id = user.id
    try:
        outcome = await commit_with_retry(db, "unflag_answer", lambda: unflag_answer(db, answer_id, user_id))
    except QAEngineError as exc:
        raise to_http_exception(exc)

    if outcome.changed:
        await run_recompute(db, answer_id, TriggerKind.FLAG)
    return FlagResponse(answer_id=answer_id, action=outcome.action, reason=outcome.reason)


@router.get("/answers/{answer_id}/flags/me", response_model=MyFlagResponse)
async def my_flag(
    answer_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    _rate: ReadRateLimit,
) -> MyFlagResponse:
    existing = await get_user_flag(db, answer_id, user.id)
    if existing is None:
        return MyFlagResponse(answer_id=answer_id, flagged=False)
    return MyFlagResponse(
        answer_id=answer_id,
        flagged=True,
        reason=existing.reason,
        note=existing.note,
        created_at=existing.created_at,
    )


@router.patch("/answers/{answer_id}", response_model=AnswerResponse)
async def update_answer(
    answer_id: uuid.UUID,
    body: AnswerEdit,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> AnswerResponse:
    """Replace the answer body (author only) and rescore it."""
    user_id = user.id
    try:
        answer = await commit_with_retry(
            db, "edit_answer", lambda: edit_answer(db, answer_id, user_id, body.body)
        )
    except QAEngineError as exc:
        raise to_http_exception(exc)

    response = AnswerResponse.model_validate(answer)
    await run_recompute(db, answer_id, TriggerKind.EDIT)
    return response


@router.get("/answers/{answer_id}/quality", response_model=QualityResponse)
async def answer_quality(
    answer_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    _rate: ReadRateLimit,
) -> QualityResponse:
    try:
        quality = await get_answer_quality(db, answer_id)
    except QAEngineError as exc:
        raise to_http_exception(exc)
    return QualityResponse(
        answer_id=quality.answer_id,
        aqs=quality.aqs,
        label=quality.label,
        last_trigger=quality.last_trigger,
        computed_at=quality.computed_at,
    )
