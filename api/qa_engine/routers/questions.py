"""Question-level endpoints: acceptance, ranked answers, trending.

POST   /api/v1/questions/{question_id}/accept   -- asker accepts an answer
DELETE /api/v1/questions/{question_id}/accept   -- asker clears acceptance
GET    /api/v1/questions/{question_id}/answers  -- answers ordered by quality
GET    /api/v1/questions/trending               -- trending questions
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Query

from qa_engine.dependencies import CurrentUser, DbSession
from qa_engine.errors import QAEngineError, to_http_exception
from qa_engine.middleware.rate_limiter import ReadRateLimit, WriteRateLimit
from qa_engine.schemas.answer import AcceptCreate, AcceptResponse, RankedAnswerResponse
from qa_engine.schemas.trending import TrendingQuestionItem, TrendingResponse
from qa_engine.services.answers import accept_answer, list_answers_by_quality, unaccept_answer
from qa_engine.services.recompute import TriggerKind, run_question_recompute
from qa_engine.services.transactions import commit_with_retry
from qa_engine.services.trending import get_trending_questions

router = APIRouter(prefix="/api/v1", tags=["questions"])


@router.get("/questions/trending", response_model=TrendingResponse)
async def trending_questions(
    user: CurrentUser,
    db: DbSession,
    _rate: ReadRateLimit,
    limit: Optional[int] = Query(None, ge=1),
    period: str = Query("week"),
) -> TrendingResponse:
    """Newest questions ranked by views, answers and reactions with recency boost."""
    try:
        trending = await get_trending_questions(db, limit=limit, period=period)
    except QAEngineError as exc:
        raise to_http_exception(exc)
    return TrendingResponse(
        period=period,
        trending=[
            TrendingQuestionItem(
                id=q.id,
                title=q.title,
                category=q.category,
                author_id=q.author_id,
                author_name=q.author_name,
                views_count=q.views_count,
                answers_count=q.answers_count,
                reactions_count=q.reactions_count,
                trending_score=q.trending_score,
                created_at=q.created_at,
            )
            for q in trending
        ],
    )


@router.post("/questions/{question_id}/accept", response_model=AcceptResponse)
async def accept(
    question_id: uuid.UUID,
    body: AcceptCreate,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> AcceptResponse:
    """Accept an answer; any previously accepted answer is unaccepted.

    All of the question's answers are rescored afterwards.
    """
    user_id = user.id
    try:
        outcome = await commit_with_retry(
            db, "accept_answer", lambda: accept_answer(db, question_id, body.answer_id, user_id)
        )
    except QAEngineError as exc:
        raise to_http_exception(exc)

    if outcome.changed:
        await run_question_recompute(db, question_id, TriggerKind.ACCEPT)
    return AcceptResponse(
        question_id=question_id,
        accepted_answer_id=outcome.accepted_answer_id,
        previous_answer_id=outcome.previous_answer_id,
        changed=outcome.changed,
    )


@router.delete("/questions/{question_id}/accept", response_model=AcceptResponse)
async def unaccept(
    question_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    _rate: WriteRateLimit,
) -> AcceptResponse:
    user_id = user.id
    try:
        outcome = await commit_with_retry(
            db, "unaccept_answer", lambda: unaccept_answer(db, question_id, user_id)
        )
    except QAEngineError as exc:
        raise to_http_exception(exc)

    if outcome.changed:
        await run_question_recompute(db, question_id, TriggerKind.ACCEPT)
    return AcceptResponse(
        question_id=question_id,
        accepted_answer_id=None,
        previous_answer_id=outcome.previous_answer_id,
        changed=outcome.changed,
    )


@router.get("/questions/{question_id}/answers", response_model=list[RankedAnswerResponse])
async def ranked_answers(
    question_id: uuid.UUID,
    user: CurrentUser,
    db: DbSession,
    _rate: ReadRateLimit,
) -> list[RankedAnswerResponse]:
    """Accepted answer first, then by AQS, then newest first."""
    try:
        ranked = await list_answers_by_quality(db, question_id)
    except QAEngineError as exc:
        raise to_http_exception(exc)
    return [
        RankedAnswerResponse.model_validate(item.answer).model_copy(
            update={"aqs": item.aqs, "label": item.label}
        )
        for item in ranked
    ]
