"""Acceptance and edit mutations, plus the hooks called by Q&A CRUD.

At most one answer per question is accepted. Accept/unaccept lock the question
row so two concurrent accepts on the same question serialize; accepting a new
answer unaccepts the previous one in the same transaction.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from qa_engine.errors import NotFoundError, PermissionDeniedError, ValidationError
from qa_engine.models.answer import Answer
from qa_engine.models.quality import AnswerQualityMetric
from qa_engine.models.question import Question
from qa_engine.services.expertise import (
    apply_acceptance_delta,
    record_answer_created,
    record_question_created,
)
from qa_engine.services.reactions import lock_visible_answer
from qa_engine.services.recompute import RecomputeResult, TriggerKind, run_recompute
from qa_engine.services.timeutil import utcnow

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AcceptOutcome:
    question_id: uuid.UUID
    accepted_answer_id: Optional[uuid.UUID]
    previous_answer_id: Optional[uuid.UUID]

    @property
    def changed(self) -> bool:
        return self.accepted_answer_id != self.previous_answer_id


async def _lock_question(db: AsyncSession, question_id: uuid.UUID) -> Question:
    result = await db.execute(
        select(Question)
        .where(Question.id == question_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    question = result.scalar_one_or_none()
    if question is None or question.is_hidden:
        raise NotFoundError("Question not found")
    return question


async def _current_accepted(db: AsyncSession, question_id: uuid.UUID) -> Optional[Answer]:
    result = await db.execute(
        select(Answer)
        .where(Answer.question_id == question_id)
        .where(Answer.is_accepted.is_(True))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()


async def _set_accepted(db: AsyncSession, answer: Answer, accepted: bool) -> None:
    await db.execute(
        update(Answer)
        .where(Answer.id == answer.id)
        .values(is_accepted=accepted, accepted_at=utcnow() if accepted else None)
        .execution_options(synchronize_session=False)
    )
    await apply_acceptance_delta(db, answer.author_id, 1 if accepted else -1)


async def accept_answer(
    db: AsyncSession,
    question_id: uuid.UUID,
    answer_id: uuid.UUID,
    user_id: uuid.UUID,
) -> AcceptOutcome:
    """Mark answer_id as the question's accepted answer. Caller manages commit.

    Raises:
        NotFoundError: Question or answer missing, hidden, or not related.
        PermissionDeniedError: Caller is not the question's asker.
        ValidationError: The asker tries to accept their own answer.
    """
    question = await _lock_question(db, question_id)
    if question.author_id != user_id:
        raise PermissionDeniedError("Only the question author can accept an answer")

    result = await db.execute(
        select(Answer)
        .where(Answer.id == answer_id)
        .where(Answer.question_id == question_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    answer = result.scalar_one_or_none()
    if answer is None or answer.is_hidden:
        raise NotFoundError("Answer not found")
    if answer.author_id == user_id:
        raise ValidationError("You cannot accept your own answer")

    current = await _current_accepted(db, question_id)
    previous_id = current.id if current else None
    if current is not None and current.id == answer.id:
        return AcceptOutcome(question_id, answer.id, previous_id)

    if current is not None:
        await _set_accepted(db, current, False)
    await _set_accepted(db, answer, True)

    log.info(
        "answer_accepted",
        question_id=str(question_id),
        answer_id=str(answer_id),
        previous_answer_id=str(previous_id) if previous_id else None,
    )
    return AcceptOutcome(question_id, answer.id, previous_id)


async def unaccept_answer(db: AsyncSession, question_id: uuid.UUID, user_id: uuid.UUID) -> AcceptOutcome:
    """Clear the question's accepted answer, if any. Caller manages commit."""
    question = await _lock_question(db, question_id)
    if question.author_id != user_id:
        raise PermissionDeniedError("Only the question author can unaccept an answer")

    current = await _current_accepted(db, question_id)
    if current is None:
        return AcceptOutcome(question_id, None, None)

    await _set_accepted(db, current, False)
    log.info("answer_unaccepted", question_id=str(question_id), answer_id=str(current.id))
    return AcceptOutcome(question_id, None, current.id)


async def edit_answer(db: AsyncSession, answer_id: uuid.UUID, user_id: uuid.UUID, body: str) -> Answer:
    """Replace an answer body and bump edit_count. Caller manages commit.

    An identical body is a no-op and does not count as an edit.
    """
    if not body or not body.strip():
        raise ValidationError("Answer body must not be empty")

    answer, _ = await lock_visible_answer(db, answer_id)
    if answer.author_id != user_id:
        raise PermissionDeniedError("Only the answer author can edit it")
    if answer.body == body:
        return answer

    await db.execute(
        update(Answer)
        .where(Answer.id == answer_id)
        .values(body=body, edit_count=Answer.edit_count + 1, edited_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.refresh(answer)
    log.info("answer_edited", answer_id=str(answer_id), edit_count=answer.edit_count)
    return answer


@dataclass
class RankedAnswer:
    answer: Answer
    aqs: Optional[int]
    label: Optional[str]


async def list_answers_by_quality(db: AsyncSession, question_id: uuid.UUID) -> list[RankedAnswer]:
    """Visible answers: accepted first, then AQS, then newest. Unscored answers sort last."""
    question = await db.get(Question, question_id)
    if question is None or question.is_hidden:
        raise NotFoundError("Question not found")

    result = await db.execute(
        select(Answer, AnswerQualityMetric.aqs, AnswerQualityMetric.label)
        .outerjoin(AnswerQualityMetric, AnswerQualityMetric.answer_id == Answer.id)
        .where(Answer.question_id == question_id)
        .where(Answer.is_hidden.is_(False))
        .order_by(
            Answer.is_accepted.desc(),
            func.coalesce(AnswerQualityMetric.aqs, -1).desc(),
            Answer.created_at.desc(),
        )
    )
    return [RankedAnswer(answer=row[0], aqs=row[1], label=row[2]) for row in result.all()]


# ---------------------------------------------------------------------------
# Hooks for the Q&A CRUD collaborator
# ---------------------------------------------------------------------------


async def on_question_created(db: AsyncSession, question_id: uuid.UUID) -> None:
    """Count a new question toward its asker's expertise and commit."""
    question = await db.get(Question, question_id)
    if question is None:
        raise NotFoundError("Question not found")
    await record_question_created(db, question.author_id)
    await db.commit()


async def on_answer_created(db: AsyncSession, answer_id: uuid.UUID) -> Optional[RecomputeResult]:
    """Count a new answer on its question and toward its author's expertise, then score it.

    The counter update commits first; the initial NEW_ANSWER score runs in its
    own transaction and may fail without undoing it.
    """
    answer = await db.get(Answer, answer_id)
    if answer is None:
        raise NotFoundError("Answer not found")
    question = await db.get(Question, answer.question_id)
    await db.execute(
        update(Question)
        .where(Question.id == question.id)
        .values(answers_count=Question.answers_count + 1)
        .execution_options(synchronize_session=False)
    )
    await record_answer_created(db, answer.author_id, question.category, answer.created_at)
    await db.commit()
    return await run_recompute(db, answer_id, TriggerKind.NEW_ANSWER)
