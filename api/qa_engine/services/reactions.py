"""Reaction toggle state machine.

Per (answer, user) the reaction is NONE or one of helpful / expert /
not_helpful:

    NONE -> T   insert, +1 counter of T
    T    -> T   delete, -1 counter of T
    T    -> U   update, -1 counter of T, +1 counter of U

The answer row is locked for the whole read-modify-write and the cached
counters only move through column-expression UPDATEs, so helpful_count and
expert_badge_count always equal the number of matching reaction rows.
not_helpful has no counter; it only matters as the asker's scoring input.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from qa_engine.database import shift_counter
from qa_engine.errors import NotFoundError, ValidationError
from qa_engine.metrics import reactions_total
from qa_engine.models.answer import Answer
from qa_engine.models.question import Question
from qa_engine.models.reaction import AnswerReaction, ReactionType
from qa_engine.services.expertise import apply_reaction_delta

log = structlog.get_logger(__name__)

COUNTER_COLUMNS = {
    ReactionType.helpful.value: "helpful_count",
    ReactionType.expert.value: "expert_badge_count",
}


def parse_reaction_type(value: str) -> ReactionType:
    try:
        return ReactionType(value)
    except ValueError:
        raise ValidationError(f"Invalid reaction type: {value!r}")


@dataclass(frozen=True)
class ReactionOutcome:
    answer_id: uuid.UUID
    action: str  # added | changed | removed
    reaction: Optional[str]  # caller's reaction after the toggle
    previous: Optional[str]
    is_asker: bool
    helpful_count: int
    expert_badge_count: int


async def lock_visible_answer(db: AsyncSession, answer_id: uuid.UUID) -> tuple[Answer, Question]:
    """SELECT ... FOR UPDATE the answer and load its question.

    Raises:
        NotFoundError: Answer missing or hidden.
    """
    result = await db.execute(
        select(Answer)
        .where(Answer.id == answer_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    answer = result.scalar_one_or_none()
    if answer is None or answer.is_hidden:
        raise NotFoundError("Answer not found")
    question = await db.get(Question, answer.question_id)
    return answer, question


async def _shift_counter(
    db: AsyncSession, answer: Answer, question: Question, reaction_type: str, delta: int
) -> None:
    column = COUNTER_COLUMNS.get(reaction_type)
    if column is None:
        return
    previous_count = getattr(answer, column)
    await db.execute(
        update(Answer)
        .where(Answer.id == answer.id)
        .values({column: shift_counter(getattr(Answer, column), delta)})
        .execution_options(synchronize_session=False)
    )
    await apply_reaction_delta(
        db,
        author_id=answer.author_id,
        category=question.category,
        reaction_type=reaction_type,
        delta=delta,
        previous_count=previous_count,
    )


async def toggle_reaction(
    db: AsyncSession,
    answer_id: uuid.UUID,
    user_id: uuid.UUID,
    reaction_type: str,
) -> ReactionOutcome:
    """Apply one toggle for user_id on answer_id. Caller manages commit.

    Any non-author may use any reaction type. The outcome's is_asker tells the
    caller whether the reaction is scoring input (asker reactions only).

    Raises:
        ValidationError: Unknown type, or the author reacting to their own answer.
        NotFoundError: Answer missing or hidden.
    """
    rtype = parse_reaction_type(reaction_type).value
    answer, question = await lock_visible_answer(db, answer_id)
    if answer.author_id == user_id:
        raise ValidationError("You cannot react to your own answer")

    result = await db.execute(
        select(AnswerReaction)
        .where(AnswerReaction.answer_id == answer_id)
        .where(AnswerReaction.user_id == user_id)
        .with_for_update()
    )
    existing = result.scalar_one_or_none()
    previous = existing.type if existing else None

    if existing is None:
        db.add(AnswerReaction(answer_id=answer_id, user_id=user_id, type=rtype))
        await db.flush()
        await _shift_counter(db, answer, question, rtype, +1)
        action, current = "added", rtype
    elif existing.type == rtype:
        await db.delete(existing)
        await db.flush()
        await _shift_counter(db, answer, question, rtype, -1)
        action, current = "removed", None
    else:
        existing.type = rtype
        await db.flush()
        await _shift_counter(db, answer, question, previous, -1)
        await _shift_counter(db, answer, question, rtype, +1)
        action, current = "changed", rtype

    counts = await db.execute(
        select(Answer.helpful_count, Answer.expert_badge_count).where(Answer.id == answer_id)
    )
    helpful_count, expert_badge_count = counts.one()

    is_asker = question.author_id == user_id
    reactions_total.labels(type=rtype, action=action).inc()
    log.info(
        "reaction_toggled",
        answer_id=str(answer_id),
        user_id=str(user_id),
        action=action,
        reaction=current,
        previous=previous,
        is_asker=is_asker,
    )
    return ReactionOutcome(
        answer_id=answer_id,
        action=action,
        reaction=current,
        previous=previous,
        is_asker=is_asker,
        helpful_count=helpful_count,
        expert_badge_count=expert_badge_count,
    )


async def get_user_reaction(db: AsyncSession, answer_id: uuid.UUID, user_id: uuid.UUID) -> Optional[str]:
    result = await db.execute(
        select(AnswerReaction.type)
        .where(AnswerReaction.answer_id == answer_id)
        .where(AnswerReaction.user_id == user_id)
    )
    return result.scalar_one_or_none()
