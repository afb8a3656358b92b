import uuid
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from qa_engine.errors import ValidationError
from qa_engine.metrics import flags_total
from qa_engine.models.flag import AnswerFlag, FlagReason
from qa_engine.services.reactions import lock_visible_answer

log = structlog.get_logger(__name__)

MAX_NOTE_LENGTH = 500


def parse_flag_reason(value: str) -> FlagReason:
    try:
        return FlagReason(value.upper())
    except (ValueError, AttributeError):
        raise ValidationError(f"Invalid flag reason: {value!r}")


@dataclass(frozen=True)
class FlagOutcome:
    answer_id: uuid.UUID
    action: str  # created | updated | removed | unchanged
    reason: Optional[str]

    @property
    def changed(self) -> bool:
        """True when the score inputs changed and a FLAG recompute is due."""
        return self.action != "unchanged"


async def _get_flag(db: AsyncSession, answer_id: uuid.UUID, user_id: uuid.UUID) -> Optional[AnswerFlag]:
    result = await db.execute(
        select(AnswerFlag)
        .where(AnswerFlag.answer_id == answer_id)
        .where(AnswerFlag.user_id == user_id)
        .with_for_update()
    )
    return result.scalar_one_or_none()


async def flag_answer(
    db: AsyncSession,
    answer_id: uuid.UUID,
    user_id: uuid.UUID,
    reason: str,
    note: Optional[str] = None,
) -> FlagOutcome:
    """Create the user's flag, or update its reason and note. Caller manages commit.

    Flags never touch reaction counters; they only feed the AQS flag penalty.
    """
    flag_reason = parse_flag_reason(reason).value
    if note is not None and len(note) > MAX_NOTE_LENGTH:
        raise ValidationError(f"Flag note must be at most {MAX_NOTE_LENGTH} characters")

    answer, _ = await lock_visible_answer(db, answer_id)
    if answer.author_id == user_id:
        raise ValidationError("You cannot flag your own answer")

    existing = await _get_flag(db, answer_id, user_id)
    if existing is None:
        db.add(AnswerFlag(answer_id=answer_id, user_id=user_id, reason=flag_reason, note=note))
        action = "created"
    elif existing.reason == flag_reason and existing.note == note:
        action = "unchanged"
    else:
        existing.reason = flag_reason
        existing.note = note
        action = "updated"
    await db.flush()

    flags_total.labels(reason=flag_reason, action=action).inc()
    log.info(
        "answer_flagged",
        answer_id=str(answer_id),
        user_id=str(user_id),
        reason=flag_reason,
        action=action,
    )
    return FlagOutcome(answer_id=answer_id, action=action, reason=flag_reason)


async def unflag_answer(db: AsyncSession, answer_id: uuid.UUID, user_id: uuid.UUID) -> FlagOutcome:
    """Remove the user's flag. Removing an absent flag is a no-op."""
    await lock_visible_answer(db, answer_id)
    existing = await _get_flag(db, answer_id, user_id)
    if existing is None:
        return FlagOutcome(answer_id=answer_id, action="unchanged", reason=None)

    reason = existing.reason
    await db.delete(existing)
    await db.flush()

    flags_total.labels(reason=reason, action="removed").inc()
    log.info("answer_unflagged", answer_id=str(answer_id), user_id=str(user_id), reason=reason)
    return FlagOutcome(answer_id=answer_id, action="removed", reason=None)


async def get_user_flag(db: AsyncSession, answer_id: uuid.UUID, user_id: uuid.UUID) -> Optional[AnswerFlag]:
    result = await db.execute(
        select(AnswerFlag)
        .where(AnswerFlag.answer_id == answer_id)
        .where(AnswerFlag.user_id == user_id)
    )
    return result.scalar_one_or_none()
