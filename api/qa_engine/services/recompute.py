"""Recompute dispatcher: turns an answer's current signals into a stored AQS.

recompute_answer() is the only writer of answer_quality_metrics. It always
re-reads every signal from the database under the answer's row lock, so the
result depends on current state only and running it twice changes nothing but
computed_at.

Request handlers never call recompute_answer() directly. They commit the
signal mutation first and then call run_recompute(), which wraps the work in
its own transaction with a timeout and swallows failures: a broken recompute
leaves the previous score in place and is repaired by the next trigger or the
reconciliation sweep.
"""

import asyncio
import enum
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from qa_engine.config import settings
from qa_engine.database import upsert_insert
from qa_engine.errors import NotFoundError, RecomputeFailure, ValidationError
from qa_engine.metrics import recompute_duration, recompute_total
from qa_engine.models.answer import Answer
from qa_engine.models.flag import AnswerFlag
from qa_engine.models.quality import AnswerQualityMetric
from qa_engine.models.question import Question
from qa_engine.models.reaction import AnswerReaction
from qa_engine.services.expertise import compute_expertise_snapshot
from qa_engine.services.quality import AnswerSignals, AQSWeights, QualityLabel, compute_aqs
from qa_engine.services.signals import AuthorSignals, extract_content_signals
from qa_engine.services.timeutil import ensure_utc, utcnow

log = structlog.get_logger(__name__)


class TriggerKind(str, enum.Enum):
    REACTION = "REACTION"
    FLAG = "FLAG"
    EDIT = "EDIT"
    ACCEPT = "ACCEPT"
    NEW_ANSWER = "NEW_ANSWER"
    RECONCILE = "RECONCILE"


LABEL_RANK = {
    QualityLabel.NORMAL.value: 0,
    QualityLabel.USEFUL.value: 1,
    QualityLabel.PRO.value: 2,
    QualityLabel.STAR.value: 3,
}


def parse_trigger_kind(value: str) -> TriggerKind:
    try:
        return TriggerKind(value.upper())
    except (ValueError, AttributeError):
        raise ValidationError(f"Unknown trigger kind: {value!r}")


@dataclass(frozen=True)
class RecomputeResult:
    answer_id: uuid.UUID
    aqs: int
    label: str
    previous_aqs: Optional[int]
    previous_label: Optional[str]

    @property
    def changed(self) -> bool:
        return self.aqs != self.previous_aqs or self.label != self.previous_label


async def load_answer_signals(db: AsyncSession, answer: Answer, question: Question) -> AnswerSignals:
    """Read the calculator's inputs for one answer from the signal tables."""
    asker_result = await db.execute(
        select(AnswerReaction.type)
        .where(AnswerReaction.answer_id == answer.id)
        .where(AnswerReaction.user_id == question.author_id)
    )
    asker_reaction = asker_result.scalar_one_or_none()

    flag_result = await db.execute(
        select(AnswerFlag.reason).where(AnswerFlag.answer_id == answer.id)
    )
    flag_reasons = tuple(sorted(flag_result.scalars().all()))

    author_result = await db.execute(
        select(
            func.count(Answer.id),
            func.coalesce(func.sum(case((Answer.is_accepted.is_(True), 1), else_=0)), 0),
        )
        .where(Answer.author_id == answer.author_id)
        .where(Answer.id != answer.id)
        .where(Answer.is_hidden.is_(False))
    )
    other_answers, other_accepted = author_result.one()

    response = ensure_utc(answer.created_at) - ensure_utc(question.created_at)

    return AnswerSignals(
        body_length=len(answer.body),
        is_accepted=answer.is_accepted,
        asker_reaction=asker_reaction,
        helpful_count=answer.helpful_count,
        expert_badge_count=answer.expert_badge_count,
        flag_reasons=flag_reasons,
        edit_count=answer.edit_count,
        response_minutes=response.total_seconds() / 60,
        content=extract_content_signals(answer.body, question.category),
        author=AuthorSignals(other_answers=int(other_answers), other_accepted=int(other_accepted)),
    )


async def _lock_answer(db: AsyncSession, answer_id: uuid.UUID) -> tuple[Answer, Question]:
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


async def recompute_answer(
    db: AsyncSession,
    answer_id: uuid.UUID,
    trigger: TriggerKind,
    weights: Optional[AQSWeights] = None,
) -> RecomputeResult:
    """Recompute and upsert one answer's AQS. Caller manages commit.

    Raises:
        NotFoundError: The answer does not exist.
    """
    weights = weights or settings.aqs
    answer, question = await _lock_answer(db, answer_id)

    signals = await load_answer_signals(db, answer, question)
    result = compute_aqs(signals, weights)

    previous = await db.execute(
        select(AnswerQualityMetric.aqs, AnswerQualityMetric.label).where(
            AnswerQualityMetric.answer_id == answer_id
        )
    )
    previous_row = previous.one_or_none()
    previous_aqs = previous_row[0] if previous_row else None
    previous_label = previous_row[1] if previous_row else None

    values = {
        "aqs": result.aqs,
        "label": result.label.value,
        "details": result.breakdown,
        "last_trigger": trigger.value,
        "computed_at": utcnow(),
    }
    stmt = upsert_insert(db, AnswerQualityMetric).values(answer_id=answer_id, **values)
    stmt = stmt.on_conflict_do_update(index_elements=["answer_id"], set_=values)
    await db.execute(stmt)

    outcome = RecomputeResult(
        answer_id=answer_id,
        aqs=result.aqs,
        label=result.label.value,
        previous_aqs=previous_aqs,
        previous_label=previous_label,
    )
    log.info(
        "aqs_recomputed",
        answer_id=str(answer_id),
        trigger=trigger.value,
        aqs=outcome.aqs,
        label=outcome.label,
        previous_aqs=previous_aqs,
        changed=outcome.changed,
    )
    if previous_label is not None and LABEL_RANK[outcome.label] > LABEL_RANK.get(previous_label, 0):
        log.info(
            "aqs_label_upgraded",
            answer_id=str(answer_id),
            author_id=str(answer.author_id),
            previous_label=previous_label,
            label=outcome.label,
        )
    return outcome


async def recompute_question_answers(
    db: AsyncSession,
    question_id: uuid.UUID,
    trigger: TriggerKind = TriggerKind.ACCEPT,
) -> list[RecomputeResult]:
    """Recompute every visible answer of a question. Caller manages commit."""
    result = await db.execute(
        select(Answer.id)
        .where(Answer.question_id == question_id)
        .where(Answer.is_hidden.is_(False))
        .order_by(Answer.created_at, Answer.id)
    )
    return [await recompute_answer(db, answer_id, trigger) for answer_id in result.scalars().all()]


# ---------------------------------------------------------------------------
# Request-path entry points (failure isolated)
# ---------------------------------------------------------------------------


async def _isolated(db: AsyncSession, trigger: TriggerKind, target: dict, work):
    start = time.perf_counter()
    try:
        result = await asyncio.wait_for(work(), timeout=settings.recompute_timeout_seconds)
        await db.commit()
    except Exception as exc:
        # The triggering mutation is already committed; the stale score is
        # repaired by the next trigger or by the reconciliation sweep.
        try:
            await db.rollback()
        except Exception:
            log.error("recompute_rollback_failed", trigger=trigger.value, exc_info=True, **target)
        status = "timeout" if isinstance(exc, asyncio.TimeoutError) else "failed"
        failure = RecomputeFailure(str(exc) or exc.__class__.__name__, trigger=trigger.value)
        recompute_total.labels(trigger=trigger.value, status=status).inc()
        log.error(
            "recompute_failed",
            trigger=failure.trigger,
            status=status,
            error=failure.message,
            exc_info=True,
            **target,
        )
        return None

    recompute_total.labels(trigger=trigger.value, status="success").inc()
    recompute_duration.labels(trigger=trigger.value).observe(time.perf_counter() - start)
    return result


async def run_recompute(
    db: AsyncSession, answer_id: uuid.UUID, trigger: TriggerKind
) -> Optional[RecomputeResult]:
    """Recompute one answer in its own transaction. Returns None on failure."""
    return await _isolated(
        db,
        trigger,
        {"answer_id": str(answer_id)},
        lambda: recompute_answer(db, answer_id, trigger),
    )


async def run_question_recompute(
    db: AsyncSession, question_id: uuid.UUID, trigger: TriggerKind = TriggerKind.ACCEPT
) -> Optional[list[RecomputeResult]]:
    """Recompute all of a question's answers in one transaction. None on failure."""
    return await _isolated(
        db,
        trigger,
        {"question_id": str(question_id)},
        lambda: recompute_question_answers(db, question_id, trigger),
    )


# ---------------------------------------------------------------------------
# Reconciliation sweep
# ---------------------------------------------------------------------------


@dataclass
class BatchResult:
    processed: int = 0
    updated: int = 0
    failed: int = 0
    answer_ids: list[uuid.UUID] = field(default_factory=list)


async def find_stale_answers(
    db: AsyncSession, max_age_days: int, limit: int, now: Optional[datetime] = None
) -> list[uuid.UUID]:
    """Visible answers with no metric, or a metric older than max_age_days."""
    cutoff = (now or utcnow()) - timedelta(days=max_age_days)
    result = await db.execute(
        select(Answer.id)
        .outerjoin(AnswerQualityMetric, AnswerQualityMetric.answer_id == Answer.id)
        .where(Answer.is_hidden.is_(False))
        .where(or_(AnswerQualityMetric.id.is_(None), AnswerQualityMetric.computed_at < cutoff))
        .order_by(Answer.created_at, Answer.id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def batch_recompute_stale(
    db: AsyncSession,
    max_age_days: Optional[int] = None,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> BatchResult:
    """Recompute missing or stale metrics, committing after each answer.

    One failing answer does not stop the batch; it is counted and retried on
    the next sweep.
    """
    max_age_days = settings.reconciliation_max_age_days if max_age_days is None else max_age_days
    limit = limit or settings.reconciliation_batch_size

    stale_ids = await find_stale_answers(db, max_age_days, limit, now=now)
    batch = BatchResult()
    for answer_id in stale_ids:
        batch.processed += 1
        try:
            result = await recompute_answer(db, answer_id, TriggerKind.RECONCILE)
            await db.commit()
        except Exception as exc:
            await db.rollback()
            batch.failed += 1
            recompute_total.labels(trigger=TriggerKind.RECONCILE.value, status="failed").inc()
            log.error(
                "recompute_failed",
                answer_id=str(answer_id),
                trigger=TriggerKind.RECONCILE.value,
                error=str(exc),
            )
            continue
        recompute_total.labels(trigger=TriggerKind.RECONCILE.value, status="success").inc()
        if result.changed:
            batch.updated += 1
            batch.answer_ids.append(answer_id)

    log.info(
        "reconciliation_batch",
        processed=batch.processed,
        updated=batch.updated,
        failed=batch.failed,
        max_age_days=max_age_days,
    )
    return batch


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@dataclass
class AnswerQuality:
    answer_id: uuid.UUID
    aqs: int
    label: str
    last_trigger: Optional[str]
    computed_at: Optional[datetime]


async def get_answer_quality(db: AsyncSession, answer_id: uuid.UUID) -> AnswerQuality:
    """Stored AQS for a visible answer.

    An answer that has never been scored yet is evaluated on the fly without
    persisting anything (computed_at is None in that case).
    """
    answer = await db.get(Answer, answer_id)
    if answer is None or answer.is_hidden:
        raise NotFoundError("Answer not found")

    result = await db.execute(
        select(AnswerQualityMetric).where(AnswerQualityMetric.answer_id == answer_id)
    )
    metric = result.scalar_one_or_none()
    if metric is not None:
        return AnswerQuality(
            answer_id=answer_id,
            aqs=metric.aqs,
            label=metric.label,
            last_trigger=metric.last_trigger,
            computed_at=metric.computed_at,
        )

    question = await db.get(Question, answer.question_id)
    signals = await load_answer_signals(db, answer, question)
    live = compute_aqs(signals, settings.aqs)
    return AnswerQuality(
        answer_id=answer_id,
        aqs=live.aqs,
        label=live.label.value,
        last_trigger=None,
        computed_at=None,
    )


async def get_answer_quality_debug(db: AsyncSession, answer_id: uuid.UUID) -> dict:
    """Admin view: stored metric, a fresh evaluation, raw reactions and flags."""
    answer = await db.get(Answer, answer_id)
    if answer is None:
        raise NotFoundError("Answer not found")
    question = await db.get(Question, answer.question_id)

    metric_result = await db.execute(
        select(AnswerQualityMetric).where(AnswerQualityMetric.answer_id == answer_id)
    )
    metric = metric_result.scalar_one_or_none()

    reactions = await db.execute(
        select(AnswerReaction.user_id, AnswerReaction.type, AnswerReaction.created_at)
        .where(AnswerReaction.answer_id == answer_id)
        .order_by(AnswerReaction.created_at)
    )
    flags = await db.execute(
        select(AnswerFlag.user_id, AnswerFlag.reason, AnswerFlag.note, AnswerFlag.created_at)
        .where(AnswerFlag.answer_id == answer_id)
        .order_by(AnswerFlag.created_at)
    )

    signals = await load_answer_signals(db, answer, question)
    fresh = compute_aqs(signals, settings.aqs)
    author = await compute_expertise_snapshot(db, answer.author_id)

    return {
        "answer": {
            "id": answer.id,
            "question_id": answer.question_id,
            "author_id": answer.author_id,
            "body_length": len(answer.body),
            "is_accepted": answer.is_accepted,
            "is_hidden": answer.is_hidden,
            "helpful_count": answer.helpful_count,
            "expert_badge_count": answer.expert_badge_count,
            "edit_count": answer.edit_count,
            "created_at": answer.created_at,
        },
        "metric": None
        if metric is None
        else {
            "aqs": metric.aqs,
            "label": metric.label,
            "details": metric.details,
            "last_trigger": metric.last_trigger,
            "computed_at": metric.computed_at,
        },
        "fresh": {"aqs": fresh.aqs, "label": fresh.label.value, "details": fresh.breakdown},
        "asker_id": question.author_id,
        "reactions": [
            {"user_id": r[0], "type": r[1], "created_at": r[2], "is_asker": r[0] == question.author_id}
            for r in reactions.all()
        ],
        "flags": [
            {"user_id": f[0], "reason": f[1], "note": f[2], "created_at": f[3]}
            for f in flags.all()
        ],
        "author_expert_score": author.expert_score,
        "author_expert_level": author.expert_level.value,
    }
