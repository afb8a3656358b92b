"""Expertise aggregation: per-user score, level and domain breakdown.

One formula, many call sites: calculate_expert_score() is the only place the
expert score weights live. It accepts plain ints (profile stats, admin debug)
and SQLAlchemy column expressions (incremental SQL updates, leaderboard
aggregation), so every view of a user's score is computed the same way.

Two ways stats change:
- refresh_expertise() rebuilds a user's stats and domain rows from the signal
  tables under a per-user row lock. get_or_create_expertise() calls it lazily
  when no stats row exists yet.
- The record_* / apply_* hooks apply atomic increments to rows that already
  exist, then re-derive expert_score and expert_level in SQL. Missing rows are
  left alone; the next full refresh counts everything once.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from qa_engine.database import shift_counter, upsert_insert
from qa_engine.errors import NotFoundError
from qa_engine.models.answer import Answer
from qa_engine.models.expertise import UserDomainExpertise, UserExpertiseStats
from qa_engine.models.question import Question
from qa_engine.models.reaction import ReactionType
from qa_engine.models.user import User
from qa_engine.services.timeutil import ensure_utc, utcnow

log = structlog.get_logger(__name__)


class ExpertLevel(str, enum.Enum):
    newcomer = "newcomer"
    contributor = "contributor"
    specialist = "specialist"
    senior = "senior"
    expert = "expert"
    top_expert = "top_expert"


# Ascending inclusive lower bounds; a score exactly at a threshold gets that level.
LEVEL_THRESHOLDS: list[tuple[ExpertLevel, int]] = [
    (ExpertLevel.newcomer, 0),
    (ExpertLevel.contributor, 30),
    (ExpertLevel.specialist, 100),
    (ExpertLevel.senior, 200),
    (ExpertLevel.expert, 500),
    (ExpertLevel.top_expert, 1000),
]

SCORE_WEIGHTS = {
    "total_answers": 10,
    "accepted_answers": 50,
    "helpful_reactions": 5,
    "expert_reactions": 20,
    "total_questions": 2,
}


def calculate_expert_score(
    total_answers,
    accepted_answers,
    helpful_reactions,
    expert_reactions,
    total_questions,
):
    """The expert score formula.

    expertScore = answers*10 + accepted*50 + helpful*5 + expert*20 + questions*2

    Works on ints and on SQL column expressions alike.
    """
    return (
        total_answers * SCORE_WEIGHTS["total_answers"]
        + accepted_answers * SCORE_WEIGHTS["accepted_answers"]
        + helpful_reactions * SCORE_WEIGHTS["helpful_reactions"]
        + expert_reactions * SCORE_WEIGHTS["expert_reactions"]
        + total_questions * SCORE_WEIGHTS["total_questions"]
    )


def get_expert_level(score: int) -> ExpertLevel:
    for level, min_score in reversed(LEVEL_THRESHOLDS):
        if score >= min_score:
            return level
    return ExpertLevel.newcomer


def expert_level_case(score_expr):
    """SQL CASE equivalent of get_expert_level() over a score expression."""
    whens = [
        (score_expr >= min_score, level.value)
        for level, min_score in reversed(LEVEL_THRESHOLDS)
        if min_score > 0
    ]
    return case(*whens, else_=ExpertLevel.newcomer.value)


@dataclass(frozen=True)
class NextLevel:
    level: ExpertLevel
    min_score: int
    points_needed: int
    progress: int  # percent of the way from the current level to this one


def get_next_level(score: int) -> Optional[NextLevel]:
    """Return the next level above score, or None at the top level."""
    current = get_expert_level(score)
    index = [level for level, _ in LEVEL_THRESHOLDS].index(current)
    if index >= len(LEVEL_THRESHOLDS) - 1:
        return None
    current_min = LEVEL_THRESHOLDS[index][1]
    next_level, next_min = LEVEL_THRESHOLDS[index + 1]
    progress = round((score - current_min) / (next_min - current_min) * 100)
    return NextLevel(
        level=next_level,
        min_score=next_min,
        points_needed=next_min - score,
        progress=progress,
    )


@dataclass
class DomainSnapshot:
    category: str
    total_answers: int = 0
    expert_answers: int = 0
    helpful_answers: int = 0
    last_activity_at: Optional[datetime] = None


def pick_top_category(domains: list[DomainSnapshot]) -> Optional[str]:
    """Category with the most answers.

    Ties go to the most recent answer activity, then to the category name
    (ascending) so the result never depends on row order.
    """
    candidates = [d for d in domains if d.total_answers > 0]
    if not candidates:
        return None

    def sort_key(d: DomainSnapshot):
        activity = ensure_utc(d.last_activity_at).timestamp() if d.last_activity_at else float("-inf")
        return (-d.total_answers, -activity, d.category)

    return sorted(candidates, key=sort_key)[0].category


@dataclass
class ExpertiseSnapshot:
    """User expertise derived directly from the signal tables."""

    user_id: uuid.UUID
    total_answers: int = 0
    accepted_answers: int = 0
    helpful_reactions: int = 0
    expert_reactions: int = 0
    featured_answers: int = 0
    total_questions: int = 0
    domains: list[DomainSnapshot] = field(default_factory=list)

    @property
    def expert_score(self) -> int:
        return calculate_expert_score(
            self.total_answers,
            self.accepted_answers,
            self.helpful_reactions,
            self.expert_reactions,
            self.total_questions,
        )

    @property
    def expert_level(self) -> ExpertLevel:
        return get_expert_level(self.expert_score)

    @property
    def top_category(self) -> Optional[str]:
        return pick_top_category(self.domains)


def score_from_stats(stats: UserExpertiseStats) -> int:
    """Expert score of a stored stats row, via the shared formula."""
    return calculate_expert_score(
        stats.total_answers,
        stats.accepted_answers,
        stats.helpful_reactions,
        stats.expert_reactions,
        stats.total_questions,
    )


async def _require_user(db: AsyncSession, user_id: uuid.UUID, lock: bool = False) -> None:
    stmt = select(User.id).where(User.id == user_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    if result.scalar_one_or_none() is None:
        raise NotFoundError("User not found")


async def compute_expertise_snapshot(db: AsyncSession, user_id: uuid.UUID) -> ExpertiseSnapshot:
    """Derive a user's expertise from answers and questions (hidden rows excluded)."""
    answer_result = await db.execute(
        select(
            func.count(Answer.id),
            func.coalesce(func.sum(case((Answer.is_accepted.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(Answer.helpful_count), 0),
            func.coalesce(func.sum(Answer.expert_badge_count), 0),
            func.coalesce(func.sum(case((Answer.is_featured.is_(True), 1), else_=0)), 0),
        )
        .join(Question, Question.id == Answer.question_id)
        .where(Answer.author_id == user_id)
        .where(Answer.is_hidden.is_(False))
    )
    total_answers, accepted, helpful, expert, featured = answer_result.one()

    question_result = await db.execute(
        select(func.count(Question.id))
        .where(Question.author_id == user_id)
        .where(Question.is_hidden.is_(False))
    )
    total_questions = question_result.scalar_one()

    domain_result = await db.execute(
        select(
            Question.category,
            func.count(Answer.id),
            func.coalesce(func.sum(case((Answer.expert_badge_count > 0, 1), else_=0)), 0),
            func.coalesce(func.sum(case((Answer.helpful_count > 0, 1), else_=0)), 0),
            func.max(Answer.created_at),
        )
        .join(Question, Question.id == Answer.question_id)
        .where(Answer.author_id == user_id)
        .where(Answer.is_hidden.is_(False))
        .group_by(Question.category)
    )
    domains = [
        DomainSnapshot(
            category=row[0],
            total_answers=int(row[1]),
            expert_answers=int(row[2]),
            helpful_answers=int(row[3]),
            last_activity_at=row[4],
        )
        for row in domain_result.all()
    ]

    return ExpertiseSnapshot(
        user_id=user_id,
        total_answers=int(total_answers),
        accepted_answers=int(accepted),
        helpful_reactions=int(helpful),
        expert_reactions=int(expert),
        featured_answers=int(featured),
        total_questions=int(total_questions),
        domains=domains,
    )


async def refresh_expertise(db: AsyncSession, user_id: uuid.UUID) -> UserExpertiseStats:
    """Rebuild a user's stats and domain rows from scratch.

    Holds the user's row lock for the whole read-and-upsert so concurrent
    refreshes (or a refresh racing an incremental hook) cannot interleave
    partial writes. Caller manages commit.
    """
    await _require_user(db, user_id, lock=True)
    snapshot = await compute_expertise_snapshot(db, user_id)
    now = utcnow()

    values = {
        "total_answers": snapshot.total_answers,
        "accepted_answers": snapshot.accepted_answers,
        "helpful_reactions": snapshot.helpful_reactions,
        "expert_reactions": snapshot.expert_reactions,
        "featured_answers": snapshot.featured_answers,
        "total_questions": snapshot.total_questions,
        "expert_score": snapshot.expert_score,
        "expert_level": snapshot.expert_level.value,
        "top_category": snapshot.top_category,
        "computed_at": now,
    }
    stmt = upsert_insert(db, UserExpertiseStats).values(user_id=user_id, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id"],
        set_={**values, "updated_at": func.now()},
    )
    await db.execute(stmt)

    for domain in snapshot.domains:
        domain_values = {
            "total_answers": domain.total_answers,
            "expert_answers": domain.expert_answers,
            "helpful_answers": domain.helpful_answers,
            "last_activity_at": domain.last_activity_at,
        }
        domain_stmt = upsert_insert(db, UserDomainExpertise).values(
            user_id=user_id, category=domain.category, **domain_values
        )
        domain_stmt = domain_stmt.on_conflict_do_update(
            index_elements=["user_id", "category"],
            set_=domain_values,
        )
        await db.execute(domain_stmt)

    # Categories that no longer have visible answers are zeroed, never deleted
    categories = [d.category for d in snapshot.domains]
    stale = update(UserDomainExpertise).where(UserDomainExpertise.user_id == user_id)
    if categories:
        stale = stale.where(UserDomainExpertise.category.not_in(categories))
    await db.execute(
        stale.values(total_answers=0, expert_answers=0, helpful_answers=0).execution_options(
            synchronize_session=False
        )
    )

    result = await db.execute(
        select(UserExpertiseStats)
        .where(UserExpertiseStats.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    stats = result.scalar_one()
    log.info(
        "expertise_refreshed",
        user_id=str(user_id),
        expert_score=stats.expert_score,
        expert_level=stats.expert_level,
    )
    return stats


async def get_or_create_expertise(db: AsyncSession, user_id: uuid.UUID) -> UserExpertiseStats:
    """Return the user's stats row, building it on first read."""
    result = await db.execute(
        select(UserExpertiseStats).where(UserExpertiseStats.user_id == user_id)
    )
    stats = result.scalar_one_or_none()
    if stats is None:
        stats = await refresh_expertise(db, user_id)
    return stats


async def get_domain_expertise(db: AsyncSession, user_id: uuid.UUID) -> list[UserDomainExpertise]:
    result = await db.execute(
        select(UserDomainExpertise)
        .where(UserDomainExpertise.user_id == user_id)
        .where(UserDomainExpertise.total_answers > 0)
        .order_by(UserDomainExpertise.total_answers.desc(), UserDomainExpertise.category)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Incremental hooks
# ---------------------------------------------------------------------------


async def _rescore(db: AsyncSession, user_id: uuid.UUID) -> None:
    score = calculate_expert_score(
        UserExpertiseStats.total_answers,
        UserExpertiseStats.accepted_answers,
        UserExpertiseStats.helpful_reactions,
        UserExpertiseStats.expert_reactions,
        UserExpertiseStats.total_questions,
    )
    await db.execute(
        update(UserExpertiseStats)
        .where(UserExpertiseStats.user_id == user_id)
        .values(expert_score=score, expert_level=expert_level_case(score))
        .execution_options(synchronize_session=False)
    )


async def _bump_stats(db: AsyncSession, user_id: uuid.UUID, **deltas: int) -> bool:
    """Atomically add deltas to an existing stats row. Returns False if absent."""
    values = {
        name: shift_counter(getattr(UserExpertiseStats, name), delta)
        for name, delta in deltas.items()
        if delta
    }
    if not values:
        return False
    result = await db.execute(
        update(UserExpertiseStats)
        .where(UserExpertiseStats.user_id == user_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return False
    await _rescore(db, user_id)
    return True


async def _bump_domain(db: AsyncSession, user_id: uuid.UUID, category: str, **deltas: int) -> None:
    values = {
        name: shift_counter(getattr(UserDomainExpertise, name), delta)
        for name, delta in deltas.items()
        if delta
    }
    if not values:
        return
    await db.execute(
        update(UserDomainExpertise)
        .where(UserDomainExpertise.user_id == user_id)
        .where(UserDomainExpertise.category == category)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


async def _refresh_top_category(db: AsyncSession, user_id: uuid.UUID) -> None:
    """Re-derive the stored top_category from the user's domain rows."""
    result = await db.execute(
        select(
            UserDomainExpertise.category,
            UserDomainExpertise.total_answers,
            UserDomainExpertise.last_activity_at,
        ).where(UserDomainExpertise.user_id == user_id)
    )
    domains = [
        DomainSnapshot(category=row[0], total_answers=row[1], last_activity_at=row[2])
        for row in result.all()
    ]
    await db.execute(
        update(UserExpertiseStats)
        .where(UserExpertiseStats.user_id == user_id)
        .values(top_category=pick_top_category(domains))
        .execution_options(synchronize_session=False)
    )


async def record_question_created(db: AsyncSession, user_id: uuid.UUID) -> None:
    """+1 total_questions for the asker."""
    await _bump_stats(db, user_id, total_questions=1)


async def record_answer_created(
    db: AsyncSession,
    author_id: uuid.UUID,
    category: str,
    created_at: datetime,
) -> None:
    """+1 total_answers for the author and for the answer's category.

    The stored top_category is re-derived afterwards, so "expert in X" follows
    new activity without a full refresh.
    """
    if not await _bump_stats(db, author_id, total_answers=1):
        return

    stmt = upsert_insert(db, UserDomainExpertise).values(
        user_id=author_id,
        category=category,
        total_answers=1,
        last_activity_at=created_at,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "category"],
        set_={
            "total_answers": UserDomainExpertise.total_answers + 1,
            "last_activity_at": created_at,
        },
    )
    await db.execute(stmt)
    await _refresh_top_category(db, author_id)


async def apply_reaction_delta(
    db: AsyncSession,
    author_id: uuid.UUID,
    category: str,
    reaction_type: str,
    delta: int,
    previous_count: int,
) -> None:
    """Mirror a cached-counter change on the answer author's expertise rows.

    Args:
        author_id: The answer author (receives the reputation effect).
        category: The answered question's category.
        reaction_type: Reaction type whose counter moved.
        delta: +1 or -1.
        previous_count: The answer's counter for this type before the change;
            used to detect an answer crossing between zero and one reactions.
    """
    if reaction_type == ReactionType.helpful.value:
        stat_field, domain_field = "helpful_reactions", "helpful_answers"
    elif reaction_type == ReactionType.expert.value:
        stat_field, domain_field = "expert_reactions", "expert_answers"
    else:
        return

    if not await _bump_stats(db, author_id, **{stat_field: delta}):
        return

    crossed = (delta > 0 and previous_count == 0) or (delta < 0 and previous_count == 1)
    if crossed:
        await _bump_domain(db, author_id, category, **{domain_field: delta})


async def apply_acceptance_delta(db: AsyncSession, author_id: uuid.UUID, delta: int) -> None:
    await _bump_stats(db, author_id, accepted_answers=delta)


# ---------------------------------------------------------------------------
# Public profile stats
# ---------------------------------------------------------------------------


@dataclass
class FeaturedAnswer:
    answer_id: uuid.UUID
    question_id: uuid.UUID
    question_title: str
    helpful_count: int
    expert_badge_count: int


@dataclass
class QAStats:
    user_id: uuid.UUID
    total_answers: int
    accepted_answers: int
    expert_answers: int
    helpful_reactions: int
    expert_reactions: int
    total_questions: int
    expert_score: int
    expert_level: ExpertLevel
    top_category: Optional[str]
    featured_answers: list[FeaturedAnswer]


async def get_user_qa_stats(db: AsyncSession, user_id: uuid.UUID, featured_limit: int = 3) -> QAStats:
    """Public profile Q&A stats, computed fresh from the signal tables."""
    await _require_user(db, user_id)
    snapshot = await compute_expertise_snapshot(db, user_id)

    featured_result = await db.execute(
        select(
            Answer.id,
            Question.id,
            Question.title,
            Answer.helpful_count,
            Answer.expert_badge_count,
        )
        .join(Question, Question.id == Answer.question_id)
        .where(Answer.author_id == user_id)
        .where(Answer.is_hidden.is_(False))
        .where(Question.is_hidden.is_(False))
        .where((Answer.helpful_count > 0) | (Answer.expert_badge_count > 0))
        .order_by(Answer.expert_badge_count.desc(), Answer.helpful_count.desc(), Answer.created_at.desc())
        .limit(featured_limit)
    )

    return QAStats(
        user_id=user_id,
        total_answers=snapshot.total_answers,
        accepted_answers=snapshot.accepted_answers,
        expert_answers=sum(d.expert_answers for d in snapshot.domains),
        helpful_reactions=snapshot.helpful_reactions,
        expert_reactions=snapshot.expert_reactions,
        total_questions=snapshot.total_questions,
        expert_score=snapshot.expert_score,
        expert_level=snapshot.expert_level,
        top_category=snapshot.top_category,
        featured_answers=[
            FeaturedAnswer(
                answer_id=row[0],
                question_id=row[1],
                question_title=row[2],
                helpful_count=row[3],
                expert_badge_count=row[4],
            )
            for row in featured_result.all()
        ],
    )
