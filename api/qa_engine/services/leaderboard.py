import enum
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from qa_engine.config import settings
from qa_engine.errors import ValidationError
from qa_engine.models.answer import Answer
from qa_engine.models.quality import AnswerQualityMetric
from qa_engine.models.question import Question
from qa_engine.models.user import User
from qa_engine.services.expertise import ExpertLevel, calculate_expert_score, get_expert_level
from qa_engine.services.quality import QualityLabel
from qa_engine.services.timeutil import utcnow


class LeaderboardPeriod(str, enum.Enum):
    all = "all"
    month = "month"
    week = "week"


PERIOD_WINDOWS = {
    LeaderboardPeriod.month: timedelta(days=30),
    LeaderboardPeriod.week: timedelta(days=7),
}


def parse_period(value: str) -> LeaderboardPeriod:
    try:
        return LeaderboardPeriod(value)
    except ValueError:
        raise ValidationError(f"Invalid leaderboard period: {value!r}")


@dataclass
class LeaderboardEntry:
    rank: int
    user_id: uuid.UUID
    display_name: Optional[str]
    expert_score: int
    expert_level: ExpertLevel
    total_answers: int
    accepted_answers: int
    acceptance_rate: int
    helpful_reactions: int
    expert_reactions: int
    total_questions: int
    avg_aqs: int
    star_count: int
    pro_count: int
    useful_count: int


def _label_count(label: QualityLabel):
    return func.coalesce(func.sum(case((AnswerQualityMetric.label == label.value, 1), else_=0)), 0)


def leaderboard_query(
    period: LeaderboardPeriod = LeaderboardPeriod.all,
    category: Optional[str] = None,
    now: Optional[datetime] = None,
):
    """Per-author aggregates scored with the shared expert score formula.

    Answers (non-hidden) and questions (non-hidden) are filtered by the same
    period and category, so with period=all and no category the score equals
    the author's full expertise score.
    """
    since = None
    if period in PERIOD_WINDOWS:
        since = (now or utcnow()) - PERIOD_WINDOWS[period]

    answer_stmt = (
        select(
            Answer.author_id.label("user_id"),
            func.count(Answer.id).label("total_answers"),
            func.coalesce(func.sum(case((Answer.is_accepted.is_(True), 1), else_=0)), 0).label("accepted_answers"),
            func.coalesce(func.sum(Answer.helpful_count), 0).label("helpful_reactions"),
            func.coalesce(func.sum(Answer.expert_badge_count), 0).label("expert_reactions"),
            func.coalesce(func.avg(AnswerQualityMetric.aqs), 0).label("avg_aqs"),
            _label_count(QualityLabel.STAR).label("star_count"),
            _label_count(QualityLabel.PRO).label("pro_count"),
            _label_count(QualityLabel.USEFUL).label("useful_count"),
        )
        .join(Question, Question.id == Answer.question_id)
        .outerjoin(AnswerQualityMetric, AnswerQualityMetric.answer_id == Answer.id)
        .where(Answer.is_hidden.is_(False))
        .group_by(Answer.author_id)
    )
    question_stmt = (
        select(
            Question.author_id.label("user_id"),
            func.count(Question.id).label("total_questions"),
        )
        .where(Question.is_hidden.is_(False))
        .group_by(Question.author_id)
    )
    if since is not None:
        answer_stmt = answer_stmt.where(Answer.created_at >= since)
        question_stmt = question_stmt.where(Question.created_at >= since)
    if category:
        answer_stmt = answer_stmt.where(Question.category == category)
        question_stmt = question_stmt.where(Question.category == category)

    answers_sq = answer_stmt.subquery("answer_totals")
    questions_sq = question_stmt.subquery("question_totals")
    total_questions = func.coalesce(questions_sq.c.total_questions, 0)

    score = calculate_expert_score(
        answers_sq.c.total_answers,
        answers_sq.c.accepted_answers,
        answers_sq.c.helpful_reactions,
        answers_sq.c.expert_reactions,
        total_questions,
    ).label("expert_score")

    return (
        select(
            answers_sq.c.user_id,
            User.display_name,
            score,
            answers_sq.c.total_answers,
            answers_sq.c.accepted_answers,
            answers_sq.c.helpful_reactions,
            answers_sq.c.expert_reactions,
            total_questions.label("total_questions"),
            answers_sq.c.avg_aqs,
            answers_sq.c.star_count,
            answers_sq.c.pro_count,
            answers_sq.c.useful_count,
        )
        .join(User, User.id == answers_sq.c.user_id)
        .outerjoin(questions_sq, questions_sq.c.user_id == answers_sq.c.user_id)
        .order_by(
            score.desc(),
            answers_sq.c.accepted_answers.desc(),
            answers_sq.c.total_answers.desc(),
            answers_sq.c.user_id,
        )
    )


def _entry(rank: int, row) -> LeaderboardEntry:
    total = int(row.total_answers)
    accepted = int(row.accepted_answers)
    return LeaderboardEntry(
        rank=rank,
        user_id=row.user_id,
        display_name=row.display_name,
        expert_score=int(row.expert_score),
        expert_level=get_expert_level(int(row.expert_score)),
        total_answers=total,
        accepted_answers=accepted,
        acceptance_rate=round(accepted / total * 100) if total else 0,
        helpful_reactions=int(row.helpful_reactions),
        expert_reactions=int(row.expert_reactions),
        total_questions=int(row.total_questions),
        avg_aqs=round(float(row.avg_aqs)),
        star_count=int(row.star_count),
        pro_count=int(row.pro_count),
        useful_count=int(row.useful_count),
    )


async def get_leaderboard(
    db: AsyncSession,
    period: str = LeaderboardPeriod.all.value,
    category: Optional[str] = None,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> list[LeaderboardEntry]:
    limit = min(limit or settings.leaderboard_default_limit, settings.leaderboard_max_limit)
    stmt = leaderboard_query(parse_period(period), category, now).limit(limit)
    result = await db.execute(stmt)
    return [_entry(rank, row) for rank, row in enumerate(result.all(), start=1)]


async def get_leaderboard_score(db: AsyncSession, user_id: uuid.UUID) -> Optional[int]:
    """All-time leaderboard score for one user, or None if they have no answers."""
    stmt = leaderboard_query().subquery("leaderboard")
    result = await db.execute(select(stmt.c.expert_score).where(stmt.c.user_id == user_id))
    score = result.scalar_one_or_none()
    return int(score) if score is not None else None
