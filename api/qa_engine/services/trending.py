"""Trending question ranking.

trendingScore = (views + answers*10 + reactions*5) * recency multiplier

Multiplier is 2.0 for questions up to 24h old, 1.5 up to 7 days, 1.0 after
that. Questions older than the lookback window (30 days) are not ranked at
all. Scores are computed on read and never stored.
"""

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from qa_engine.config import settings
from qa_engine.errors import ValidationError
from qa_engine.models.answer import Answer
from qa_engine.models.question import Question
from qa_engine.models.reaction import AnswerReaction
from qa_engine.models.user import User
from qa_engine.services.timeutil import ensure_utc, utcnow

VIEW_WEIGHT = 1
ANSWER_WEIGHT = 10
REACTION_WEIGHT = 5


class TrendingPeriod(str, enum.Enum):
    day = "day"
    week = "week"
    month = "month"


PERIOD_WINDOWS = {
    TrendingPeriod.day: timedelta(days=1),
    TrendingPeriod.week: timedelta(days=7),
    TrendingPeriod.month: timedelta(days=30),
}


def recency_multiplier(age: timedelta) -> float:
    if age <= timedelta(hours=24):
        return 2.0
    if age <= timedelta(days=7):
        return 1.5
    return 1.0


def trending_score(
    views: int,
    answers_count: int,
    reactions_count: int,
    created_at: datetime,
    now: Optional[datetime] = None,
) -> Optional[float]:
    """Trending score, or None when the question is outside the lookback window."""
    now = now or utcnow()
    age = now - ensure_utc(created_at)
    if age > timedelta(days=settings.trending_lookback_days):
        return None
    base = views * VIEW_WEIGHT + answers_count * ANSWER_WEIGHT + reactions_count * REACTION_WEIGHT
    return base * recency_multiplier(age)


@dataclass
class TrendingQuestion:
    id: uuid.UUID
    title: str
    category: str
    author_id: uuid.UUID
    author_name: Optional[str]
    views_count: int
    answers_count: int
    reactions_count: int
    trending_score: float
    created_at: datetime


def parse_period(value: str) -> TrendingPeriod:
    try:
        return TrendingPeriod(value)
    except ValueError:
        raise ValidationError(f"Invalid trending period: {value!r}")


async def get_trending_questions(
    db: AsyncSession,
    limit: Optional[int] = None,
    period: str = TrendingPeriod.week.value,
    now: Optional[datetime] = None,
) -> list[TrendingQuestion]:
    """Rank the newest visible questions in the period window by trending score."""
    now = now or utcnow()
    limit = min(limit or settings.trending_default_limit, settings.trending_max_limit)
    window = min(
        PERIOD_WINDOWS[parse_period(period)],
        timedelta(days=settings.trending_lookback_days),
    )

    candidates = await db.execute(
        select(Question, User.display_name)
        .outerjoin(User, User.id == Question.author_id)
        .where(Question.is_hidden.is_(False))
        .where(Question.created_at >= now - window)
        .order_by(Question.created_at.desc())
        .limit(settings.trending_candidate_limit)
    )
    rows = candidates.all()
    if not rows:
        return []

    question_ids = [row[0].id for row in rows]
    reaction_counts = await db.execute(
        select(Answer.question_id, func.count(AnswerReaction.id))
        .join(AnswerReaction, AnswerReaction.answer_id == Answer.id)
        .where(Answer.question_id.in_(question_ids))
        .where(Answer.is_hidden.is_(False))
        .group_by(Answer.question_id)
    )
    reactions_by_question = {qid: count for qid, count in reaction_counts.all()}

    trending = []
    for question, author_name in rows:
        reactions = reactions_by_question.get(question.id, 0)
        score = trending_score(
            question.views_count, question.answers_count, reactions, question.created_at, now
        )
        if score is None:
            continue
        trending.append(
            TrendingQuestion(
                id=question.id,
                title=question.title,
                category=question.category,
                author_id=question.author_id,
                author_name=author_name,
                views_count=question.views_count,
                answers_count=question.answers_count,
                reactions_count=reactions,
                trending_score=score,
                created_at=question.created_at,
            )
        )

    trending.sort(key=lambda q: (q.trending_score, ensure_utc(q.created_at)), reverse=True)
    return trending[:limit]
