"""Per-user expertise ORM models.

UserExpertiseStats is one row per user, lazily created on first read and
rebuilt from scratch by services.expertise.refresh_expertise. Between refreshes
the counters move through atomic increments only.

UserDomainExpertise keeps per-category counts used for domain badges and the
"expert in X" display. One row per (user, category).
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class UserExpertiseStats(Base):
    __tablename__ = "user_expertise_stats"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", name="fk_user_expertise_stats_user_id_users"),
        unique=True,
        nullable=False,
    )
    total_answers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    accepted_answers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    helpful_reactions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expert_reactions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    featured_answers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_questions: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expert_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expert_level: Mapped[str] = mapped_column(String(20), default="newcomer", nullable=False)
    top_category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    computed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class UserDomainExpertise(Base):
    __tablename__ = "user_domain_expertise"
    __table_args__ = (
        UniqueConstraint("user_id", "category", name="uq_user_domain_expertise_user_id_category"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", name="fk_user_domain_expertise_user_id_users"),
        nullable=False,
        index=True,
    )
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    total_answers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # Answers in this category with at least one expert / helpful reaction
    expert_answers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    helpful_answers: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_activity_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
