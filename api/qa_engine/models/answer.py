import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Text, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .question import Question
    from .user import User


class Answer(Base):
    __tablename__ = "answers"
    __table_args__ = (
        Index(
            "uq_answers_one_accepted_per_question",
            "question_id",
            unique=True,
            postgresql_where=text("is_accepted"),
            sqlite_where=text("is_accepted"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    question_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("questions.id", name="fk_answers_question_id_questions"), nullable=False, index=True
    )
    author_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", name="fk_answers_author_id_users"), nullable=False, index=True
    )
    body: Mapped[str] = mapped_column(Text, nullable=False)

    # Acceptance: at most one accepted answer per question
    is_accepted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Cached reaction counters, must equal the count of reactions of each type.
    # Only ever changed through atomic column-expression UPDATEs.
    helpful_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expert_badge_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Edit tracking (feeds the AQS edit penalty)
    edit_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    edited_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Relationships
    question: Mapped["Question"] = relationship("Question", back_populates="answers")
    author: Mapped["User"] = relationship("User", back_populates="answers")
