import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .answer import Answer
    from .user import User


class Question(Base):
    """Question row owned by the Q&A CRUD layer.

    The engine reads author_id (the asker), category, views_count and
    answers_count, and locks the row while acceptance changes.
    """

    __tablename__ = "questions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    author_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", name="fk_questions_author_id_users"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # Cached engagement counters
    views_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    answers_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_hidden: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # Relationships
    author: Mapped["User"] = relationship("User", back_populates="questions")
    answers: Mapped[list["Answer"]] = relationship("Answer", back_populates="question")
