import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class FlagReason(str, enum.Enum):
    SPAM = "SPAM"
    ABUSE = "ABUSE"
    MISLEADING = "MISLEADING"
    LOW_QUALITY = "LOW_QUALITY"
    OTHER = "OTHER"


class AnswerFlag(Base):
    """One flag per (answer, user). Lowers AQS; never touches reaction counters."""

    __tablename__ = "answer_flags"
    __table_args__ = (
        UniqueConstraint("answer_id", "user_id", name="uq_answer_flags_answer_id_user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    answer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("answers.id", name="fk_answer_flags_answer_id_answers"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", name="fk_answer_flags_user_id_users"), nullable=False
    )
    reason: Mapped[str] = mapped_column(String(20), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
