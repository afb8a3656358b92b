import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ReactionType(str, enum.Enum):
    helpful = "helpful"
    expert = "expert"
    not_helpful = "not_helpful"


class AnswerReaction(Base):
    """One reaction per (answer, user); toggled by the reaction state machine."""

    __tablename__ = "answer_reactions"
    __table_args__ = (
        UniqueConstraint("answer_id", "user_id", name="uq_answer_reactions_answer_id_user_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    answer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("answers.id", name="fk_answer_reactions_answer_id_answers"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", name="fk_answer_reactions_user_id_users"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
