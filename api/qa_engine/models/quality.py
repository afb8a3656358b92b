"""AnswerQualityMetric ORM model.

One row per answer, created on the first recompute and overwritten by every
later one. Fully derived from the signal tables by services.recompute; nothing
else writes to it.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class AnswerQualityMetric(Base):
    __tablename__ = "answer_quality_metrics"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    answer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("answers.id", name="fk_answer_quality_metrics_answer_id_answers"),
        unique=True,
        nullable=False,
    )
    aqs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    label: Mapped[str] = mapped_column(String(10), default="NORMAL", nullable=False)
    # Per-rule score breakdown, shown in the admin debug view
    details: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    last_trigger: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    computed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
