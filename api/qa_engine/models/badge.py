import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class BadgeCategory(str, enum.Enum):
    participation = "participation"
    quality = "quality"
    domain = "domain"


class BadgeSource(str, enum.Enum):
    auto = "auto"
    admin = "admin"


class Badge(Base):
    """Badge catalog row, synced from services.badges.BADGE_DEFINITIONS."""

    __tablename__ = "badges"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    threshold: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_manual: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class UserBadge(Base):
    """An awarded badge. Only ever written by an explicit grant."""

    __tablename__ = "user_badges"
    __table_args__ = (
        UniqueConstraint("user_id", "badge_id", name="uq_user_badges_user_id_badge_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", name="fk_user_badges_user_id_users"), nullable=False, index=True
    )
    badge_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("badges.id", name="fk_user_badges_badge_id_badges"), nullable=False
    )
    source: Mapped[str] = mapped_column(String(10), default=BadgeSource.auto.value, nullable=False)
    awarded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
