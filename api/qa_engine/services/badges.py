"""Badge catalog, eligibility and grants.

Eligibility is pure: evaluate_badges() looks at expertise counters and the
per-category breakdown and returns badge codes. Nothing is awarded on read;
the profile shows eligible-but-unawarded badges as pending, and grant_badge()
is the only writer of user_badges.
"""

import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from qa_engine.database import upsert_insert
from qa_engine.errors import NotFoundError, ValidationError
from qa_engine.metrics import badges_granted
from qa_engine.models.badge import Badge, BadgeCategory, BadgeSource, UserBadge
from qa_engine.models.user import User
from qa_engine.services.expertise import get_domain_expertise, get_or_create_expertise

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BadgeDefinition:
    code: str
    title: str
    description: str
    category: BadgeCategory
    threshold: Optional[int] = None
    is_manual: bool = False
    domain: Optional[str] = None  # question category for domain badges


BADGE_DEFINITIONS: tuple[BadgeDefinition, ...] = (
    # Participation
    BadgeDefinition("ACTIVE_RESPONDER", "Active Responder", "Posted 5 answers", BadgeCategory.participation, 5),
    BadgeDefinition(
        "CONSISTENT_CONTRIBUTOR", "Consistent Contributor", "Posted 10 answers", BadgeCategory.participation, 10
    ),
    BadgeDefinition(
        "PROFESSIONAL_CONTRIBUTOR", "Professional Contributor", "Posted 25 answers", BadgeCategory.participation, 25
    ),
    # Quality
    BadgeDefinition(
        "HELPFUL_ANSWERS", "Helpful Answers", "Received 5 helpful reactions", BadgeCategory.quality, 5
    ),
    BadgeDefinition("EXPERT_ANSWERS", "Expert Answers", "Received 3 expert reactions", BadgeCategory.quality, 3),
    BadgeDefinition("ACCEPTED_ANSWERS", "Accepted Answers", "3 answers accepted by askers", BadgeCategory.quality, 3),
    BadgeDefinition(
        "FEATURED_ANSWER",
        "Featured Answer",
        "An answer was featured by the editorial team",
        BadgeCategory.quality,
        1,
        is_manual=True,
    ),
    # Domain
    BadgeDefinition(
        "TAX_EXPERT", "Tax Expert", "5 expert-rated answers about tax", BadgeCategory.domain, 5, domain="tax"
    ),
    BadgeDefinition(
        "ACCOUNTING_EXPERT",
        "Accounting Expert",
        "5 expert-rated answers about accounting",
        BadgeCategory.domain,
        5,
        domain="accounting",
    ),
    BadgeDefinition(
        "INSURANCE_EXPERT",
        "Insurance Expert",
        "5 expert-rated answers about insurance",
        BadgeCategory.domain,
        5,
        domain="insurance",
    ),
    BadgeDefinition(
        "FINANCE_EXPERT",
        "Finance Expert",
        "5 expert-rated answers about finance",
        BadgeCategory.domain,
        5,
        domain="finance",
    ),
    BadgeDefinition(
        "INVESTMENT_EXPERT",
        "Investment Expert",
        "5 expert-rated answers about investment",
        BadgeCategory.domain,
        5,
        domain="investment",
    ),
    BadgeDefinition(
        "VERIFIED_EXPERT",
        "Verified Expert",
        "Identity and expertise verified by the team",
        BadgeCategory.domain,
        None,
        is_manual=True,
    ),
)

BADGES_BY_CODE = {badge.code: badge for badge in BADGE_DEFINITIONS}

# Stats field each counter-based badge is measured against
_STAT_FIELDS = {
    "ACTIVE_RESPONDER": "total_answers",
    "CONSISTENT_CONTRIBUTOR": "total_answers",
    "PROFESSIONAL_CONTRIBUTOR": "total_answers",
    "HELPFUL_ANSWERS": "helpful_reactions",
    "EXPERT_ANSWERS": "expert_reactions",
    "ACCEPTED_ANSWERS": "accepted_answers",
    "FEATURED_ANSWER": "featured_answers",
}


def evaluate_badges(stats, domains: Iterable = ()) -> set[str]:
    """Return every badge code the user currently qualifies for.

    Args:
        stats: Anything with total_answers, helpful_reactions, expert_reactions,
            accepted_answers and featured_answers attributes (a stats row or
            an ExpertiseSnapshot).
        domains: Objects with category and expert_answers attributes.

    Returns:
        Set of badge codes. VERIFIED_EXPERT is never included.
    """
    eligible = set()
    for code, field_name in _STAT_FIELDS.items():
        if getattr(stats, field_name) >= BADGES_BY_CODE[code].threshold:
            eligible.add(code)

    domain_badges = {b.domain: b for b in BADGE_DEFINITIONS if b.domain}
    for domain in domains:
        badge = domain_badges.get(domain.category)
        if badge is not None and domain.expert_answers >= badge.threshold:
            eligible.add(badge.code)
    return eligible


def pending_badges(eligible: Iterable[str], awarded: Iterable[str]) -> list[str]:
    return sorted(set(eligible) - set(awarded))


async def sync_badge_catalog(db: AsyncSession) -> int:
    """Upsert BADGE_DEFINITIONS into the badges table. Caller manages commit."""
    for definition in BADGE_DEFINITIONS:
        values = {
            "title": definition.title,
            "description": definition.description,
            "category": definition.category.value,
            "threshold": definition.threshold,
            "is_manual": definition.is_manual,
        }
        stmt = upsert_insert(db, Badge).values(code=definition.code, **values)
        stmt = stmt.on_conflict_do_update(index_elements=["code"], set_=values)
        await db.execute(stmt)
    return len(BADGE_DEFINITIONS)


async def get_awarded_badges(db: AsyncSession, user_id: uuid.UUID) -> list[tuple[UserBadge, Badge]]:
    result = await db.execute(
        select(UserBadge, Badge)
        .join(Badge, Badge.id == UserBadge.badge_id)
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.awarded_at, Badge.code)
    )
    return [(row[0], row[1]) for row in result.all()]


async def get_user_eligibility(db: AsyncSession, user_id: uuid.UUID) -> set[str]:
    stats = await get_or_create_expertise(db, user_id)
    domains = await get_domain_expertise(db, user_id)
    return evaluate_badges(stats, domains)


async def _badge_row(db: AsyncSession, code: str) -> Badge:
    result = await db.execute(select(Badge).where(Badge.code == code))
    badge = result.scalar_one_or_none()
    if badge is None:
        await sync_badge_catalog(db)
        result = await db.execute(select(Badge).where(Badge.code == code))
        badge = result.scalar_one()
    return badge


async def grant_badge(
    db: AsyncSession,
    user_id: uuid.UUID,
    code: str,
    source: BadgeSource = BadgeSource.auto,
    eligible: Optional[set[str]] = None,
) -> tuple[UserBadge, bool]:
    """Award a badge. Idempotent per (user, badge). Caller manages commit.

    Automatic grants require current eligibility and never award manual
    badges; admin grants may award anything in the catalog.

    Returns:
        (user_badge, created) where created is False if it was already awarded.

    Raises:
        NotFoundError: Unknown badge code or user.
        ValidationError: Automatic grant of a manual or not-yet-earned badge.
    """
    definition = BADGES_BY_CODE.get(code)
    if definition is None:
        raise NotFoundError(f"Unknown badge: {code}")
    if await db.get(User, user_id) is None:
        raise NotFoundError("User not found")

    if source == BadgeSource.auto:
        if definition.is_manual:
            raise ValidationError(f"{code} can only be granted by an admin")
        if eligible is None:
            eligible = await get_user_eligibility(db, user_id)
        if code not in eligible:
            raise ValidationError(f"User is not eligible for {code}")

    badge = await _badge_row(db, code)
    stmt = upsert_insert(db, UserBadge).values(
        user_id=user_id, badge_id=badge.id, source=source.value
    )
    result = await db.execute(stmt.on_conflict_do_nothing(index_elements=["user_id", "badge_id"]))
    created = result.rowcount == 1

    existing = await db.execute(
        select(UserBadge).where(UserBadge.user_id == user_id).where(UserBadge.badge_id == badge.id)
    )
    user_badge = existing.scalar_one()

    if created:
        badges_granted.labels(source=source.value).inc()
        log.info("badge_granted", user_id=str(user_id), badge=code, source=source.value)
    return user_badge, created


async def grant_pending_badges(db: AsyncSession, user_id: uuid.UUID) -> list[str]:
    """Grant every pending automatic badge; returns the codes granted."""
    eligible = await get_user_eligibility(db, user_id)
    awarded = [badge.code for _, badge in await get_awarded_badges(db, user_id)]
    granted = []
    for code in pending_badges(eligible, awarded):
        if BADGES_BY_CODE[code].is_manual:
            continue
        _, created = await grant_badge(db, user_id, code, BadgeSource.auto, eligible=eligible)
        if created:
            granted.append(code)
    return granted
