"""Tests for badge eligibility and grants (qa_engine.services.badges)."""

import uuid
from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from qa_engine.errors import NotFoundError, ValidationError
from qa_engine.models import Badge, BadgeSource, UserBadge
from qa_engine.services.badges import (
    BADGE_DEFINITIONS,
    BADGES_BY_CODE,
    evaluate_badges,
    grant_badge,
    grant_pending_badges,
    pending_badges,
    sync_badge_catalog,
)
from qa_engine.services.expertise import refresh_expertise


def stats(**values):
    defaults = {
        "total_answers": 0,
        "helpful_reactions": 0,
        "expert_reactions": 0,
        "accepted_answers": 0,
        "featured_answers": 0,
    }
    defaults.update(values)
    return SimpleNamespace(**defaults)


def domain(category, expert_answers):
    return SimpleNamespace(category=category, expert_answers=expert_answers)


class TestEvaluateBadges:
    def test_new_user_has_nothing(self):
        assert evaluate_badges(stats()) == set()

    def test_participation_thresholds(self):
        assert evaluate_badges(stats(total_answers=4)) == set()
        assert evaluate_badges(stats(total_answers=5)) == {"ACTIVE_RESPONDER"}
        assert evaluate_badges(stats(total_answers=10)) == {"ACTIVE_RESPONDER", "CONSISTENT_CONTRIBUTOR"}
        assert evaluate_badges(stats(total_answers=25)) == {
            "ACTIVE_RESPONDER",
            "CONSISTENT_CONTRIBUTOR",
            "PROFESSIONAL_CONTRIBUTOR",
        }

    def test_quality_thresholds(self):
        eligible = evaluate_badges(
            stats(helpful_reactions=5, expert_reactions=3, accepted_answers=3, featured_answers=1)
        )
        assert eligible == {"HELPFUL_ANSWERS", "EXPERT_ANSWERS", "ACCEPTED_ANSWERS", "FEATURED_ANSWER"}

    def test_just_below_quality_thresholds(self):
        assert evaluate_badges(stats(helpful_reactions=4, expert_reactions=2, accepted_answers=2)) == set()

    def test_domain_badges_use_expert_answers_per_category(self):
        eligible = evaluate_badges(stats(), [domain("tax", 5), domain("insurance", 4), domain("crypto", 50)])
        assert eligible == {"TAX_EXPERT"}

    def test_verified_expert_is_never_automatic(self):
        everything = stats(
            total_answers=100,
            helpful_reactions=100,
            expert_reactions=100,
            accepted_answers=100,
            featured_answers=100,
        )
        domains = [domain(b.domain, 100) for b in BADGE_DEFINITIONS if b.domain]
        assert "VERIFIED_EXPERT" not in evaluate_badges(everything, domains)

    def test_every_domain_badge_maps_to_lowercase_category(self):
        for badge in BADGE_DEFINITIONS:
            if badge.domain:
                assert badge.code == f"{badge.domain.upper()}_EXPERT"


class TestPendingBadges:
    def test_difference_sorted(self):
        assert pending_badges({"TAX_EXPERT", "ACTIVE_RESPONDER", "HELPFUL_ANSWERS"}, ["HELPFUL_ANSWERS"]) == [
            "ACTIVE_RESPONDER",
            "TAX_EXPERT",
        ]

    def test_nothing_pending(self):
        assert pending_badges({"ACTIVE_RESPONDER"}, {"ACTIVE_RESPONDER", "TAX_EXPERT"}) == []


class TestBadgeGrants:
    async def test_sync_catalog_is_idempotent(self, db):
        await sync_badge_catalog(db)
        await sync_badge_catalog(db)
        await db.commit()
        count = (await db.execute(select(func.count(Badge.id)))).scalar_one()
        assert count == len(BADGE_DEFINITIONS)

    async def test_auto_grant_requires_eligibility(self, db, factory):
        user = await factory.user()
        user_id = user.id
        with pytest.raises(ValidationError):
            await grant_badge(db, user_id, "ACTIVE_RESPONDER")

    async def test_auto_grant_of_manual_badge_rejected(self, db, factory):
        user = await factory.user()
        with pytest.raises(ValidationError):
            await grant_badge(db, user.id, "VERIFIED_EXPERT")

    async def test_unknown_badge_and_user(self, db, factory):
        user = await factory.user()
        with pytest.raises(NotFoundError):
            await grant_badge(db, user.id, "NOPE", BadgeSource.admin)
        with pytest.raises(NotFoundError):
            await grant_badge(db, uuid.uuid4(), "VERIFIED_EXPERT", BadgeSource.admin)

    async def test_admin_grant_is_idempotent(self, db, factory):
        user = await factory.user()
        user_id = user.id

        first, created = await grant_badge(db, user_id, "VERIFIED_EXPERT", BadgeSource.admin)
        await db.commit()
        assert created is True
        assert first.source == BadgeSource.admin.value

        second, created_again = await grant_badge(db, user_id, "VERIFIED_EXPERT", BadgeSource.admin)
        await db.commit()
        assert created_again is False
        assert second.id == first.id

        count = (await db.execute(select(func.count(UserBadge.id)))).scalar_one()
        assert count == 1

    async def test_grant_pending_awards_earned_automatic_badges(self, db, factory):
        asker = await factory.user()
        author = await factory.user()
        author_id = author.id
        for _ in range(5):
            question = await factory.question(asker)
            await factory.answer(question, author, is_featured=True)

        await refresh_expertise(db, author_id)
        granted = await grant_pending_badges(db, author_id)
        await db.commit()

        # FEATURED_ANSWER is eligible but manual, so it stays pending
        assert granted == ["ACTIVE_RESPONDER"]
        assert BADGES_BY_CODE["FEATURED_ANSWER"].is_manual

        assert await grant_pending_badges(db, author_id) == []
