"""Tests for the recompute dispatcher (qa_engine.services.recompute).

Default fixture answers are 500 characters and posted 10 hours after the
question, so a fresh answer scores 15 baseline + 10 length = 25.
"""

import asyncio
import uuid
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from qa_engine.config import settings
from qa_engine.errors import NotFoundError, ValidationError
from qa_engine.models import Answer, AnswerQualityMetric
from qa_engine.services import recompute
from qa_engine.services.answers import accept_answer
from qa_engine.services.flags import flag_answer, unflag_answer
from qa_engine.services.reactions import toggle_reaction
from qa_engine.services.recompute import (
    TriggerKind,
    batch_recompute_stale,
    get_answer_quality,
    get_answer_quality_debug,
    parse_trigger_kind,
    recompute_answer,
    recompute_question_answers,
    run_recompute,
)
from qa_engine.services.timeutil import utcnow


async def stored_metric(db, answer_id):
    result = await db.execute(
        select(AnswerQualityMetric)
        .where(AnswerQualityMetric.answer_id == answer_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


@pytest_asyncio.fixture
async def thread(factory):
    asker = await factory.user()
    author = await factory.user()
    question = await factory.question(asker)
    answer = await factory.answer(question, author)
    return asker.id, author.id, question.id, answer.id


class TestParseTriggerKind:
    @pytest.mark.parametrize("value", ["REACTION", "flag", "Edit", "ACCEPT", "new_answer", "RECONCILE"])
    def test_valid(self, value):
        assert parse_trigger_kind(value).value == value.upper()

    @pytest.mark.parametrize("value", ["VOTE", "", None])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_trigger_kind(value)


class TestRecomputeAnswer:
    async def test_first_recompute_creates_metric(self, db, thread):
        _, _, _, answer_id = thread
        result = await recompute_answer(db, answer_id, TriggerKind.NEW_ANSWER)
        await db.commit()

        assert (result.aqs, result.label) == (25, "NORMAL")
        assert result.previous_aqs is None
        assert result.changed

        metric = await stored_metric(db, answer_id)
        assert metric.aqs == 25
        assert metric.last_trigger == "NEW_ANSWER"
        assert metric.details["length"] == 10

    async def test_idempotent(self, db, thread):
        _, _, _, answer_id = thread
        await recompute_answer(db, answer_id, TriggerKind.NEW_ANSWER)
        await db.commit()
        again = await recompute_answer(db, answer_id, TriggerKind.RECONCILE)
        await db.commit()

        assert again.aqs == again.previous_aqs == 25
        assert not again.changed
        count = await db.execute(select(func.count(AnswerQualityMetric.id)))
        assert count.scalar_one() == 1

    async def test_missing_answer(self, db):
        with pytest.raises(NotFoundError):
            await recompute_answer(db, uuid.uuid4(), TriggerKind.RECONCILE)

    async def test_only_asker_reaction_scores(self, db, factory, thread):
        asker_id, _, _, answer_id = thread
        stranger = await factory.user()
        await toggle_reaction(db, answer_id, stranger.id, "helpful")
        await db.commit()
        assert (await recompute_answer(db, answer_id, TriggerKind.REACTION)).aqs == 25

        await toggle_reaction(db, answer_id, asker_id, "helpful")
        await db.commit()
        assert (await recompute_answer(db, answer_id, TriggerKind.REACTION)).aqs == 33

        await toggle_reaction(db, answer_id, asker_id, "not_helpful")
        await db.commit()
        assert (await recompute_answer(db, answer_id, TriggerKind.REACTION)).aqs == 15

    async def test_fast_answer_bonus(self, db, factory):
        asker = await factory.user()
        author = await factory.user()
        question = await factory.question(asker)
        answer = await factory.answer(question, author, response_minutes=30)
        assert (await recompute_answer(db, answer.id, TriggerKind.NEW_ANSWER)).aqs == 27

    async def test_expert_accept_flag_scenario(self, db, factory, thread):
        asker_id, _, question_id, answer_id = thread
        stranger = await factory.user()
        stranger_id = stranger.id
        await toggle_reaction(db, answer_id, asker_id, "expert")
        await accept_answer(db, question_id, answer_id, asker_id)
        await flag_answer(db, answer_id, stranger_id, "LOW_QUALITY")
        await db.commit()

        flagged = await recompute_answer(db, answer_id, TriggerKind.FLAG)
        await db.commit()
        assert (flagged.aqs, flagged.label) == (65, "USEFUL")

        await unflag_answer(db, answer_id, stranger_id)
        await db.commit()
        cleared = await recompute_answer(db, answer_id, TriggerKind.FLAG)
        await db.commit()
        assert (cleared.aqs, cleared.label) == (75, "STAR")
        assert cleared.previous_label == "USEFUL"

    async def test_community_expert_votes_never_reach_the_score(self, db, factory, thread):
        _, _, _, answer_id = thread
        await run_recompute(db, answer_id, TriggerKind.NEW_ANSWER)
        voters = [(await factory.user()).id for _ in range(3)]
        for voter_id in voters:
            outcome = await toggle_reaction(db, answer_id, voter_id, "expert")
            assert not outcome.is_asker
        await db.commit()

        await flag_answer(db, answer_id, voters[0], "OTHER")
        await db.commit()
        assert (await run_recompute(db, answer_id, TriggerKind.FLAG)).aqs == 15

        await unflag_answer(db, answer_id, voters[0])
        await db.commit()
        result = await run_recompute(db, answer_id, TriggerKind.FLAG)
        assert (result.aqs, result.label) == (25, "NORMAL")
        answer = await db.get(Answer, answer_id, populate_existing=True)
        assert answer.expert_badge_count == 3

    async def test_author_track_record(self, db, factory):
        asker = await factory.user()
        author = await factory.user()
        asker_id = asker.id
        earlier = []
        for minutes in (700, 710, 720, 730):
            question = await factory.question(asker)
            answer = await factory.answer(question, author, response_minutes=minutes)
            earlier.append((question.id, answer.id))
        for question_id, answer_id in earlier[:2]:
            await accept_answer(db, question_id, answer_id, asker_id)
        await db.commit()

        fresh = await factory.answer(await factory.question(asker), author)
        result = await recompute_answer(db, fresh.id, TriggerKind.NEW_ANSWER)
        await db.commit()
        # 4 other answers, 2 accepted
        assert result.aqs == 35
        assert (await stored_metric(db, fresh.id)).details["author_acceptance"] == 10

    async def test_body_structure_scores(self, db, factory):
        asker = await factory.user()
        author = await factory.user()
        question = await factory.question(asker, category="tax")
        body = (
            "Step 1 list every deduction you qualify for.\n\n"
            "- keep receipts\n- adjust your withholding\n\n"
            "For example, a home office counts. " + "z" * 300
        )
        answer = await factory.answer(question, author, body=body)
        result = await recompute_answer(db, answer.id, TriggerKind.NEW_ANSWER)
        # 15 + 10 length + 4 structure + 3 example + 3 steps + 3 domain
        assert result.aqs == 38

    async def test_hidden_answer_is_not_scored(self, db, factory):
        asker = await factory.user()
        author = await factory.user()
        question = await factory.question(asker)
        hidden = await factory.answer(question, author, is_hidden=True)
        hidden_id = hidden.id
        with pytest.raises(NotFoundError):
            await recompute_answer(db, hidden_id, TriggerKind.RECONCILE)
        await db.rollback()
        assert await stored_metric(db, hidden_id) is None

    async def test_question_recompute_skips_hidden(self, db, factory):
        asker = await factory.user()
        author = await factory.user()
        question = await factory.question(asker)
        visible = await factory.answer(question, author)
        hidden = await factory.answer(question, author, is_hidden=True, response_minutes=700)
        visible_id, hidden_id = visible.id, hidden.id

        results = await recompute_question_answers(db, question.id)
        await db.commit()
        assert [r.answer_id for r in results] == [visible_id]
        assert await stored_metric(db, hidden_id) is None


class TestRunRecompute:
    async def test_success_commits(self, db, thread):
        _, _, _, answer_id = thread
        result = await run_recompute(db, answer_id, TriggerKind.NEW_ANSWER)
        assert result.aqs == 25
        assert (await stored_metric(db, answer_id)).aqs == 25

    async def test_failure_is_swallowed_and_keeps_previous_score(self, db, thread, monkeypatch):
        asker_id, _, _, answer_id = thread
        await run_recompute(db, answer_id, TriggerKind.NEW_ANSWER)

        await toggle_reaction(db, answer_id, asker_id, "helpful")
        await db.commit()

        async def broken(*args, **kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr(recompute, "recompute_answer", broken)
        assert await run_recompute(db, answer_id, TriggerKind.REACTION) is None
        assert (await stored_metric(db, answer_id)).aqs == 25

        monkeypatch.undo()
        assert (await run_recompute(db, answer_id, TriggerKind.REACTION)).aqs == 33

    async def test_timeout_is_swallowed(self, db, thread, monkeypatch):
        _, _, _, answer_id = thread

        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        monkeypatch.setattr(recompute, "recompute_answer", slow)
        monkeypatch.setattr(settings, "recompute_timeout_seconds", 0.01)
        assert await run_recompute(db, answer_id, TriggerKind.EDIT) is None
        assert await stored_metric(db, answer_id) is None

    async def test_failed_rollback_is_swallowed(self, db, thread, monkeypatch):
        _, _, _, answer_id = thread

        async def broken(*args, **kwargs):
            raise RuntimeError("database went away")

        async def broken_rollback():
            raise RuntimeError("connection closed")

        monkeypatch.setattr(recompute, "recompute_answer", broken)
        monkeypatch.setattr(db, "rollback", broken_rollback)
        assert await run_recompute(db, answer_id, TriggerKind.FLAG) is None

    async def test_missing_answer_is_swallowed(self, db):
        assert await run_recompute(db, uuid.uuid4(), TriggerKind.RECONCILE) is None


class TestBatchRecomputeStale:
    async def test_scores_missing_then_skips_fresh(self, db, factory):
        asker = await factory.user()
        author = await factory.user()
        question = await factory.question(asker)
        first = await factory.answer(question, author)
        second = await factory.answer(question, author, response_minutes=700)
        await factory.answer(question, author, is_hidden=True, response_minutes=800)
        first_id, second_id = first.id, second.id

        batch = await batch_recompute_stale(db, max_age_days=7, limit=10)
        assert (batch.processed, batch.updated, batch.failed) == (2, 2, 0)
        assert batch.answer_ids == [first_id, second_id]

        fresh = await batch_recompute_stale(db, max_age_days=7, limit=10)
        assert fresh.processed == 0

    async def test_old_metrics_are_rechecked(self, db, thread):
        _, _, _, answer_id = thread
        await run_recompute(db, answer_id, TriggerKind.NEW_ANSWER)

        later = utcnow() + timedelta(days=8)
        batch = await batch_recompute_stale(db, max_age_days=7, limit=10, now=later)
        assert batch.processed == 1
        assert batch.updated == 0

    async def test_limit(self, db, factory):
        asker = await factory.user()
        author = await factory.user()
        question = await factory.question(asker)
        for minutes in (10, 20, 30):
            await factory.answer(question, author, response_minutes=minutes)

        batch = await batch_recompute_stale(db, max_age_days=7, limit=2)
        assert batch.processed == 2

    async def test_one_failure_does_not_stop_the_batch(self, db, factory, monkeypatch):
        asker = await factory.user()
        author = await factory.user()
        question = await factory.question(asker)
        bad = await factory.answer(question, author, response_minutes=10)
        good = await factory.answer(question, author, response_minutes=20)
        bad_id, good_id = bad.id, good.id

        original = recompute.recompute_answer

        async def flaky(db, answer_id, trigger, weights=None):
            if answer_id == bad_id:
                raise RuntimeError("boom")
            return await original(db, answer_id, trigger, weights)

        monkeypatch.setattr(recompute, "recompute_answer", flaky)
        batch = await batch_recompute_stale(db, max_age_days=7, limit=10)

        assert (batch.processed, batch.updated, batch.failed) == (2, 1, 1)
        assert batch.answer_ids == [good_id]
        assert await stored_metric(db, bad_id) is None


class TestReads:
    async def test_quality_is_computed_live_until_first_recompute(self, db, thread):
        _, _, _, answer_id = thread
        live = await get_answer_quality(db, answer_id)
        assert (live.aqs, live.label, live.computed_at) == (25, "NORMAL", None)
        assert await stored_metric(db, answer_id) is None

        await run_recompute(db, answer_id, TriggerKind.NEW_ANSWER)
        stored = await get_answer_quality(db, answer_id)
        assert stored.computed_at is not None
        assert stored.last_trigger == "NEW_ANSWER"

    async def test_hidden_answer_quality_is_not_found(self, db, factory):
        asker = await factory.user()
        author = await factory.user()
        question = await factory.question(asker)
        hidden = await factory.answer(question, author, is_hidden=True)
        with pytest.raises(NotFoundError):
            await get_answer_quality(db, hidden.id)

    async def test_debug_view(self, db, factory, thread):
        asker_id, author_id, _, answer_id = thread
        stranger = await factory.user()
        stranger_id = stranger.id
        await toggle_reaction(db, answer_id, asker_id, "helpful")
        await flag_answer(db, answer_id, stranger_id, "OTHER", note="off topic")
        await db.commit()
        await run_recompute(db, answer_id, TriggerKind.FLAG)

        debug = await get_answer_quality_debug(db, answer_id)

        assert debug["asker_id"] == asker_id
        assert debug["metric"]["aqs"] == debug["fresh"]["aqs"] == 23
        assert debug["reactions"][0]["is_asker"] is True
        assert debug["flags"][0]["note"] == "off topic"
        assert debug["answer"]["author_id"] == author_id
        assert debug["author_expert_score"] == 15
        assert debug["author_expert_level"] == "newcomer"
