"""Tests for the reconciliation worker cycle and request path normalisation."""

import pytest

from qa_engine.config import settings
from qa_engine.middleware.logging_middleware import normalize_path
from qa_engine.worker import reconciliation_worker


class TestReconciliationCycle:
    async def test_drains_backlog_in_batches(self, db, factory, session_factory, monkeypatch):
        asker = await factory.user()
        author = await factory.user()
        question = await factory.question(asker)
        for minutes in (10, 20, 30):
            await factory.answer(question, author, response_minutes=minutes)

        monkeypatch.setattr(reconciliation_worker, "async_session_factory", session_factory)
        monkeypatch.setattr(settings, "reconciliation_batch_size", 2)

        total = await reconciliation_worker.run_reconciliation_cycle()
        assert (total.processed, total.updated, total.failed) == (3, 3, 0)

        again = await reconciliation_worker.run_reconciliation_cycle()
        assert again.processed == 0


class TestNormalizePath:
    @pytest.mark.parametrize(
        "path, expected",
        [
            ("/api/v1/answers/3f2b8c1e-9d4a-4c7e-8a51-0b6d2e9f7c13/quality", "/api/v1/answers/{id}/quality"),
            ("/api/v1/leaderboard", "/api/v1/leaderboard"),
            (
                "/api/v1/admin/users/3F2B8C1E-9D4A-4C7E-8A51-0B6D2E9F7C13/badges",
                "/api/v1/admin/users/{id}/badges",
            ),
        ],
    )
    def test_ids_replaced(self, path, expected):
        assert normalize_path(path) == expected
