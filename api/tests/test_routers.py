"""HTTP tests for the API routers, through the ASGI app with a test database."""

from datetime import timedelta
from types import SimpleNamespace

import pytest_asyncio

from qa_engine.services.timeutil import utcnow

ASKER_KEY = "asker-key"
AUTHOR_KEY = "author-key"
STRANGER_KEY = "stranger-key"
ADMIN_KEY = "admin-key"


def auth(key: str) -> dict:
    return {"X-API-Key": key}


@pytest_asyncio.fixture
async def api(factory):
    """Asker, answer author, an unrelated user and an admin, plus one Q&A pair."""
    asker = await factory.user(display_name="asker", api_key=ASKER_KEY)
    author = await factory.user(display_name="author", api_key=AUTHOR_KEY)
    stranger = await factory.user(display_name="stranger", api_key=STRANGER_KEY)
    admin = await factory.user(display_name="admin", api_key=ADMIN_KEY, is_admin=True)
    question = await factory.question(asker, created_at=utcnow() - timedelta(hours=3), views_count=12)
    answer = await factory.answer(question, author)
    return SimpleNamespace(
        asker_id=asker.id,
        author_id=author.id,
        stranger_id=stranger.id,
        admin_id=admin.id,
        question_id=question.id,
        answer_id=answer.id,
    )


class TestAuth:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    async def test_missing_key(self, client, api):
        response = await client.get(f"/api/v1/answers/{api.answer_id}/quality")
        assert response.status_code in (401, 403)

    async def test_unknown_key(self, client, api):
        response = await client.get(f"/api/v1/answers/{api.answer_id}/quality", headers=auth("nope"))
        assert response.status_code == 401

    async def test_issue_and_verify_key(self, client):
        created = await client.post("/api/v1/keys", json={"display_name": "new user"})
        assert created.status_code == 201
        key = created.json()["api_key"]

        verified = await client.get("/api/v1/keys/verify", headers=auth(key))
        assert verified.status_code == 200
        assert verified.json()["user_id"] == created.json()["user_id"]
        assert verified.json()["is_admin"] is False

    async def test_duplicate_email(self, client):
        first = await client.post("/api/v1/keys", json={"email": "a@example.com"})
        assert first.status_code == 201
        second = await client.post("/api/v1/keys", json={"email": "a@example.com"})
        assert second.status_code == 409

    async def test_rate_limited(self, client, api, fake_redis):
        fake_redis.allowed = 0
        response = await client.get(f"/api/v1/answers/{api.answer_id}/quality", headers=auth(ASKER_KEY))
        assert response.status_code == 429
        assert response.headers["Retry-After"] == "60"
        assert fake_redis.calls == [f"qa:rl:{api.asker_id}:read"]


class TestReactionEndpoints:
    async def test_asker_reaction_rescores(self, client, api):
        url = f"/api/v1/answers/{api.answer_id}"
        response = await client.post(f"{url}/reactions", json={"type": "helpful"}, headers=auth(ASKER_KEY))
        assert response.status_code == 200
        body = response.json()
        assert (body["action"], body["reaction"], body["is_asker"]) == ("added", "helpful", True)
        assert body["helpful_count"] == 1

        quality = (await client.get(f"{url}/quality", headers=auth(ASKER_KEY))).json()
        assert (quality["aqs"], quality["last_trigger"]) == (33, "REACTION")

        mine = (await client.get(f"{url}/reactions/me", headers=auth(ASKER_KEY))).json()
        assert mine["reaction"] == "helpful"

    async def test_community_reaction_does_not_rescore(self, client, api):
        url = f"/api/v1/answers/{api.answer_id}"
        response = await client.post(f"{url}/reactions", json={"type": "helpful"}, headers=auth(STRANGER_KEY))
        assert response.json()["is_asker"] is False

        quality = (await client.get(f"{url}/quality", headers=auth(STRANGER_KEY))).json()
        assert quality["aqs"] == 25
        assert quality["computed_at"] is None

    async def test_toggle_off(self, client, api):
        url = f"/api/v1/answers/{api.answer_id}/reactions"
        await client.post(url, json={"type": "expert"}, headers=auth(STRANGER_KEY))
        response = await client.post(url, json={"type": "expert"}, headers=auth(STRANGER_KEY))
        assert response.json()["action"] == "removed"
        assert response.json()["expert_badge_count"] == 0

    async def test_rejections(self, client, api):
        url = f"/api/v1/answers/{api.answer_id}/reactions"
        own = await client.post(url, json={"type": "expert"}, headers=auth(AUTHOR_KEY))
        assert own.status_code == 422
        bad = await client.post(url, json={"type": "love"}, headers=auth(STRANGER_KEY))
        assert bad.status_code == 422
        missing = await client.post(
            "/api/v1/answers/00000000-0000-0000-0000-000000000000/reactions",
            json={"type": "helpful"},
            headers=auth(STRANGER_KEY),
        )
        assert missing.status_code == 404


class TestFlagEndpoints:
    async def test_flag_and_unflag_rescore(self, client, api):
        url = f"/api/v1/answers/{api.answer_id}"
        flagged = await client.post(f"{url}/flags", json={"reason": "spam"}, headers=auth(STRANGER_KEY))
        assert flagged.status_code == 200
        assert flagged.json() == {"answer_id": str(api.answer_id), "action": "created", "reason": "SPAM"}
        assert (await client.get(f"{url}/quality", headers=auth(STRANGER_KEY))).json()["aqs"] == 0

        mine = (await client.get(f"{url}/flags/me", headers=auth(STRANGER_KEY))).json()
        assert (mine["flagged"], mine["reason"]) == (True, "SPAM")

        removed = await client.delete(f"{url}/flags", headers=auth(STRANGER_KEY))
        assert removed.json()["action"] == "removed"
        assert (await client.get(f"{url}/quality", headers=auth(STRANGER_KEY))).json()["aqs"] == 25

    async def test_note_too_long(self, client, api):
        response = await client.post(
            f"/api/v1/answers/{api.answer_id}/flags",
            json={"reason": "OTHER", "note": "n" * 501},
            headers=auth(STRANGER_KEY),
        )
        assert response.status_code == 422

    async def test_unknown_reason(self, client, api):
        response = await client.post(
            f"/api/v1/answers/{api.answer_id}/flags", json={"reason": "rude"}, headers=auth(STRANGER_KEY)
        )
        assert response.status_code == 422


class TestQuestionEndpoints:
    async def test_accept_and_rank(self, client, api, factory):
        question = SimpleNamespace(id=api.question_id, created_at=utcnow() - timedelta(hours=3))
        stranger = SimpleNamespace(id=api.stranger_id)
        second = await factory.answer(question, stranger, body="s" * 200, response_minutes=700)
        second_id = second.id

        url = f"/api/v1/questions/{api.question_id}"
        accepted = await client.post(f"{url}/accept", json={"answer_id": str(second_id)}, headers=auth(ASKER_KEY))
        assert accepted.status_code == 200
        assert accepted.json()["changed"] is True

        ranked = (await client.get(f"{url}/answers", headers=auth(STRANGER_KEY))).json()
        assert [a["id"] for a in ranked] == [str(second_id), str(api.answer_id)]
        assert ranked[0]["label"] == "STAR"
        assert ranked[1]["aqs"] == 25

        cleared = await client.delete(f"{url}/accept", headers=auth(ASKER_KEY))
        assert cleared.json()["previous_answer_id"] == str(second_id)

    async def test_only_asker_accepts(self, client, api):
        response = await client.post(
            f"/api/v1/questions/{api.question_id}/accept",
            json={"answer_id": str(api.answer_id)},
            headers=auth(STRANGER_KEY),
        )
        assert response.status_code == 403

    async def test_trending(self, client, api):
        response = await client.get("/api/v1/questions/trending?period=day", headers=auth(STRANGER_KEY))
        assert response.status_code == 200
        body = response.json()
        assert body["period"] == "day"
        assert [q["id"] for q in body["trending"]] == [str(api.question_id)]
        # 12 views, under 24h old
        assert body["trending"][0]["trending_score"] == 24.0

    async def test_trending_bad_period(self, client, api):
        response = await client.get("/api/v1/questions/trending?period=decade", headers=auth(STRANGER_KEY))
        assert response.status_code == 422


class TestEditEndpoint:
    async def test_author_edits(self, client, api):
        response = await client.patch(
            f"/api/v1/answers/{api.answer_id}", json={"body": "b" * 450}, headers=auth(AUTHOR_KEY)
        )
        assert response.status_code == 200
        assert response.json()["edit_count"] == 1

        quality = (await client.get(f"/api/v1/answers/{api.answer_id}/quality", headers=auth(AUTHOR_KEY))).json()
        assert quality["last_trigger"] == "EDIT"

    async def test_non_author_and_empty_body(self, client, api):
        url = f"/api/v1/answers/{api.answer_id}"
        assert (await client.patch(url, json={"body": "hijack"}, headers=auth(ASKER_KEY))).status_code == 403
        assert (await client.patch(url, json={"body": ""}, headers=auth(AUTHOR_KEY))).status_code == 422


class TestExpertiseEndpoints:
    async def test_expertise_built_on_first_read(self, client, api):
        response = await client.get(f"/api/v1/users/{api.author_id}/expertise", headers=auth(STRANGER_KEY))
        assert response.status_code == 200
        body = response.json()
        assert (body["total_answers"], body["expert_score"], body["expert_level"]) == (1, 10, "newcomer")
        assert body["next_level"] == {"level": "contributor", "min_score": 30, "points_needed": 20, "progress": 33}
        assert body["top_category"] == "tax"
        assert body["badges"] == []
        assert body["pending_badges"] == []

    async def test_refresh_self_or_admin_only(self, client, api):
        url = f"/api/v1/users/{api.author_id}/expertise/refresh"
        assert (await client.post(url, headers=auth(STRANGER_KEY))).status_code == 403
        assert (await client.post(url, headers=auth(AUTHOR_KEY))).status_code == 200
        assert (await client.post(url, headers=auth(ADMIN_KEY))).status_code == 200

    async def test_qa_stats(self, client, api):
        response = await client.get(f"/api/v1/users/{api.asker_id}/qa-stats", headers=auth(STRANGER_KEY))
        assert response.status_code == 200
        body = response.json()
        assert (body["total_questions"], body["total_answers"], body["expert_score"]) == (1, 0, 2)

    async def test_unknown_user(self, client, api):
        response = await client.get(
            "/api/v1/users/00000000-0000-0000-0000-000000000000/qa-stats", headers=auth(STRANGER_KEY)
        )
        assert response.status_code == 404


class TestLeaderboardEndpoint:
    async def test_leaderboard(self, client, api):
        response = await client.get("/api/v1/leaderboard", headers=auth(STRANGER_KEY))
        assert response.status_code == 200
        body = response.json()
        assert body["total_experts"] == 1
        assert body["experts"][0]["display_name"] == "author"

    async def test_validation(self, client, api):
        assert (await client.get("/api/v1/leaderboard?period=year", headers=auth(STRANGER_KEY))).status_code == 422
        assert (await client.get("/api/v1/leaderboard?limit=0", headers=auth(STRANGER_KEY))).status_code == 422


class TestAdminEndpoints:
    async def test_non_admin_forbidden(self, client, api):
        response = await client.get(f"/api/v1/admin/answers/{api.answer_id}/quality", headers=auth(ASKER_KEY))
        assert response.status_code == 403

    async def test_debug_and_force_recompute(self, client, api):
        url = f"/api/v1/admin/answers/{api.answer_id}/quality"
        debug = (await client.get(url, headers=auth(ADMIN_KEY))).json()
        assert debug["metric"] is None
        assert debug["fresh"]["aqs"] == 25

        forced = await client.post(f"{url}/recompute", json={"trigger": "edit"}, headers=auth(ADMIN_KEY))
        assert forced.status_code == 200
        assert (forced.json()["aqs"], forced.json()["previous_aqs"]) == (25, None)

        bad = await client.post(f"{url}/recompute", json={"trigger": "VOTE"}, headers=auth(ADMIN_KEY))
        assert bad.status_code == 422

    async def test_reconcile(self, client, api):
        response = await client.post("/api/v1/admin/quality/reconcile", json={}, headers=auth(ADMIN_KEY))
        assert response.json() == {"processed": 1, "updated": 1, "failed": 0}

    async def test_expertise_parity(self, client, api):
        await client.get(f"/api/v1/users/{api.author_id}/expertise", headers=auth(ADMIN_KEY))
        response = await client.get(f"/api/v1/admin/users/{api.author_id}/expertise", headers=auth(ADMIN_KEY))
        body = response.json()
        assert body["stored_score"] == body["fresh_score"] == body["leaderboard_score"] == 10
        assert body["in_sync"] is True

    async def test_grant_badges(self, client, api):
        url = f"/api/v1/admin/users/{api.author_id}/badges"
        first = await client.post(url, json={"code": "VERIFIED_EXPERT"}, headers=auth(ADMIN_KEY))
        assert first.status_code == 201
        assert (first.json()["created"], first.json()["source"]) == (True, "admin")

        again = await client.post(url, json={"code": "VERIFIED_EXPERT"}, headers=auth(ADMIN_KEY))
        assert again.json()["created"] is False

        unknown = await client.post(url, json={"code": "NOPE"}, headers=auth(ADMIN_KEY))
        assert unknown.status_code == 404

        pending = await client.post(f"{url}/pending", headers=auth(ADMIN_KEY))
        assert pending.json() == {"user_id": str(api.author_id), "granted": []}

        expertise = (await client.get(f"/api/v1/users/{api.author_id}/expertise", headers=auth(ADMIN_KEY))).json()
        assert [b["code"] for b in expertise["badges"]] == ["VERIFIED_EXPERT"]
