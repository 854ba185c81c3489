"""API tests for the participant area and the quest flow endpoints."""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from conftest import make_quest, make_user, scalar_result, scalars_result, utcnow
from maker.models import QuestPage, Skill, Task, UserSkill, WorkshopRole
from maker.services.quest_progress import QuestFlow, flow_guard


@pytest.fixture
def participant(act_as):
    return act_as(make_user(display_name="Pat"), WorkshopRole.participant)


def patched_flow(store, quest, user, total_pages=3):
    flow = QuestFlow(store, quest.id, user.id, total_pages)
    return (
        patch("maker.routes.participant._get_visible_quest", AsyncMock(return_value=quest)),
        patch("maker.routes.participant.load_flow", AsyncMock(return_value=flow)),
    )


class TestAreaGuard:
    @pytest.mark.asyncio
    async def test_no_session_redirects_to_login(self, client):
        resp = await client.get("/api/participant")
        assert resp.status_code == 303
        assert resp.headers["location"] == "/auth/login"
        assert resp.json()["reason"] == "unauthenticated"

    @pytest.mark.asyncio
    async def test_unassigned_user_redirects_to_waiting_room(self, client, act_as):
        act_as(make_user(), None)
        resp = await client.get("/api/participant/quests")
        assert resp.status_code == 303
        assert resp.headers["location"] == "/waiting-room"

    @pytest.mark.asyncio
    async def test_facilitator_may_enter(self, client, act_as, db_session):
        act_as(make_user(), WorkshopRole.facilitator)
        result = MagicMock()
        result.all.return_value = []
        db_session.execute.return_value = result
        resp = await client.get("/api/participant/quests")
        assert resp.status_code == 200
        assert resp.json() == []


class TestQuestPage:
    @pytest.mark.asyncio
    async def test_missing_quest_redirects_to_list(self, client, participant, db_session):
        db_session.execute.return_value = scalar_result(None)
        resp = await client.get(f"/api/participant/quests/{uuid4()}")
        assert resp.status_code == 303
        assert resp.headers["location"] == "/participant/quests"
        assert resp.json()["reason"] == "not_found"

    @pytest.mark.asyncio
    async def test_open_returns_content_and_record(self, client, participant, db_session, store):
        quest = make_quest()
        pages = [
            QuestPage(id=uuid4(), quest_id=quest.id, page_number=n, title=f"Page {n}", content="<p>…</p>")
            for n in (1, 2, 3)
        ]
        tasks = [Task(id=uuid4(), quest_id=quest.id, page_number=2, description="Check polarity")]
        db_session.execute.side_effect = [
            scalars_result(pages),
            scalars_result(tasks),
            scalars_result([]),
        ]
        visible, loader = patched_flow(store, quest, participant.user)

        with visible, loader:
            resp = await client.get(f"/api/participant/quests/{quest.id}")

        assert resp.status_code == 200
        body = resp.json()
        assert [p["page_number"] for p in body["pages"]] == [1, 2, 3]
        assert body["tasks_by_page"]["2"][0]["description"] == "Check polarity"
        assert body["user_quest"]["status"] == "in_progress"
        assert body["state"]["cursor"] == 0
        assert body["state"]["percent"] == 33


class TestTransitions:
    @pytest.mark.asyncio
    async def test_advance(self, client, participant, store):
        quest = make_quest()
        visible, loader = patched_flow(store, quest, participant.user)

        with visible, loader:
            resp = await client.post(
                f"/api/participant/quests/{quest.id}/advance", json={"current_index": 0}
            )

        assert resp.status_code == 200
        state = resp.json()
        assert state["cursor"] == 1
        assert state["progress"] == 67
        assert state["saved"] is True

    @pytest.mark.asyncio
    async def test_complete_off_last_page_is_bad_request(self, client, participant, store):
        quest = make_quest()
        visible, loader = patched_flow(store, quest, participant.user)

        with visible, loader:
            resp = await client.post(
                f"/api/participant/quests/{quest.id}/complete", json={"current_index": 0}
            )

        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_complete_on_last_page(self, client, participant, store):
        quest = make_quest()
        visible, loader = patched_flow(store, quest, participant.user)

        with visible, loader:
            resp = await client.post(
                f"/api/participant/quests/{quest.id}/complete", json={"current_index": 2}
            )

        assert resp.status_code == 200
        assert resp.json()["status"] == "completed"
        assert resp.json()["progress"] == 100

    @pytest.mark.asyncio
    async def test_retreat_does_not_write(self, client, participant, store):
        quest = make_quest()
        visible, loader = patched_flow(store, quest, participant.user)

        with visible, loader:
            resp = await client.post(
                f"/api/participant/quests/{quest.id}/retreat", json={"current_index": 1}
            )

        assert resp.status_code == 200
        assert resp.json()["cursor"] == 0
        assert store.writes == 0

    @pytest.mark.asyncio
    async def test_transition_while_busy_conflicts(self, client, participant, store):
        quest = make_quest()
        visible, loader = patched_flow(store, quest, participant.user)

        with visible, loader, flow_guard(participant.user.id, quest.id):
            resp = await client.post(
                f"/api/participant/quests/{quest.id}/advance", json={"current_index": 0}
            )

        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_negative_index_rejected(self, client, participant):
        resp = await client.post(
            f"/api/participant/quests/{uuid4()}/advance", json={"current_index": -1}
        )
        assert resp.status_code == 422


class TestSkills:
    @pytest.mark.asyncio
    async def test_learned_skills_and_percent(self, client, participant, db_session):
        circuits = Skill(id=uuid4(), name="Circuits", description=None, icon=None, created_at=utcnow())
        soldering = Skill(id=uuid4(), name="Soldering", description=None, icon=None, created_at=utcnow())
        earned = UserSkill(user_id=participant.user.id, skill_id=circuits.id, xp=100, level=2)
        db_session.execute.side_effect = [
            scalars_result([circuits, soldering]),
            scalars_result([earned]),
        ]

        resp = await client.get("/api/participant/skills")

        assert resp.status_code == 200
        body = resp.json()
        assert (body["learned"], body["total"], body["percent"]) == (1, 2, 50)
        assert [s["learned"] for s in body["skills"]] == [True, False]
        assert body["skills"][0]["xp"] == 100

    @pytest.mark.asyncio
    async def test_no_skills_is_zero_percent(self, client, participant, db_session):
        db_session.execute.side_effect = [scalars_result([]), scalars_result([])]
        resp = await client.get("/api/participant/skills")
        assert resp.json() == {"skills": [], "learned": 0, "total": 0, "percent": 0}
