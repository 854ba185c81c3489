"""API tests for facilitator quest authoring, lifecycle and skills."""

from uuid import uuid4

import pytest

from sqlalchemy.exc import IntegrityError

from conftest import make_quest, make_user, scalar_result, scalars_result, utcnow
from maker.models import Skill, WorkshopRole


@pytest.fixture
def facilitator(act_as):
    return act_as(make_user(display_name="Fran"), WorkshopRole.facilitator)


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_publish_draft(self, client, facilitator, db_session):
        quest = make_quest(status="draft", created_by=facilitator.user.id)
        db_session.execute.return_value = scalar_result(quest)

        resp = await client.post(f"/api/facilitator/quests/{quest.id}/publish")

        assert resp.status_code == 200
        assert resp.json()["status"] == "published"

    @pytest.mark.asyncio
    async def test_archived_cannot_be_republished(self, client, facilitator, db_session):
        quest = make_quest(status="archived", created_by=facilitator.user.id)
        db_session.execute.return_value = scalar_result(quest)

        resp = await client.post(f"/api/facilitator/quests/{quest.id}/publish")

        assert resp.status_code == 400
        assert "Cannot transition quest" in resp.json()["detail"]

    @pytest.mark.asyncio
    async def test_only_author_may_edit(self, client, facilitator, db_session):
        quest = make_quest(status="draft", created_by=uuid4())
        db_session.execute.return_value = scalar_result(quest)

        resp = await client.post(f"/api/facilitator/quests/{quest.id}/publish")

        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_admin_may_edit_any_quest(self, client, act_as, db_session):
        act_as(make_user(), WorkshopRole.admin)
        quest = make_quest(status="published", created_by=uuid4())
        db_session.execute.return_value = scalar_result(quest)

        resp = await client.post(f"/api/facilitator/quests/{quest.id}/archive")

        assert resp.status_code == 200
        assert resp.json()["status"] == "archived"

    @pytest.mark.asyncio
    async def test_missing_quest_redirects_to_list(self, client, facilitator, db_session):
        db_session.execute.return_value = scalar_result(None)
        resp = await client.delete(f"/api/facilitator/quests/{uuid4()}")
        assert resp.status_code == 303
        assert resp.headers["location"] == "/facilitator/quests"


class TestAuthoring:
    @pytest.mark.asyncio
    async def test_task_on_missing_page_rejected(self, client, facilitator):
        resp = await client.post(
            "/api/facilitator/quests",
            json={
                "title": "Paper Circuits",
                "pages": [{"page_number": 1, "content": "<p>Plan</p>"}],
                "tasks": [{"page_number": 2, "description": "Fold the tape"}],
            },
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_duplicate_page_numbers_rejected(self, client, facilitator):
        resp = await client.post(
            "/api/facilitator/quests",
            json={
                "title": "Paper Circuits",
                "pages": [{"page_number": 1}, {"page_number": 1}],
            },
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_participant_redirected_out(self, client, act_as):
        act_as(make_user(), WorkshopRole.participant)
        resp = await client.get("/api/facilitator/quests")
        assert resp.status_code == 303
        assert resp.headers["location"] == "/participant"

    @pytest.mark.asyncio
    async def test_unknown_skill_rejected(self, client, facilitator, db_session):
        db_session.execute.return_value = scalar_result(None)
        resp = await client.post(
            "/api/facilitator/quests",
            json={"title": "Paper Circuits", "skill_id": str(uuid4())},
        )
        assert resp.status_code == 400
        db_session.add.assert_not_called()


class TestSkills:
    @pytest.mark.asyncio
    async def test_list_skills(self, client, facilitator, db_session):
        skill = Skill(id=uuid4(), name="Circuits", description=None, icon="zap", created_at=utcnow())
        db_session.execute.return_value = scalars_result([skill])

        resp = await client.get("/api/facilitator/skills")

        assert resp.status_code == 200
        assert resp.json()[0]["name"] == "Circuits"

    @pytest.mark.asyncio
    async def test_duplicate_skill_name_conflicts(self, client, facilitator, db_session):
        db_session.commit.side_effect = IntegrityError("INSERT INTO skills", {}, Exception("name"))
        resp = await client.post("/api/facilitator/skills", json={"name": "Circuits"})
        assert resp.status_code == 409
        db_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_quest_response_carries_skill(self, client, facilitator, db_session):
        skill = Skill(id=uuid4(), name="Circuits", description=None, icon=None, created_at=utcnow())
        quest = make_quest(created_by=facilitator.user.id, skill_id=skill.id, skill=skill)
        db_session.execute.return_value = scalars_result([quest])

        resp = await client.get("/api/facilitator/quests")

        assert resp.status_code == 200
        assert resp.json()[0]["skill"]["name"] == "Circuits"
