"""API tests for admin user, workshop and assignment management."""

from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import make_user, scalar_result, scalars_result, utcnow
from maker.models import Workshop, WorkshopQuest, WorkshopRole


@pytest.fixture
def admin(act_as):
    return act_as(make_user(display_name="Ada"), WorkshopRole.admin)


class TestAdminGuard:
    @pytest.mark.asyncio
    async def test_facilitator_redirected_to_own_dashboard(self, client, act_as):
        act_as(make_user(), WorkshopRole.facilitator)
        resp = await client.get("/api/admin/users")
        assert resp.status_code == 303
        assert resp.headers["location"] == "/facilitator"
        assert resp.json()["reason"] == "forbidden"


class TestAssignments:
    @pytest.mark.asyncio
    async def test_duplicate_assignment_conflicts(self, client, admin, db_session):
        db_session.commit.side_effect = IntegrityError(
            "INSERT INTO workshop_user", {}, Exception("uq_workshop_user")
        )

        resp = await client.post(
            f"/api/admin/workshops/{uuid4()}/users",
            json={"user_id": str(uuid4()), "role": "participant"},
        )

        assert resp.status_code == 409
        db_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_role_rejected(self, client, admin):
        resp = await client.post(
            f"/api/admin/workshops/{uuid4()}/users",
            json={"user_id": str(uuid4()), "role": "superuser"},
        )
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_remove_missing_assignment(self, client, admin, db_session):
        db_session.execute.return_value = scalar_result(None)
        resp = await client.delete(f"/api/admin/workshops/{uuid4()}/users/{uuid4()}")
        assert resp.status_code == 404


class TestUsersAndWorkshops:
    @pytest.mark.asyncio
    async def test_admin_cannot_delete_self(self, client, admin):
        resp = await client.delete(f"/api/admin/users/{admin.user.id}")
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_delete_missing_user_redirects(self, client, admin, db_session):
        db_session.execute.return_value = scalar_result(None)
        resp = await client.delete(f"/api/admin/users/{uuid4()}")
        assert resp.status_code == 303
        assert resp.headers["location"] == "/admin/users"

    @pytest.mark.asyncio
    async def test_missing_workshop_redirects(self, client, admin, db_session):
        db_session.execute.return_value = scalar_result(None)
        resp = await client.patch(f"/api/admin/workshops/{uuid4()}", json={"name": "Renamed"})
        assert resp.status_code == 303
        assert resp.headers["location"] == "/admin/workshops"

    @pytest.mark.asyncio
    async def test_create_user_duplicate_email(self, client, admin, db_session):
        db_session.commit.side_effect = IntegrityError("INSERT INTO users", {}, Exception("email"))
        resp = await client.post(
            "/api/admin/users",
            json={"email": "dup@example.com", "password": "lighthouse-42"},
        )
        assert resp.status_code == 409


class TestWorkshopQuests:
    @pytest.mark.asyncio
    async def test_assign_quests_links_each_once(self, client, admin, db_session):
        workshop = Workshop(id=uuid4(), name="Lighthouse Makers")
        first, second = uuid4(), uuid4()
        db_session.execute.side_effect = [scalar_result(workshop), scalars_result([first, second])]

        async def fill(link):
            link.id = uuid4()
            link.created_at = utcnow()

        db_session.refresh.side_effect = fill

        resp = await client.post(
            f"/api/admin/workshops/{workshop.id}/quests",
            json={"quest_ids": [str(first), str(second), str(first)]},
        )

        assert resp.status_code == 201
        assert [link["quest_id"] for link in resp.json()] == [str(first), str(second)]
        links = db_session.add_all.call_args.args[0]
        assert all(isinstance(link, WorkshopQuest) for link in links)

    @pytest.mark.asyncio
    async def test_already_linked_quest_conflicts(self, client, admin, db_session):
        workshop = Workshop(id=uuid4(), name="Lighthouse Makers")
        quest_id = uuid4()
        db_session.execute.side_effect = [scalar_result(workshop), scalars_result([quest_id])]
        db_session.commit.side_effect = IntegrityError(
            "INSERT INTO workshop_quest", {}, Exception("uq_workshop_quest")
        )

        resp = await client.post(
            f"/api/admin/workshops/{workshop.id}/quests", json={"quest_ids": [str(quest_id)]}
        )

        assert resp.status_code == 409
        db_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_quest_not_found(self, client, admin, db_session):
        workshop = Workshop(id=uuid4(), name="Lighthouse Makers")
        db_session.execute.side_effect = [scalar_result(workshop), scalars_result([])]

        resp = await client.post(
            f"/api/admin/workshops/{workshop.id}/quests", json={"quest_ids": [str(uuid4())]}
        )

        assert resp.status_code == 404
        db_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, client, admin):
        resp = await client.post(f"/api/admin/workshops/{uuid4()}/quests", json={"quest_ids": []})
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_list_for_one_workshop(self, client, admin, db_session):
        link = WorkshopQuest(id=uuid4(), workshop_id=uuid4(), quest_id=uuid4(), created_at=utcnow())
        db_session.execute.return_value = scalars_result([link])

        resp = await client.get(
            "/api/admin/workshop-quests", params={"workshop_id": str(link.workshop_id)}
        )

        assert resp.status_code == 200
        assert resp.json()[0]["quest_id"] == str(link.quest_id)

    @pytest.mark.asyncio
    async def test_unassign_missing_link(self, client, admin, db_session):
        db_session.execute.return_value = scalar_result(None)
        resp = await client.delete(f"/api/admin/workshops/{uuid4()}/quests/{uuid4()}")
        assert resp.status_code == 404
