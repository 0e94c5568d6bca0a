"""
Integration tests for the assignment operations on team tasks.

Tests:
- POST /api/tasks/{id}/assign
- POST /api/tasks/{id}/unassign
- POST /api/tasks/{id}/reassign
- GET /api/tasks/{id}/history
"""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tests.factories import TaskFactory, TeamMemberFactory, UserFactory


@pytest.fixture
async def crew(db_session: AsyncSession, team, make_headers):
    """Two collaborators in the owner's team."""
    first = await UserFactory.create_async(db_session, email="first@test.com", name="First")
    second = await UserFactory.create_async(db_session, email="second@test.com", name="Second")
    await TeamMemberFactory.add_to_team_async(db_session, team, first)
    await TeamMemberFactory.add_to_team_async(db_session, team, second)
    await db_session.commit()
    return {"first": (first, make_headers(first)), "second": (second, make_headers(second))}


@pytest.fixture
async def team_task(db_session: AsyncSession, user, team):
    task = await TaskFactory.create_async(db_session, created_by_id=user.id, team_id=team.id, title="Shared")
    await db_session.commit()
    return task


class TestAssign:

    async def test_assign_member(self, client: AsyncClient, user, auth_headers, team, crew, team_task):
        first, _ = crew["first"]

        response = await client.post(
            f"/api/tasks/{team_task.id}/assign",
            headers=auth_headers,
            json={"memberId": first.id, "teamId": team.id, "note": "Yours now"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["assignedTo"]["id"] == first.id
        assert data["assignedBy"]["id"] == user.id
        assert data["visibility"] == "assigned"
        assert data["assignmentDate"] is not None

        history = (await client.get(f"/api/tasks/{team_task.id}/history", headers=auth_headers)).json()
        assert history["taskId"] == team_task.id
        assert history["history"][-1]["assignedTo"]["id"] == first.id
        assert history["history"][-1]["note"] == "Yours now"

    async def test_assign_non_member(self, client: AsyncClient, auth_headers, team_task, other_user):
        response = await client.post(
            f"/api/tasks/{team_task.id}/assign",
            headers=auth_headers,
            json={"memberId": other_user.id}
        )

        assert response.status_code == 400

    async def test_assign_with_mismatched_team(self, client: AsyncClient, auth_headers, crew, team_task):
        first, _ = crew["first"]

        response = await client.post(
            f"/api/tasks/{team_task.id}/assign",
            headers=auth_headers,
            json={"memberId": first.id, "teamId": 99999}
        )

        assert response.status_code == 400

    async def test_collaborator_cannot_assign(self, client: AsyncClient, crew, team_task):
        first, first_headers = crew["first"]

        response = await client.post(
            f"/api/tasks/{team_task.id}/assign",
            headers=first_headers,
            json={"memberId": first.id}
        )

        assert response.status_code == 403

    async def test_personal_tasks_have_no_assignment_operations(self, client: AsyncClient, db_session: AsyncSession, user, auth_headers):
        task = await TaskFactory.create_async(db_session, created_by_id=user.id)
        await db_session.commit()

        response = await client.post(f"/api/tasks/{task.id}/assign", headers=auth_headers, json={"memberId": user.id})

        assert response.status_code == 400

    async def test_assignee_sees_team_task(self, client: AsyncClient, auth_headers, crew, team_task):
        first, first_headers = crew["first"]
        await client.post(f"/api/tasks/{team_task.id}/assign", headers=auth_headers, json={"memberId": first.id})

        response = await client.get("/api/tasks/assigned/me", headers=first_headers)

        assert [task["id"] for task in response.json()["tasks"]] == [team_task.id]


class TestUnassign:

    async def test_unassign_records_history(self, client: AsyncClient, user, auth_headers, crew, team_task):
        first, _ = crew["first"]
        await client.post(f"/api/tasks/{team_task.id}/assign", headers=auth_headers, json={"memberId": first.id})

        response = await client.post(
            f"/api/tasks/{team_task.id}/unassign",
            headers=auth_headers,
            json={"note": "Freed up"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["assignedTo"] is None
        assert data["visibility"] == "team"
        assert data["assignmentDate"] is None

        history = (await client.get(f"/api/tasks/{team_task.id}/history", headers=auth_headers)).json()["history"]
        closing = history[-1]
        assert closing["assignedTo"]["id"] == first.id
        assert closing["assignedBy"]["id"] == user.id
        assert closing["unassignedDate"] is not None
        assert closing["note"] == "Freed up"

    async def test_unassign_unassigned_task(self, client: AsyncClient, auth_headers, team_task):
        await client.post(f"/api/tasks/{team_task.id}/unassign", headers=auth_headers, json={})

        response = await client.post(f"/api/tasks/{team_task.id}/unassign", headers=auth_headers, json={})

        assert response.status_code == 400


class TestReassign:

    async def test_reassign_closes_previous_assignment(self, client: AsyncClient, auth_headers, crew, team_task):
        first, _ = crew["first"]
        second, _ = crew["second"]
        await client.post(f"/api/tasks/{team_task.id}/assign", headers=auth_headers, json={"memberId": first.id})

        response = await client.post(
            f"/api/tasks/{team_task.id}/reassign",
            headers=auth_headers,
            json={"newMemberId": second.id, "note": "Rebalancing"}
        )

        assert response.status_code == 200
        assert response.json()["assignedTo"]["id"] == second.id

        history = (await client.get(f"/api/tasks/{team_task.id}/history", headers=auth_headers)).json()["history"]
        # creation, assign to first, close first, assign to second
        assert len(history) == 4
        assert history[2]["assignedTo"]["id"] == first.id
        assert history[2]["unassignedDate"] is not None
        assert history[3]["assignedTo"]["id"] == second.id
        assert history[3]["unassignedDate"] is None

    async def test_reassign_to_same_member(self, client: AsyncClient, auth_headers, crew, team_task):
        first, _ = crew["first"]
        await client.post(f"/api/tasks/{team_task.id}/assign", headers=auth_headers, json={"memberId": first.id})

        response = await client.post(
            f"/api/tasks/{team_task.id}/reassign",
            headers=auth_headers,
            json={"newMemberId": first.id}
        )

        assert response.status_code == 400

    async def test_history_survives_member_deletion(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        auth_headers,
        crew,
        team_task
    ):
        first, first_headers = crew["first"]
        await client.post(f"/api/tasks/{team_task.id}/assign", headers=auth_headers, json={"memberId": first.id})

        deleted = await client.delete("/api/users/me", headers=first_headers)
        assert deleted.status_code == 200

        response = await client.get(f"/api/tasks/{team_task.id}", headers=auth_headers)
        assigned = response.json()["assignedTo"]
        assert assigned == {"id": first.id, "name": "Deleted user", "email": None, "isDeleted": True}
