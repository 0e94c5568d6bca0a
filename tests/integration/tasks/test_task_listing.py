"""
Integration tests for task listings and stats.

Tests:
- GET /api/tasks (views, filters, sorting, pagination)
- GET /api/tasks/archived
- GET /api/tasks/assigned/me
- GET /api/tasks/team/{team_id}
- GET /api/tasks/stats
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from tests.factories import TaskFactory, TeamMemberFactory, UserFactory


def ids(response):
    return [task["id"] for task in response.json()["tasks"]]


@pytest.fixture
async def board(db_session: AsyncSession, user, other_user, team):
    """
    A mix of tasks for ``user``:
    two personal, one archived personal, one overdue personal,
    one team task, and one personal task owned by someone else.
    """
    await TeamMemberFactory.add_to_team_async(db_session, team, other_user)
    now = datetime.now(timezone.utc)
    tasks = {
        "write": await TaskFactory.create_async(
            db_session, created_by_id=user.id, title="Write report", priority="high",
            created_at=now - timedelta(hours=4)
        ),
        "review": await TaskFactory.create_async(
            db_session, created_by_id=user.id, title="Review PR", priority="low", status="in-progress",
            created_at=now - timedelta(hours=3)
        ),
        "old": await TaskFactory.create_async(
            db_session, created_by_id=user.id, title="Old notes", priority="medium", archived=True,
            archived_at=now, created_at=now - timedelta(hours=2)
        ),
        "late": await TaskFactory.create_async(
            db_session, created_by_id=user.id, title="Late invoice", priority="medium",
            due_date=now - timedelta(days=2), created_at=now - timedelta(hours=1)
        ),
        "team": await TaskFactory.create_async(
            db_session, created_by_id=user.id, team_id=team.id, title="Team roadmap",
            assigned_to_id=other_user.id, priority="high", created_at=now
        ),
        "foreign": await TaskFactory.create_async(
            db_session, created_by_id=other_user.id, title="Someone else's report", priority="low"
        ),
    }
    await db_session.commit()
    return tasks


class TestViews:

    async def test_default_view_is_personal(self, client: AsyncClient, auth_headers, board):
        response = await client.get("/api/tasks", headers=auth_headers)

        assert response.status_code == 200
        # Newest first by default
        assert ids(response) == [board["late"].id, board["review"].id, board["write"].id]

    async def test_team_view(self, client: AsyncClient, auth_headers, board):
        response = await client.get("/api/tasks", headers=auth_headers, params={"view": "team"})

        assert ids(response) == [board["team"].id]

    async def test_all_view(self, client: AsyncClient, auth_headers, board):
        response = await client.get("/api/tasks", headers=auth_headers, params={"view": "all"})

        assert set(ids(response)) == {board[k].id for k in ("write", "review", "late", "team")}

    async def test_assigned_view_for_assignee(self, client: AsyncClient, other_auth_headers, board):
        response = await client.get("/api/tasks", headers=other_auth_headers, params={"view": "assigned"})

        assert set(ids(response)) == {board["team"].id, board["foreign"].id}

    async def test_non_member_team_filter(self, client: AsyncClient, db_session: AsyncSession, make_headers, team, board):
        outsider = await UserFactory.create_async(db_session, email="outsider@test.com")
        await db_session.commit()

        response = await client.get("/api/tasks", headers=make_headers(outsider), params={"team": team.id})

        assert response.status_code == 403


class TestFilters:

    async def test_status_filter(self, client: AsyncClient, auth_headers, board):
        response = await client.get("/api/tasks", headers=auth_headers, params={"status": "in-progress"})

        assert ids(response) == [board["review"].id]

    async def test_overdue_is_a_status_filter(self, client: AsyncClient, auth_headers, board):
        response = await client.get("/api/tasks", headers=auth_headers, params={"status": "overdue"})

        assert ids(response) == [board["late"].id]
        assert response.json()["tasks"][0]["isOverdue"] is True
        assert response.json()["tasks"][0]["status"] == "todo"

    async def test_priority_filter(self, client: AsyncClient, auth_headers, board):
        response = await client.get("/api/tasks", headers=auth_headers, params={"priority": "high"})

        assert ids(response) == [board["write"].id]

    async def test_search_is_case_insensitive(self, client: AsyncClient, auth_headers, board):
        response = await client.get("/api/tasks", headers=auth_headers, params={"search": "REPORT"})

        assert ids(response) == [board["write"].id]

    async def test_archived_filter(self, client: AsyncClient, auth_headers, board):
        response = await client.get("/api/tasks", headers=auth_headers, params={"archived": "true"})

        assert ids(response) == [board["old"].id]

    async def test_unknown_filter_rejected(self, client: AsyncClient, auth_headers, board):
        response = await client.get("/api/tasks", headers=auth_headers, params={"$where": "1"})

        assert response.status_code == 400
        assert response.json()["error"][0]["message"] == "Unknown filter"

    async def test_invalid_filter_value(self, client: AsyncClient, auth_headers):
        response = await client.get("/api/tasks", headers=auth_headers, params={"status": "done"})

        assert response.status_code == 400


class TestSortingAndPagination:

    async def test_sort_by_priority(self, client: AsyncClient, auth_headers, board):
        response = await client.get(
            "/api/tasks",
            headers=auth_headers,
            params={"sortBy": "priority", "sortOrder": "desc"}
        )

        priorities = [task["priority"] for task in response.json()["tasks"]]
        assert priorities == ["high", "medium", "low"]

    async def test_sort_by_title_ascending(self, client: AsyncClient, auth_headers, board):
        response = await client.get("/api/tasks", headers=auth_headers, params={"sortBy": "title", "sortOrder": "asc"})

        assert [task["title"] for task in response.json()["tasks"]] == ["Late invoice", "Review PR", "Write report"]

    async def test_default_page_size(self, client: AsyncClient, db_session: AsyncSession, user, auth_headers):
        for _ in range(12):
            await TaskFactory.create_async(db_session, created_by_id=user.id)
        await db_session.commit()

        response = await client.get("/api/tasks", headers=auth_headers)

        assert len(response.json()["tasks"]) == 10
        assert response.json()["pagination"] == {
            "currentPage": 1,
            "totalPages": 2,
            "totalTasks": 12,
            "hasNext": True,
            "hasPrev": False,
        }

    async def test_second_page(self, client: AsyncClient, db_session: AsyncSession, user, auth_headers):
        for _ in range(12):
            await TaskFactory.create_async(db_session, created_by_id=user.id)
        await db_session.commit()

        response = await client.get("/api/tasks", headers=auth_headers, params={"page": 2, "limit": 5})

        assert len(response.json()["tasks"]) == 5
        assert response.json()["pagination"]["hasPrev"] is True
        assert response.json()["pagination"]["totalPages"] == 3

    async def test_limit_is_capped(self, client: AsyncClient, auth_headers):
        response = await client.get("/api/tasks", headers=auth_headers, params={"limit": 101})

        assert response.status_code == 400

    async def test_empty_listing_has_one_page(self, client: AsyncClient, auth_headers):
        response = await client.get("/api/tasks", headers=auth_headers)

        assert response.json()["tasks"] == []
        assert response.json()["pagination"]["totalPages"] == 1


class TestNamedListings:

    async def test_archived_listing_spans_all_scopes(self, client: AsyncClient, db_session: AsyncSession, user, auth_headers, team, board):
        board["team"].archived = True
        await db_session.commit()

        response = await client.get("/api/tasks/archived", headers=auth_headers)

        assert set(ids(response)) == {board["old"].id, board["team"].id}

    async def test_assigned_to_me(self, client: AsyncClient, auth_headers, board):
        response = await client.get("/api/tasks/assigned/me", headers=auth_headers)

        assert set(ids(response)) == {board["write"].id, board["review"].id, board["late"].id}

    async def test_team_listing_for_member(self, client: AsyncClient, other_auth_headers, team, board):
        response = await client.get(f"/api/tasks/team/{team.id}", headers=other_auth_headers)

        assert response.status_code == 200
        assert ids(response) == [board["team"].id]

    async def test_team_listing_for_outsider(self, client: AsyncClient, db_session: AsyncSession, make_headers, team):
        outsider = await UserFactory.create_async(db_session, email="nobody@test.com")
        await db_session.commit()

        response = await client.get(f"/api/tasks/team/{team.id}", headers=make_headers(outsider))

        assert response.status_code == 403


class TestStats:

    async def test_stats_shape(self, client: AsyncClient, auth_headers, board):
        response = await client.get("/api/tasks/stats", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        counts = {entry["status"]: entry["count"] for entry in data["stats"]}
        # write, late, team are todo; review is in progress; old is archived
        assert counts == {"todo": 3, "in-progress": 1, "completed": 0}
        assert data["total"] == 4
        assert data["overdue"] == 1
        assert data["archived"] == 1
        assert len(data["recentTasks"]) == 4
        upcoming = {task["id"] for task in data["upcomingDeadlines"]}
        assert board["late"].id not in upcoming
        assert board["write"].id in upcoming

    async def test_stats_for_new_user(self, client: AsyncClient, auth_headers):
        response = await client.get("/api/tasks/stats", headers=auth_headers)

        data = response.json()
        assert data["total"] == 0
        assert data["recentTasks"] == []
        assert [entry["count"] for entry in data["stats"]] == [0, 0, 0]
