"""
Unit tests for app/core/permissions.py

Tests the role matrix and the ``allowed`` decision without a database.
Resources are transient model instances.
"""

import pytest

from app.core.permissions import (
    Action,
    Resource,
    ROLE_PERMISSIONS,
    TeamRole,
    allowed,
    has_permission,
    is_manager,
    member_role,
)
from app.core.security import CallerContext
from app.models.task import Task
from app.models.team import Team
from app.models.team_invitation import TeamInvitation
from app.models.team_member import TeamMember
from app.models.user import User

OWNER, ADMIN, COLLAB, OUTSIDER = 1, 2, 3, 4


def caller(user_id):
    return CallerContext(id=user_id, email=f"u{user_id}@test.com", role="user", name=f"User {user_id}")


def make_team(is_active=True):
    team = Team(id=10, name="Core", created_by_id=OWNER, is_active=is_active)
    team.members.append(TeamMember(user_id=OWNER, role="owner"))
    team.members.append(TeamMember(user_id=ADMIN, role="admin"))
    team.members.append(TeamMember(user_id=COLLAB, role="collaborator"))
    return team


def make_team_task(team, created_by=ADMIN, assigned_to=COLLAB):
    task = Task(id=100, title="Ship", team_id=team.id, created_by_id=created_by, assigned_to_id=assigned_to)
    task.team = team
    return task


def make_personal_task(created_by=OWNER, assigned_to=OWNER):
    return Task(id=200, title="Mine", team_id=None, created_by_id=created_by, assigned_to_id=assigned_to)


class TestRoleMatrix:
    """Test the static role × resource × action matrix."""

    def test_owner_is_only_role_with_transfer(self):
        assert has_permission(TeamRole.OWNER, Resource.TEAM, Action.TRANSFER) is True
        assert has_permission(TeamRole.ADMIN, Resource.TEAM, Action.TRANSFER) is False
        assert has_permission(TeamRole.COLLABORATOR, Resource.TEAM, Action.TRANSFER) is False

    @pytest.mark.parametrize("action", [Action.UPDATE, Action.INVITE, Action.REMOVE, Action.MANAGE])
    def test_admin_manages_team(self, action):
        assert has_permission(TeamRole.ADMIN, Resource.TEAM, action) is True

    @pytest.mark.parametrize("action", [Action.UPDATE, Action.INVITE, Action.REMOVE, Action.MANAGE])
    def test_collaborator_cannot_manage_team(self, action):
        assert has_permission(TeamRole.COLLABORATOR, Resource.TEAM, action) is False

    def test_collaborator_reads_everything_team_scoped(self):
        for resource in (Resource.TEAM, Resource.TASK, Resource.ANALYTICS):
            assert has_permission(TeamRole.COLLABORATOR, resource, Action.READ) is True

    def test_member_analytics_is_for_managers(self):
        assert has_permission(TeamRole.ADMIN, Resource.ANALYTICS, Action.MANAGE) is True
        assert has_permission(TeamRole.COLLABORATOR, Resource.ANALYTICS, Action.MANAGE) is False

    def test_non_member_has_nothing(self):
        assert has_permission(None, Resource.TEAM, Action.READ) is False

    def test_accepts_plain_role_strings(self):
        assert has_permission("admin", Resource.TASK, Action.ASSIGN) is True

    def test_owner_permissions_superset_of_admin(self):
        assert ROLE_PERMISSIONS[TeamRole.ADMIN] < ROLE_PERMISSIONS[TeamRole.OWNER]

    def test_is_manager(self):
        assert is_manager(TeamRole.OWNER) and is_manager(TeamRole.ADMIN)
        assert not is_manager(TeamRole.COLLABORATOR)
        assert not is_manager(None)


class TestMemberRole:

    def test_member_role_lookup(self):
        team = make_team()
        assert member_role(team, OWNER) == TeamRole.OWNER
        assert member_role(team, COLLAB) == TeamRole.COLLABORATOR
        assert member_role(team, OUTSIDER) is None

    def test_inactive_team_has_no_members(self):
        assert member_role(make_team(is_active=False), OWNER) is None


class TestAllowedOnRecords:

    def test_user_record_only_for_self(self):
        user = User(id=OWNER, name="Owner", email="o@test.com")
        assert allowed(caller(OWNER), Action.UPDATE, user) is True
        assert allowed(caller(ADMIN), Action.UPDATE, user) is False

    def test_invitation_only_for_invitee(self):
        invitation = TeamInvitation(id=1, user_id=OUTSIDER, team_id=10, invited_by_id=OWNER)
        assert allowed(caller(OUTSIDER), Action.UPDATE, invitation) is True
        assert allowed(caller(OWNER), Action.UPDATE, invitation) is False

    def test_missing_resource_is_denied(self):
        assert allowed(caller(OWNER), Action.READ, None) is False

    def test_anonymous_is_denied(self):
        assert allowed(None, Action.READ, make_team()) is False


class TestAllowedOnTeams:

    def test_members_read_outsiders_do_not(self):
        team = make_team()
        assert allowed(caller(COLLAB), Action.READ, team) is True
        assert allowed(caller(OUTSIDER), Action.READ, team) is False

    def test_transfer_is_owner_only(self):
        team = make_team()
        assert allowed(caller(OWNER), Action.TRANSFER, team) is True
        assert allowed(caller(ADMIN), Action.TRANSFER, team) is False

    def test_create_means_creating_team_tasks(self):
        team = make_team()
        assert allowed(caller(ADMIN), Action.CREATE, team) is True
        assert allowed(caller(COLLAB), Action.CREATE, team) is False

    def test_inactive_team_denies_everyone(self):
        assert allowed(caller(OWNER), Action.READ, make_team(is_active=False)) is False


class TestAllowedOnTasks:

    def test_personal_task_visible_to_creator_only(self):
        task = make_personal_task()
        assert allowed(caller(OWNER), Action.READ, task) is True
        assert allowed(caller(ADMIN), Action.READ, task) is False

    def test_personal_task_never_assignable(self):
        assert allowed(caller(OWNER), Action.ASSIGN, make_personal_task()) is False

    def test_team_task_readable_by_every_member(self):
        task = make_team_task(make_team())
        for user_id in (OWNER, ADMIN, COLLAB):
            assert allowed(caller(user_id), Action.READ, task) is True
        assert allowed(caller(OUTSIDER), Action.READ, task) is False

    def test_assignee_collaborator_may_update_and_archive(self):
        task = make_team_task(make_team(), assigned_to=COLLAB)
        assert allowed(caller(COLLAB), Action.UPDATE, task) is True
        assert allowed(caller(COLLAB), Action.ARCHIVE, task) is True

    def test_uninvolved_collaborator_may_not_update(self):
        task = make_team_task(make_team(), assigned_to=ADMIN)
        assert allowed(caller(COLLAB), Action.UPDATE, task) is False

    def test_collaborator_assignee_may_not_delete(self):
        task = make_team_task(make_team(), created_by=ADMIN, assigned_to=COLLAB)
        assert allowed(caller(COLLAB), Action.DELETE, task) is False
        assert allowed(caller(ADMIN), Action.DELETE, task) is True
        assert allowed(caller(OWNER), Action.DELETE, task) is True

    def test_only_managers_assign(self):
        task = make_team_task(make_team())
        assert allowed(caller(OWNER), Action.ASSIGN, task) is True
        assert allowed(caller(ADMIN), Action.ASSIGN, task) is True
        assert allowed(caller(COLLAB), Action.ASSIGN, task) is False

    def test_former_member_loses_access(self):
        team = make_team()
        task = make_team_task(team, created_by=COLLAB, assigned_to=COLLAB)
        team.members = [m for m in team.members if m.user_id != COLLAB]
        assert allowed(caller(COLLAB), Action.READ, task) is False
