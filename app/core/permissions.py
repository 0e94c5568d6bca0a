"""
Permission system for role-based access control (RBAC).

Defines team roles, resources, actions and the permission matrix, plus
``allowed``: a pure function deciding whether a caller may perform an action
on a loaded resource (user, invitation, team or task).
"""

from enum import Enum
from typing import Dict, Optional, Set, Tuple

from app.models.task import Task
from app.models.team import Team
from app.models.team_invitation import TeamInvitation
from app.models.user import User


class TeamRole(str, Enum):
    """Roles for team members, in decreasing order of capability"""
    OWNER = "owner"                # Unique per active team
    ADMIN = "admin"                # Manages members and team tasks
    COLLABORATOR = "collaborator"  # Works on assigned tasks


class Resource(str, Enum):
    """Resources that can be accessed"""
    TEAM = "team"
    TASK = "task"
    ANALYTICS = "analytics"


class Action(str, Enum):
    """Actions that can be performed on resources"""
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ARCHIVE = "archive"
    INVITE = "invite"
    REMOVE = "remove"
    MANAGE = "manage"
    TRANSFER = "transfer"
    ASSIGN = "assign"


_MANAGER_PERMISSIONS: Set[Tuple[Resource, Action]] = {
    # Team management
    (Resource.TEAM, Action.READ),
    (Resource.TEAM, Action.UPDATE),
    (Resource.TEAM, Action.INVITE),
    (Resource.TEAM, Action.REMOVE),
    (Resource.TEAM, Action.MANAGE),
    # Team tasks
    (Resource.TASK, Action.READ),
    (Resource.TASK, Action.CREATE),
    (Resource.TASK, Action.UPDATE),
    (Resource.TASK, Action.DELETE),
    (Resource.TASK, Action.ARCHIVE),
    (Resource.TASK, Action.ASSIGN),
    # Analytics, including per-member breakdowns
    (Resource.ANALYTICS, Action.READ),
    (Resource.ANALYTICS, Action.MANAGE),
}

# Permission matrix for team roles
ROLE_PERMISSIONS: Dict[TeamRole, Set[Tuple[Resource, Action]]] = {
    TeamRole.OWNER: _MANAGER_PERMISSIONS | {(Resource.TEAM, Action.TRANSFER)},
    TeamRole.ADMIN: set(_MANAGER_PERMISSIONS),
    TeamRole.COLLABORATOR: {
        (Resource.TEAM, Action.READ),
        (Resource.TASK, Action.READ),
        (Resource.ANALYTICS, Action.READ),
    },
}


def has_permission(role: Optional[TeamRole], resource: Resource, action: Action) -> bool:
    """
    Check if a role has permission to perform an action on a resource.

    Args:
        role: Team role (OWNER, ADMIN, COLLABORATOR), None for non-members
        resource: Resource being accessed
        action: Action being performed

    Returns:
        True if permission is granted, False otherwise
    """
    if role is None:
        return False
    return (resource, action) in ROLE_PERMISSIONS.get(TeamRole(role), set())


def is_manager(role: Optional[TeamRole]) -> bool:
    """Owner or admin."""
    return role in (TeamRole.OWNER, TeamRole.ADMIN)


def member_role(team, user_id: int) -> Optional[TeamRole]:
    """
    Role of ``user_id`` in ``team``.

    Returns:
        TeamRole, or None when the user is not a member or the team is inactive
    """
    if team is None or not team.is_active:
        return None
    for member in team.members:
        if member.user_id == user_id:
            return TeamRole(member.role)
    return None


def allowed(caller, action: Action, resource) -> bool:
    """
    Decide whether ``caller`` may perform ``action`` on ``resource``.

    Pure function of the caller identity and the loaded resource. Team tasks
    need ``task.team`` (with members) loaded.

    Rules:
        - user / invitation: the caller owns the record
        - team: READ needs membership, TRANSFER needs owner, CREATE means
          creating a task in the team, anything else follows the matrix
        - personal task: the caller is creator or assignee; assignment
          operations do not apply
        - team task: READ needs membership, UPDATE and ARCHIVE allow the
          assignee or creator as well as managers, DELETE allows the creator
          as well as managers, ASSIGN is for managers only

    Args:
        caller: Object with an ``id`` (User or CallerContext)
        action: Action being performed
        resource: User, TeamInvitation, Team or Task instance

    Returns:
        True if allowed
    """
    if caller is None or resource is None:
        return False

    if isinstance(resource, User):
        return resource.id == caller.id

    if isinstance(resource, TeamInvitation):
        return resource.user_id == caller.id

    if isinstance(resource, Team):
        role = member_role(resource, caller.id)
        if action == Action.CREATE:
            return has_permission(role, Resource.TASK, Action.CREATE)
        return has_permission(role, Resource.TEAM, action)

    if isinstance(resource, Task):
        return _task_allowed(caller.id, action, resource)

    return False


def _task_allowed(user_id: int, action: Action, task) -> bool:
    involved = user_id in (task.created_by_id, task.assigned_to_id)

    if task.team_id is None:
        if action == Action.ASSIGN:
            return False
        return involved

    role = member_role(task.team, user_id)
    if role is None:
        return False

    if action == Action.READ:
        return True
    if action in (Action.UPDATE, Action.ARCHIVE):
        return involved or has_permission(role, Resource.TASK, action)
    if action == Action.DELETE:
        return task.created_by_id == user_id or has_permission(role, Resource.TASK, action)
    return has_permission(role, Resource.TASK, action)
