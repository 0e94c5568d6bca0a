"""
Task store: CRUD, archival, the assignment state machine and listings.

Visibility rules come from ``app.core.permissions.allowed``. A task the caller
may not read is reported as missing; a readable task the caller may not
change is reported as forbidden.
"""

import math
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy import and_, case, false, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Forbidden, NotFound, ValidationError
from app.core.permissions import Action, allowed, member_role
from app.logging import get_logger
from app.models.assignment_history import AssignmentHistory
from app.models.task import DUE_SOON_WINDOW, Task
from app.models.team import Team
from app.models.team_member import TeamMember
from app.models.user import User
from app.schemas.task import AssignIn, ReassignIn, TaskCreate, TaskQuery, TaskUpdate, UnassignIn
from app.services.teams import get_active_team

logger = get_logger(__name__)

PRIORITY_RANK = {"low": 1, "medium": 2, "high": 3}
RECENT_LIMIT = 5


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _check_due_date(due_date: Optional[datetime], reference: datetime) -> None:
    """Due dates may not fall on a day before ``reference`` (UTC days)."""
    if due_date is None:
        return
    if due_date.astimezone(timezone.utc).date() < reference.astimezone(timezone.utc).date():
        raise ValidationError(
            "Due date cannot be in the past",
            error=[{"field": "dueDate", "message": "Due date cannot be in the past"}],
        )


def _set_status(task: Task, status: str) -> None:
    """Keep ``completed_at`` in step with the completed state."""
    if status == task.status:
        return
    if status == "completed":
        task.completed_at = _now()
    elif task.status == "completed":
        task.completed_at = None
    task.status = status


async def get_task(db: AsyncSession, task_id: int) -> Optional[Task]:
    result = await db.execute(
        select(Task)
        .where(Task.id == task_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_task_for(db: AsyncSession, user: User, task_id: int, action: Action = Action.READ) -> Task:
    """
    Load a task and check the caller's capability.

    Raises:
        NotFound: missing, or not visible to the caller
        Forbidden: visible but ``action`` is not allowed
    """
    task = await get_task(db, task_id)
    if task is None or not allowed(user, Action.READ, task):
        raise NotFound("Task not found")
    if action != Action.READ and not allowed(user, action, task):
        raise Forbidden(f"Not allowed to {action.value} this task")
    return task


# ==================== CRUD ====================

async def create_task(db: AsyncSession, user: User, data: TaskCreate, team_id: Optional[int] = None) -> Task:
    """
    Create a personal task, or a team task when a team is given.

    The assignee defaults to the caller. The history starts with one
    assignment entry made by the caller.

    Raises:
        NotFound: team missing or inactive
        Forbidden: caller is not a manager of the team
        ValidationError: past due date, or assignee outside the team
    """
    team_id = team_id if team_id is not None else data.team_id
    now = _now()
    _check_due_date(data.due_date, now)

    assignee_id = data.assigned_to or user.id
    team = None
    if team_id is not None:
        team = await get_active_team(db, team_id)
        if member_role(team, user.id) is None:
            raise Forbidden("You are not a member of this team")
        if not allowed(user, Action.CREATE, team):
            raise Forbidden("Only team admins and owners can create team tasks")
        if not team.get_member(assignee_id):
            raise ValidationError(
                "Assignee must be a member of the team",
                error=[{"field": "assignedTo", "message": "Not a team member"}],
            )
    elif assignee_id != user.id:
        raise ValidationError(
            "Personal tasks can only be assigned to yourself",
            error=[{"field": "assignedTo", "message": "Must be the creator"}],
        )

    task = Task(
        title=data.title,
        description=data.description,
        priority=data.priority,
        due_date=data.due_date,
        tags=list(data.tags),
        created_by_id=user.id,
        assigned_to_id=assignee_id,
        assigned_by_id=user.id,
        assignment_date=now,
        team_id=team.id if team else None,
        visibility="team" if team else "personal",
        status="todo",
    )
    _set_status(task, data.status)
    task.history.append(AssignmentHistory(
        assigned_to_id=assignee_id,
        assigned_by_id=user.id,
        assignment_date=now,
    ))
    db.add(task)
    await db.commit()

    logger.info("Task created", task_id=task.id, user_id=user.id, team_id=task.team_id)
    return await get_task(db, task.id)


async def update_task(db: AsyncSession, user: User, task_id: int, data: TaskUpdate) -> Task:
    """
    Apply field changes. Reassignment goes through the assignment operations.

    Raises:
        ValidationError: due date before the creation day, or an assignee change
    """
    task = await get_task_for(db, user, task_id, Action.UPDATE)
    fields = data.model_fields_set

    if "assigned_to" in fields and data.assigned_to is not None and data.assigned_to != task.assigned_to_id:
        if task.team_id is not None:
            raise ValidationError("Use the assign, unassign or reassign operations to change the assignee")
        raise ValidationError("Personal tasks can only be assigned to yourself")
    if "due_date" in fields and data.due_date is not None:
        _check_due_date(data.due_date, task.created_at)

    if "title" in fields and data.title is not None:
        task.title = data.title
    if "description" in fields:
        task.description = data.description
    if "priority" in fields and data.priority is not None:
        task.priority = data.priority
    if "due_date" in fields and data.due_date is not None:
        task.due_date = data.due_date
    if "tags" in fields and data.tags is not None:
        task.tags = list(data.tags)
    if "status" in fields and data.status is not None:
        _set_status(task, data.status)

    await db.commit()
    return await get_task(db, task.id)


async def delete_task(db: AsyncSession, user: User, task_id: int) -> None:
    """Hard delete; analytics no longer see the task."""
    task = await get_task_for(db, user, task_id, Action.DELETE)
    await db.delete(task)
    await db.commit()
    logger.info("Task deleted", task_id=task_id, user_id=user.id)


async def toggle_archive(db: AsyncSession, user: User, task_id: int) -> Task:
    task = await get_task_for(db, user, task_id, Action.ARCHIVE)
    task.archived = not task.archived
    task.archived_at = _now() if task.archived else None
    await db.commit()
    return await get_task(db, task.id)


# ==================== Assignment ====================

def _require_team_task(task: Task) -> None:
    if task.team_id is None:
        raise ValidationError("Assignment operations are only available for team tasks")


async def _load_for_assignment(db: AsyncSession, user: User, task_id: int) -> Task:
    task = await get_task_for(db, user, task_id)
    _require_team_task(task)
    if not allowed(user, Action.ASSIGN, task):
        raise Forbidden("Only team admins and owners can manage task assignments")
    return task


def _require_team_member(task: Task, user_id: int) -> None:
    if not task.team.get_member(user_id):
        raise ValidationError(
            "User is not a member of this team",
            error=[{"field": "memberId", "message": "Not a team member"}],
        )


def _record_unassignment(task: Task, user: User, note: Optional[str], now: datetime) -> None:
    task.history.append(AssignmentHistory(
        assigned_to_id=task.assigned_to_id,
        assigned_by_id=user.id,
        unassigned_date=now,
        note=note,
    ))


def _record_assignment(task: Task, user: User, member_id: int, note: Optional[str], now: datetime) -> None:
    task.assigned_to_id = member_id
    task.assigned_by_id = user.id
    task.assignment_date = now
    task.visibility = "assigned"
    task.history.append(AssignmentHistory(
        assigned_to_id=member_id,
        assigned_by_id=user.id,
        assignment_date=now,
        note=note,
    ))


async def assign_task(db: AsyncSession, user: User, task_id: int, data: AssignIn) -> Task:
    task = await _load_for_assignment(db, user, task_id)
    if data.team_id is not None and data.team_id != task.team_id:
        raise ValidationError("Task does not belong to this team")
    _require_team_member(task, data.member_id)

    _record_assignment(task, user, data.member_id, data.note, _now())
    await db.commit()

    logger.info("Task assigned", task_id=task.id, member_id=data.member_id, actor_id=user.id)
    return await get_task(db, task.id)


async def unassign_task(db: AsyncSession, user: User, task_id: int, data: UnassignIn) -> Task:
    task = await _load_for_assignment(db, user, task_id)
    if task.assigned_to_id is None:
        raise ValidationError("Task is not assigned")

    _record_unassignment(task, user, data.note, _now())
    task.assigned_to_id = None
    task.assignment_date = None
    task.visibility = "team"
    await db.commit()

    logger.info("Task unassigned", task_id=task.id, actor_id=user.id)
    return await get_task(db, task.id)


async def reassign_task(db: AsyncSession, user: User, task_id: int, data: ReassignIn) -> Task:
    """Close the previous assignment (if any) then assign the new member."""
    task = await _load_for_assignment(db, user, task_id)
    _require_team_member(task, data.new_member_id)
    if task.assigned_to_id == data.new_member_id:
        raise ValidationError("Task is already assigned to this member")

    now = _now()
    if task.assigned_to_id is not None:
        _record_unassignment(task, user, data.note, now)
    _record_assignment(task, user, data.new_member_id, data.note, now)
    await db.commit()

    logger.info("Task reassigned", task_id=task.id, member_id=data.new_member_id, actor_id=user.id)
    return await get_task(db, task.id)


async def get_history(db: AsyncSession, user: User, task_id: int) -> Task:
    return await get_task_for(db, user, task_id)


# ==================== Listing ====================

def overdue_clause(now: datetime):
    """SQL form of the derived overdue predicate."""
    return and_(Task.status != "completed", Task.due_date.isnot(None), Task.due_date < now)


def _personal_scope(user_id: int):
    return and_(
        Task.team_id.is_(None),
        or_(Task.created_by_id == user_id, Task.assigned_to_id == user_id),
    )


async def _member_team_ids(db: AsyncSession, user_id: int) -> List[int]:
    result = await db.execute(
        select(TeamMember.team_id)
        .join(Team, Team.id == TeamMember.team_id)
        .where(TeamMember.user_id == user_id, Team.is_active.is_(True))
    )
    return [row[0] for row in result.all()]


def _team_scope(team_ids: List[int]):
    if not team_ids:
        return false()
    return Task.team_id.in_(team_ids)


async def _scope_clause(db: AsyncSession, user: User, query: TaskQuery, team: Optional[Team]):
    if team is not None:
        return Task.team_id == team.id

    if query.team is not None:
        scoped_team = await get_active_team(db, query.team)
        if member_role(scoped_team, user.id) is None:
            raise Forbidden("You are not a member of this team")
        return Task.team_id == scoped_team.id

    if query.view == "assigned":
        return Task.assigned_to_id == user.id
    if query.view == "personal":
        return _personal_scope(user.id)

    team_ids = await _member_team_ids(db, user.id)
    if query.view == "team":
        return _team_scope(team_ids)
    return or_(_personal_scope(user.id), _team_scope(team_ids))


def _filter_clauses(query: TaskQuery, now: datetime) -> list:
    clauses = [Task.archived.is_(query.archived)]

    if query.status == "overdue":
        clauses.append(overdue_clause(now))
    elif query.status is not None:
        clauses.append(Task.status == query.status)

    if query.overdue is True:
        clauses.append(overdue_clause(now))
    elif query.overdue is False:
        clauses.append(or_(Task.status == "completed", Task.due_date.is_(None), Task.due_date >= now))

    if query.priority is not None:
        clauses.append(Task.priority == query.priority)
    if query.assigned_to is not None:
        clauses.append(Task.assigned_to_id == query.assigned_to)
    if query.search:
        clauses.append(func.lower(Task.title).contains(query.search.lower(), autoescape=True))
    if query.date_from is not None:
        clauses.append(Task.due_date >= query.date_from)
    if query.date_to is not None:
        clauses.append(Task.due_date <= query.date_to)
    return clauses


def _order_by(query: TaskQuery):
    if query.sort_by == "priority":
        column = case(PRIORITY_RANK, value=Task.priority, else_=0)
    else:
        column = {
            "createdAt": Task.created_at,
            "dueDate": Task.due_date,
            "title": func.lower(Task.title),
        }[query.sort_by]
    if query.sort_order == "asc":
        return [column.asc(), Task.id.asc()]
    return [column.desc(), Task.id.desc()]


async def list_tasks(
    db: AsyncSession,
    user: User,
    query: TaskQuery,
    team: Optional[Team] = None,
) -> Tuple[List[Task], dict]:
    """
    Filter, sort and paginate the tasks visible to the caller.

    Returns:
        Tasks on the requested page and the pagination block
    """
    now = _now()
    clauses = [await _scope_clause(db, user, query, team), *_filter_clauses(query, now)]

    total = (await db.execute(select(func.count(Task.id)).where(*clauses))).scalar() or 0
    result = await db.execute(
        select(Task)
        .where(*clauses)
        .order_by(*_order_by(query))
        .offset((query.page - 1) * query.limit)
        .limit(query.limit)
        .execution_options(populate_existing=True)
    )
    tasks = list(result.scalars().all())

    total_pages = max(1, math.ceil(total / query.limit))
    pagination = {
        "current_page": query.page,
        "total_pages": total_pages,
        "total_tasks": total,
        "has_next": query.page < total_pages,
        "has_prev": query.page > 1,
    }
    return tasks, pagination


# ==================== Stats ====================

async def get_stats(db: AsyncSession, user: User) -> dict:
    """
    Summary over tasks created by or assigned to the caller.

    Archived tasks only contribute to the ``archived`` count.
    """
    now = _now()
    mine = or_(Task.created_by_id == user.id, Task.assigned_to_id == user.id)
    active = and_(mine, Task.archived.is_(False))

    grouped = await db.execute(
        select(Task.status, func.count(Task.id))
        .where(active)
        .group_by(Task.status)
    )
    counts = {status: count for status, count in grouped.all()}
    stats = [{"status": status, "count": counts.get(status, 0)} for status in ("todo", "in-progress", "completed")]

    overdue = (await db.execute(
        select(func.count(Task.id)).where(active, overdue_clause(now))
    )).scalar() or 0
    archived = (await db.execute(
        select(func.count(Task.id)).where(mine, Task.archived.is_(True))
    )).scalar() or 0

    recent = await db.execute(
        select(Task)
        .where(active)
        .order_by(Task.created_at.desc(), Task.id.desc())
        .limit(RECENT_LIMIT)
    )
    upcoming = await db.execute(
        select(Task)
        .where(
            active,
            Task.status != "completed",
            Task.due_date >= now,
            Task.due_date <= now + DUE_SOON_WINDOW,
        )
        .order_by(Task.due_date.asc(), Task.id.asc())
        .limit(RECENT_LIMIT)
    )

    return {
        "stats": stats,
        "overdue": overdue,
        "total": sum(counts.values()),
        "archived": archived,
        "recent_tasks": list(recent.scalars().all()),
        "upcoming_deadlines": list(upcoming.scalars().all()),
    }
