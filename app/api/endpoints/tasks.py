"""
Tasks API Endpoints

Personal and team tasks, the assignment operations, listings and analytics.
Static paths are declared before ``/{task_id}`` so they are matched first.
"""

from typing import Dict

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_current_user, get_db, get_task_query, require_permission
from app.core.permissions import Action, Resource
from app.models.user import User
from app.schemas.analytics import (
    MemberAnalyticsOut,
    PersonalAnalytics,
    TeamAnalytics,
    TrendsOut,
    WorkloadOut,
)
from app.schemas.base import MessageOut
from app.schemas.task import (
    AssignIn,
    ReassignIn,
    TaskActionOut,
    TaskCreate,
    TaskHistoryOut,
    TaskListOut,
    TaskOut,
    TaskQuery,
    TaskStatsOut,
    TaskUpdate,
    UnassignIn,
)
from app.services import analytics as analytics_service
from app.services import tasks as task_service

router = APIRouter()


# ==================== Listings ====================

@router.get("", response_model=TaskListOut)
async def list_tasks(
    query: TaskQuery = Depends(get_task_query),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    List tasks visible to the caller.

    Query parameters:
    - view: personal (default), assigned, team or all
    - status, priority, assignedTo, search, team, archived, overdue
    - dateFrom / dateTo: due date window
    - sortBy (createdAt, dueDate, priority, title) and sortOrder (asc, desc)
    - page, limit

    Unknown parameters are rejected with 400.
    """
    tasks, pagination = await task_service.list_tasks(db, current_user, query)
    return {"tasks": tasks, "pagination": pagination}


@router.get("/stats", response_model=TaskStatsOut)
async def task_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Status counts, overdue, archived, recent tasks and upcoming deadlines."""
    return await task_service.get_stats(db, current_user)


@router.get("/archived", response_model=TaskListOut)
async def list_archived(
    query: TaskQuery = Depends(get_task_query),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Archived tasks across personal and team scopes unless a view is given."""
    fields = query.model_fields_set
    overrides = {"archived": True}
    if "view" not in fields:
        overrides["view"] = "all"
    tasks, pagination = await task_service.list_tasks(db, current_user, query.model_copy(update=overrides))
    return {"tasks": tasks, "pagination": pagination}


@router.get("/assigned/me", response_model=TaskListOut)
async def list_assigned_to_me(
    query: TaskQuery = Depends(get_task_query),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Tasks assigned to the caller, personal and team."""
    tasks, pagination = await task_service.list_tasks(
        db, current_user, query.model_copy(update={"view": "assigned"})
    )
    return {"tasks": tasks, "pagination": pagination}


# ==================== Analytics ====================

@router.get("/analytics", response_model=PersonalAnalytics)
async def personal_analytics(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Distributions, 90-day completion trend, monthly figures and KPIs for the caller."""
    return await analytics_service.personal_analytics(db, current_user)


@router.get("/analytics/team/{team_id}", response_model=TeamAnalytics)
async def team_analytics(
    team_id: int,
    context: Dict = Depends(require_permission(Resource.ANALYTICS, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    """Team-wide analytics plus workload, member performance and efficiency."""
    return await analytics_service.team_analytics(db, context["user"], context["team"])


@router.get("/analytics/team/{team_id}/workload", response_model=WorkloadOut)
async def team_workload(
    team_id: int,
    context: Dict = Depends(require_permission(Resource.ANALYTICS, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    return await analytics_service.team_workload(db, context["user"], context["team"])


@router.get("/analytics/team/{team_id}/trends", response_model=TrendsOut)
async def team_trends(
    team_id: int,
    context: Dict = Depends(require_permission(Resource.ANALYTICS, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    return await analytics_service.team_trends(db, context["user"], context["team"])


@router.get("/analytics/team/{team_id}/member/{member_id}", response_model=MemberAnalyticsOut)
async def member_analytics(
    team_id: int,
    member_id: int,
    context: Dict = Depends(require_permission(Resource.ANALYTICS, Action.MANAGE)),
    db: AsyncSession = Depends(get_db)
):
    """One member's figures. Admins and owner only."""
    return await analytics_service.member_analytics(db, context["user"], context["team"], member_id)


# ==================== Team tasks ====================

@router.post("/team/{team_id}", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
async def create_team_task(
    team_id: int,
    data: TaskCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Create a task in the team. Admins and owner only; the assignee must be a member."""
    return await task_service.create_task(db, current_user, data, team_id=team_id)


@router.get("/team/{team_id}", response_model=TaskListOut)
async def list_team_tasks(
    team_id: int,
    query: TaskQuery = Depends(get_task_query),
    context: Dict = Depends(require_permission(Resource.TASK, Action.READ)),
    db: AsyncSession = Depends(get_db)
):
    tasks, pagination = await task_service.list_tasks(db, context["user"], query, team=context["team"])
    return {"tasks": tasks, "pagination": pagination}


# ==================== Single task ====================

@router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
async def create_task(
    data: TaskCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a task.

    Without ``teamId`` it is a personal task assigned to the caller.
    """
    return await task_service.create_task(db, current_user, data)


@router.get("/{task_id}", response_model=TaskOut)
async def get_task(
    task_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await task_service.get_task_for(db, current_user, task_id)


@router.put("/{task_id}", response_model=TaskOut)
async def update_task(
    task_id: int,
    data: TaskUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Update task fields.

    Moving to ``completed`` stamps ``completedAt``; leaving it clears the stamp.
    """
    return await task_service.update_task(db, current_user, task_id, data)


@router.delete("/{task_id}", response_model=MessageOut)
async def delete_task(
    task_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await task_service.delete_task(db, current_user, task_id)
    return {"message": "Task deleted successfully"}


@router.put("/{task_id}/archive", response_model=TaskActionOut)
async def toggle_archive(
    task_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Archive the task, or restore it when already archived."""
    task = await task_service.toggle_archive(db, current_user, task_id)
    message = "Task archived successfully" if task.archived else "Task restored successfully"
    return {"message": message, "task": task}


# ==================== Assignment ====================

@router.get("/{task_id}/history", response_model=TaskHistoryOut)
async def task_history(
    task_id: int,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    task = await task_service.get_history(db, current_user, task_id)
    return {"task_id": task.id, "history": task.history}


@router.post("/{task_id}/assign", response_model=TaskOut)
async def assign_task(
    task_id: int,
    data: AssignIn,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Assign a team task to a member. Admins and owner only."""
    return await task_service.assign_task(db, current_user, task_id, data)


@router.post("/{task_id}/unassign", response_model=TaskOut)
async def unassign_task(
    task_id: int,
    data: UnassignIn,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await task_service.unassign_task(db, current_user, task_id, data)


@router.post("/{task_id}/reassign", response_model=TaskOut)
async def reassign_task(
    task_id: int,
    data: ReassignIn,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Move a team task to another member, closing the previous assignment."""
    return await task_service.reassign_task(db, current_user, task_id, data)
