"""
Pydantic schemas for tasks, listings and assignment history.
"""

from datetime import date, datetime, time, timezone
from typing import List, Literal, Optional

from pydantic import Field, field_validator

from app.schemas.base import CamelModel, StrictCamelModel
from app.schemas.team import TeamSummary
from app.schemas.user import UserSummary

TaskStatus = Literal["todo", "in-progress", "completed"]
TaskPriority = Literal["low", "medium", "high"]

MAX_TAG_LENGTH = 20


def parse_due_date(value):
    """
    Accept a date-only value as the end of that day in UTC.

    Datetimes without a timezone are taken as UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str) and len(value) == 10:
        value = date.fromisoformat(value)
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, time(23, 59, 59, 999000), tzinfo=timezone.utc)
    return value


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _clean_tags(tags):
    if tags is None:
        return []
    cleaned = []
    for tag in tags:
        tag = tag.strip()
        if not tag:
            continue
        if len(tag) > MAX_TAG_LENGTH:
            raise ValueError(f"Tags cannot exceed {MAX_TAG_LENGTH} characters")
        cleaned.append(tag)
    return cleaned


class TaskCreate(CamelModel):
    """Schema for creating a task; ``teamId`` makes it a team task"""
    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    status: TaskStatus = "todo"
    priority: TaskPriority = "medium"
    due_date: datetime
    tags: List[str] = []
    assigned_to: Optional[int] = None
    team_id: Optional[int] = None

    @field_validator("title", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("due_date", mode="before")
    @classmethod
    def date_only_means_end_of_day(cls, value):
        return parse_due_date(value)

    @field_validator("due_date")
    @classmethod
    def due_date_utc(cls, value):
        return _as_utc(value)

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, value):
        return _clean_tags(value)


class TaskUpdate(CamelModel):
    """Schema for updating a task; omitted fields are left unchanged"""
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    tags: Optional[List[str]] = None
    assigned_to: Optional[int] = None

    @field_validator("title", "description", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("due_date", mode="before")
    @classmethod
    def date_only_means_end_of_day(cls, value):
        return parse_due_date(value)

    @field_validator("due_date")
    @classmethod
    def due_date_utc(cls, value):
        return _as_utc(value)

    @field_validator("tags")
    @classmethod
    def clean_tags(cls, value):
        if value is None:
            return None
        return _clean_tags(value)


class AssignIn(CamelModel):
    member_id: int = Field(..., gt=0)
    team_id: Optional[int] = None
    note: Optional[str] = Field(None, max_length=200)


class UnassignIn(CamelModel):
    note: Optional[str] = Field(None, max_length=200)


class ReassignIn(CamelModel):
    new_member_id: int = Field(..., gt=0)
    note: Optional[str] = Field(None, max_length=200)


class TaskQuery(StrictCamelModel):
    """
    Closed allowlist of listing filters.

    Unknown query keys are rejected instead of being forwarded to the store.
    """
    view: Literal["personal", "assigned", "team", "all"] = "personal"
    status: Optional[Literal["todo", "in-progress", "completed", "overdue"]] = None
    priority: Optional[TaskPriority] = None
    assigned_to: Optional[int] = None
    search: Optional[str] = Field(None, max_length=100)
    team: Optional[int] = None
    archived: bool = False
    overdue: Optional[bool] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    sort_by: Literal["createdAt", "dueDate", "priority", "title"] = "createdAt"
    sort_order: Literal["asc", "desc"] = "desc"
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)

    @field_validator("date_from", mode="before")
    @classmethod
    def window_start(cls, value):
        if isinstance(value, str) and len(value) == 10:
            return datetime.combine(date.fromisoformat(value), time.min, tzinfo=timezone.utc)
        return value

    @field_validator("date_to", mode="before")
    @classmethod
    def window_end(cls, value):
        # A bare date includes the whole day
        return parse_due_date(value)

    @field_validator("date_from", "date_to")
    @classmethod
    def window_utc(cls, value):
        return _as_utc(value)

    @field_validator("search")
    @classmethod
    def blank_search(cls, value):
        if value is None:
            return None
        return value.strip() or None


class HistoryEntryOut(CamelModel):
    assigned_to: Optional[UserSummary] = None
    assigned_by: Optional[UserSummary] = None
    assignment_date: Optional[datetime] = None
    unassigned_date: Optional[datetime] = None
    note: Optional[str] = None


class TaskOut(CamelModel):
    """Task with references populated and derived fields computed on read"""
    id: int
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    assigned_to: Optional[UserSummary] = None
    created_by: UserSummary
    assigned_by: Optional[UserSummary] = None
    team: Optional[TeamSummary] = None
    due_date: Optional[datetime] = None
    tags: List[str] = []
    archived: bool = False
    archived_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    assignment_date: Optional[datetime] = None
    visibility: Literal["personal", "team", "assigned"]
    created_at: datetime
    updated_at: Optional[datetime] = None
    is_overdue: bool = False
    is_due_soon: bool = False
    age: int = 0


class TaskHistoryOut(CamelModel):
    task_id: int
    history: List[HistoryEntryOut]


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_tasks: int
    has_next: bool
    has_prev: bool


class TaskListOut(CamelModel):
    tasks: List[TaskOut]
    pagination: Pagination


class TaskActionOut(CamelModel):
    message: str
    task: TaskOut


class StatusCount(CamelModel):
    status: TaskStatus
    count: int


class TaskStatsOut(CamelModel):
    stats: List[StatusCount]
    overdue: int
    total: int
    archived: int
    recent_tasks: List[TaskOut]
    upcoming_deadlines: List[TaskOut]
