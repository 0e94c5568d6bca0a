"""
Analytics engine.

Each report runs one query to take a snapshot of the relevant task rows and
aggregates it in memory. Day boundaries follow the caller's timezone.
Archived tasks are left out of every figure except the monthly archived count.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFound
from app.models.task import Task, is_overdue
from app.models.team import Team
from app.models.user import User

TREND_DAYS = 90
STATUSES = ("todo", "in-progress", "completed")
PRIORITIES = ("low", "medium", "high")

SNAPSHOT_COLUMNS = (
    Task.id,
    Task.status,
    Task.priority,
    Task.due_date,
    Task.completed_at,
    Task.created_at,
    Task.archived,
    Task.archived_at,
    Task.assigned_to_id,
    Task.team_id,
)


@dataclass(frozen=True)
class Clock:
    """Reference instant plus the timezone used for day boundaries."""

    now: datetime
    tz: ZoneInfo

    @property
    def today(self) -> date:
        return self.now.astimezone(self.tz).date()

    def local_date(self, value: Optional[datetime]) -> Optional[date]:
        if value is None:
            return None
        return value.astimezone(self.tz).date()

    def start_of(self, day: date) -> datetime:
        return datetime.combine(day, time.min, tzinfo=self.tz).astimezone(timezone.utc)


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    """Caller's preferred timezone, UTC when unset or unknown."""
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def make_clock(user: User, now: Optional[datetime] = None) -> Clock:
    return Clock(now=now or datetime.now(timezone.utc), tz=resolve_timezone(user.timezone))


# ==================== Pure aggregations ====================

def _active(rows: Iterable) -> list:
    return [row for row in rows if not row.archived]


def _rate(part: int, whole: int) -> float:
    if not whole:
        return 0.0
    return round(part / whole * 100, 2)


def status_distribution(rows: Sequence, clock: Clock) -> dict:
    counts = Counter(row.status for row in rows)
    result = {status: counts.get(status, 0) for status in STATUSES}
    result["overdue"] = sum(1 for row in rows if is_overdue(row.status, row.due_date, clock.now))
    # Stored "in-progress" maps onto the python field name
    result["in_progress"] = result.pop("in-progress")
    return result


def priority_distribution(rows: Sequence) -> dict:
    counts = Counter(row.priority for row in rows)
    return {priority: counts.get(priority, 0) for priority in PRIORITIES}


def _trend_days(clock: Clock, days: int = TREND_DAYS) -> List[date]:
    today = clock.today
    return [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]


def daily_counts(values: Iterable[Optional[datetime]], clock: Clock, days: int = TREND_DAYS) -> List[dict]:
    """Dense per-day counts for the last ``days`` days, oldest first."""
    buckets = Counter(clock.local_date(value) for value in values if value is not None)
    return [{"date": day.isoformat(), "count": buckets.get(day, 0)} for day in _trend_days(clock, days)]


def _month_bounds(day: date):
    start = day.replace(day=1)
    next_month = (start + timedelta(days=32)).replace(day=1)
    return start, next_month


def _in_range(clock: Clock, value: Optional[datetime], start: date, end: date) -> bool:
    local = clock.local_date(value)
    return local is not None and start <= local < end


def monthly_stats(rows: Sequence, clock: Clock, month_offset: int = 0) -> dict:
    """Created, completed and archived counts for a calendar month (0 = current)."""
    start, end = _month_bounds(clock.today)
    for _ in range(month_offset):
        end = start
        start = (start - timedelta(days=1)).replace(day=1)

    active = _active(rows)
    return {
        "created": sum(1 for row in active if _in_range(clock, row.created_at, start, end)),
        "completed": sum(1 for row in active if _in_range(clock, row.completed_at, start, end)),
        "archived": sum(1 for row in rows if row.archived and _in_range(clock, row.archived_at, start, end)),
    }


def performance(rows: Sequence, clock: Clock) -> dict:
    total = len(rows)
    completed = [row for row in rows if row.status == "completed"]
    window_start = clock.start_of(clock.today - timedelta(days=TREND_DAYS - 1))
    durations = [
        (row.completed_at - row.created_at).total_seconds() / 3600
        for row in completed
        if row.completed_at is not None and row.created_at is not None and row.completed_at >= window_start
    ]
    return {
        "total_tasks": total,
        "completion_rate": _rate(len(completed), total),
        "avg_completion_time": round(sum(durations) / len(durations), 2) if durations else 0.0,
    }


def _overdue_at(row, instant: datetime) -> bool:
    """Whether the task was overdue at ``instant``, judged from its timestamps."""
    if row.due_date is None or row.created_at is None or row.created_at > instant:
        return False
    if row.completed_at is not None and row.completed_at <= instant:
        return False
    return row.due_date < instant


def kpi(rows: Sequence, clock: Clock, monthly: dict, last_month: dict) -> dict:
    today = clock.today
    week_start = today - timedelta(days=today.weekday())
    last_week_start = week_start - timedelta(days=7)
    tomorrow = today + timedelta(days=1)

    def count(attr, start, end):
        return sum(1 for row in rows if _in_range(clock, getattr(row, attr), start, end))

    completed_this_week = count("completed_at", week_start, tomorrow)
    completed_last_week = count("completed_at", last_week_start, week_start)
    created_this_week = count("created_at", week_start, tomorrow)
    created_last_week = count("created_at", last_week_start, week_start)

    rate_this_month = _rate(monthly["completed"], monthly["created"])
    rate_last_month = _rate(last_month["completed"], last_month["created"])

    overdue_now = sum(1 for row in rows if is_overdue(row.status, row.due_date, clock.now))
    overdue_yesterday = sum(1 for row in rows if _overdue_at(row, clock.start_of(today)))

    return {
        "completed_this_week": completed_this_week,
        "completed_last_week": completed_last_week,
        "completed_delta": completed_this_week - completed_last_week,
        "created_this_week": created_this_week,
        "created_last_week": created_last_week,
        "created_delta": created_this_week - created_last_week,
        "completion_rate_this_month": rate_this_month,
        "completion_rate_last_month": rate_last_month,
        "completion_rate_delta": round(rate_this_month - rate_last_month, 2),
        "overdue_now": overdue_now,
        "overdue_yesterday": overdue_yesterday,
        "overdue_delta": overdue_now - overdue_yesterday,
    }


def summarize(rows: Sequence, clock: Clock) -> dict:
    """Every personal-analytics figure over one snapshot of task rows."""
    active = _active(rows)
    trend = daily_counts((row.completed_at for row in active), clock)
    monthly = monthly_stats(rows, clock)
    last_month = monthly_stats(rows, clock, month_offset=1)
    return {
        "status_distribution": status_distribution(active, clock),
        "priority_distribution": priority_distribution(active),
        "completion_trend": trend,
        "completion_calendar": [dict(entry) for entry in trend],
        "monthly": monthly,
        "last_month": last_month,
        "performance": performance(active, clock),
        "kpi": kpi(active, clock, monthly, last_month),
    }


def workload(rows: Sequence, members: Sequence, clock: Clock) -> List[dict]:
    """Open and overdue task counts for every member, zeros included."""
    active = _active(rows)
    result = []
    for member in members:
        mine = [row for row in active if row.assigned_to_id == member.user_id]
        result.append({
            "member": member.user,
            "open_tasks": sum(1 for row in mine if row.status != "completed"),
            "overdue_tasks": sum(1 for row in mine if is_overdue(row.status, row.due_date, clock.now)),
        })
    return result


def member_performance(rows: Sequence, members: Sequence) -> List[dict]:
    active = _active(rows)
    result = []
    for member in members:
        mine = [row for row in active if row.assigned_to_id == member.user_id]
        completed = sum(1 for row in mine if row.status == "completed")
        result.append({
            "member": member.user,
            "completed": completed,
            "total": len(mine),
            "completion_rate": _rate(completed, len(mine)),
        })
    return result


def efficiency_score(summary: dict) -> float:
    """Completion rate discounted by the share of overdue tasks."""
    total = summary["performance"]["total_tasks"]
    if not total:
        return 0.0
    overdue = summary["status_distribution"]["overdue"]
    return round(summary["performance"]["completion_rate"] * (1 - overdue / total), 2)


# ==================== Snapshots ====================

async def _snapshot(db: AsyncSession, *clauses) -> list:
    result = await db.execute(select(*SNAPSHOT_COLUMNS).where(*clauses))
    return list(result.all())


async def personal_analytics(db: AsyncSession, user: User, now: Optional[datetime] = None) -> dict:
    """Analytics over every task assigned to the caller."""
    rows = await _snapshot(db, Task.assigned_to_id == user.id)
    return summarize(rows, make_clock(user, now))


async def team_analytics(db: AsyncSession, user: User, team: Team, now: Optional[datetime] = None) -> dict:
    rows = await _snapshot(db, Task.team_id == team.id)
    clock = make_clock(user, now)
    summary = summarize(rows, clock)
    summary.update({
        "team_id": team.id,
        "workload": workload(rows, team.members, clock),
        "member_performance": member_performance(rows, team.members),
        "efficiency_score": efficiency_score(summary),
        "velocity": {
            "this_week": summary["kpi"]["completed_this_week"],
            "last_week": summary["kpi"]["completed_last_week"],
        },
    })
    return summary


async def team_workload(db: AsyncSession, user: User, team: Team) -> dict:
    rows = await _snapshot(db, Task.team_id == team.id)
    return {"team_id": team.id, "workload": workload(rows, team.members, make_clock(user))}


async def team_trends(db: AsyncSession, user: User, team: Team) -> dict:
    rows = _active(await _snapshot(db, Task.team_id == team.id))
    clock = make_clock(user)
    return {
        "team_id": team.id,
        "completion_trend": daily_counts((row.completed_at for row in rows), clock),
        "created_trend": daily_counts((row.created_at for row in rows), clock),
    }


async def member_analytics(db: AsyncSession, user: User, team: Team, member_id: int) -> dict:
    """
    One member's figures over the team's tasks assigned to them.

    Raises:
        NotFound: the member does not belong to the team
    """
    member = team.get_member(member_id)
    if member is None:
        raise NotFound("Member not found in this team")

    rows = await _snapshot(db, Task.team_id == team.id, Task.assigned_to_id == member_id)
    clock = make_clock(user)
    active = _active(rows)
    return {
        "team_id": team.id,
        "member": member.user,
        "role": member.role,
        "status_distribution": status_distribution(active, clock),
        "priority_distribution": priority_distribution(active),
        "performance": performance(active, clock),
        "completion_trend": daily_counts((row.completed_at for row in active), clock),
    }
