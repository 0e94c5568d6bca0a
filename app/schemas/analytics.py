"""
Pydantic schemas for personal and team analytics.
"""

from typing import List, Optional

from pydantic import Field

from app.schemas.base import CamelModel
from app.schemas.user import UserSummary


class StatusDistribution(CamelModel):
    todo: int = 0
    in_progress: int = Field(0, alias="in-progress")
    completed: int = 0
    overdue: int = 0


class PriorityDistribution(CamelModel):
    low: int = 0
    medium: int = 0
    high: int = 0


class DayCount(CamelModel):
    date: str
    count: int


class MonthlyStats(CamelModel):
    created: int = 0
    completed: int = 0
    archived: int = 0


class Performance(CamelModel):
    total_tasks: int = 0
    completion_rate: float = 0.0
    # Hours, over tasks completed in the trend window
    avg_completion_time: float = 0.0


class Kpi(CamelModel):
    completed_this_week: int = 0
    completed_last_week: int = 0
    completed_delta: int = 0
    created_this_week: int = 0
    created_last_week: int = 0
    created_delta: int = 0
    completion_rate_this_month: float = 0.0
    completion_rate_last_month: float = 0.0
    completion_rate_delta: float = 0.0
    overdue_now: int = 0
    overdue_yesterday: int = 0
    overdue_delta: int = 0


class PersonalAnalytics(CamelModel):
    status_distribution: StatusDistribution
    priority_distribution: PriorityDistribution
    completion_trend: List[DayCount]
    completion_calendar: List[DayCount]
    monthly: MonthlyStats
    last_month: MonthlyStats
    performance: Performance
    kpi: Kpi


class WorkloadEntry(CamelModel):
    member: UserSummary
    open_tasks: int = 0
    overdue_tasks: int = 0


class MemberPerformance(CamelModel):
    member: UserSummary
    completed: int = 0
    total: int = 0
    completion_rate: float = 0.0


class Velocity(CamelModel):
    this_week: int = 0
    last_week: int = 0


class TeamAnalytics(PersonalAnalytics):
    team_id: int
    workload: List[WorkloadEntry]
    member_performance: List[MemberPerformance]
    efficiency_score: float = 0.0
    velocity: Velocity


class WorkloadOut(CamelModel):
    team_id: int
    workload: List[WorkloadEntry]


class TrendsOut(CamelModel):
    team_id: int
    completion_trend: List[DayCount]
    created_trend: List[DayCount]


class MemberAnalyticsOut(CamelModel):
    team_id: int
    member: UserSummary
    role: Optional[str] = None
    status_distribution: StatusDistribution
    priority_distribution: PriorityDistribution
    performance: Performance
    completion_trend: List[DayCount]
