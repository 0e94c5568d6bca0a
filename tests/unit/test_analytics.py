"""
Unit tests for the analytics aggregations in app/services/analytics.py

All figures are computed from plain row objects against a fixed clock.
The reference instant is Wednesday 2030-06-12 12:00 UTC.
"""

from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from app.services.analytics import (
    TREND_DAYS,
    Clock,
    daily_counts,
    efficiency_score,
    kpi,
    member_performance,
    monthly_stats,
    performance,
    priority_distribution,
    resolve_timezone,
    status_distribution,
    summarize,
    workload,
)

NOW = datetime(2030, 6, 12, 12, 0, tzinfo=timezone.utc)


def at(day, hour=12, month=6):
    return datetime(2030, month, day, hour, 0, tzinfo=timezone.utc)


def row(**overrides):
    values = {
        "id": 1,
        "status": "todo",
        "priority": "medium",
        "due_date": at(20),
        "completed_at": None,
        "created_at": at(1),
        "archived": False,
        "archived_at": None,
        "assigned_to_id": 1,
        "team_id": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def clock():
    return Clock(now=NOW, tz=ZoneInfo("UTC"))


class TestDistributions:

    def test_status_distribution_counts_overdue_separately(self, clock):
        rows = [
            row(status="todo"),
            row(status="todo", due_date=at(11)),
            row(status="in-progress"),
            row(status="completed", due_date=at(1), completed_at=at(2)),
        ]
        assert status_distribution(rows, clock) == {
            "todo": 2, "in_progress": 1, "completed": 1, "overdue": 1,
        }

    def test_priority_distribution_includes_zeros(self):
        rows = [row(priority="high"), row(priority="high"), row(priority="low")]
        assert priority_distribution(rows) == {"low": 1, "medium": 0, "high": 2}

    def test_empty_snapshot(self, clock):
        assert status_distribution([], clock) == {"todo": 0, "in_progress": 0, "completed": 0, "overdue": 0}


class TestTrend:

    def test_trend_is_dense_and_oldest_first(self, clock):
        trend = daily_counts([at(12, hour=9), at(12, hour=10), at(1)], clock)

        assert len(trend) == TREND_DAYS
        assert trend[-1] == {"date": "2030-06-12", "count": 2}
        assert trend[0]["date"] == (date(2030, 6, 12) - timedelta(days=TREND_DAYS - 1)).isoformat()
        assert {"date": "2030-06-01", "count": 1} in trend

    def test_values_outside_the_window_are_ignored(self, clock):
        trend = daily_counts([NOW - timedelta(days=TREND_DAYS)], clock)
        assert sum(entry["count"] for entry in trend) == 0

    def test_day_boundaries_follow_the_timezone(self):
        # 02:00 UTC on the 12th is still the 11th in Los Angeles
        la_clock = Clock(now=NOW, tz=ZoneInfo("America/Los_Angeles"))
        trend = daily_counts([at(12, hour=2)], la_clock)

        assert trend[-1] == {"date": "2030-06-12", "count": 0}
        assert trend[-2] == {"date": "2030-06-11", "count": 1}

    def test_unknown_timezone_falls_back_to_utc(self):
        assert resolve_timezone("Nowhere/Special") == ZoneInfo("UTC")
        assert resolve_timezone(None) == ZoneInfo("UTC")


class TestMonthly:

    def test_current_and_previous_month(self, clock):
        rows = [
            row(created_at=at(3)),
            row(created_at=at(4), status="completed", completed_at=at(5)),
            row(created_at=at(20, month=5), status="completed", completed_at=at(2)),
            row(created_at=at(10, month=5)),
            row(created_at=at(1, month=5), archived=True, archived_at=at(6)),
        ]

        assert monthly_stats(rows, clock) == {"created": 2, "completed": 2, "archived": 1}
        assert monthly_stats(rows, clock, month_offset=1) == {"created": 2, "completed": 0, "archived": 0}

    def test_archived_tasks_only_count_as_archived(self, clock):
        rows = [row(created_at=at(3), archived=True, archived_at=at(4))]
        assert monthly_stats(rows, clock) == {"created": 0, "completed": 0, "archived": 1}


class TestPerformance:

    def test_completion_rate_and_average_hours(self, clock):
        rows = [
            row(status="completed", created_at=at(10, hour=0), completed_at=at(10, hour=10)),
            row(status="completed", created_at=at(11, hour=0), completed_at=at(11, hour=20)),
            row(status="todo"),
            row(status="in-progress"),
        ]
        assert performance(rows, clock) == {
            "total_tasks": 4,
            "completion_rate": 50.0,
            "avg_completion_time": 15.0,
        }

    def test_no_tasks(self, clock):
        assert performance([], clock) == {"total_tasks": 0, "completion_rate": 0.0, "avg_completion_time": 0.0}


class TestKpi:

    def test_week_over_week_and_overdue_deltas(self, clock):
        rows = [
            # Completed this week (Monday 10th onwards)
            row(status="completed", created_at=at(10, hour=1), completed_at=at(10, hour=9), due_date=None),
            row(status="completed", created_at=at(4), completed_at=at(11), due_date=None),
            # Completed last week
            row(status="completed", created_at=at(3), completed_at=at(5), due_date=None),
            # Overdue since yesterday
            row(created_at=at(1), due_date=at(11, hour=18)),
            # Overdue since this morning only
            row(created_at=at(1), due_date=at(12, hour=6)),
        ]
        monthly = monthly_stats(rows, clock)
        last_month = monthly_stats(rows, clock, month_offset=1)
        result = kpi(rows, clock, monthly, last_month)

        assert result["completed_this_week"] == 2
        assert result["completed_last_week"] == 1
        assert result["completed_delta"] == 1
        assert result["created_this_week"] == 1
        assert result["created_last_week"] == 2
        assert result["created_delta"] == -1
        assert result["overdue_now"] == 2
        assert result["overdue_yesterday"] == 1
        assert result["overdue_delta"] == 1
        assert result["completion_rate_this_month"] == 60.0
        assert result["completion_rate_last_month"] == 0.0
        assert result["completion_rate_delta"] == 60.0


class TestSummary:

    def test_archived_tasks_are_left_out_of_distributions(self, clock):
        rows = [
            row(status="todo"),
            row(status="completed", completed_at=at(12, hour=8), archived=True, archived_at=at(12, hour=9)),
        ]
        summary = summarize(rows, clock)

        assert summary["status_distribution"]["completed"] == 0
        assert summary["performance"]["total_tasks"] == 1
        assert summary["completion_trend"][-1]["count"] == 0
        assert summary["monthly"]["archived"] == 1
        assert summary["completion_calendar"] == summary["completion_trend"]


class TestTeamFigures:

    def members(self):
        return [
            SimpleNamespace(user_id=1, user="owner"),
            SimpleNamespace(user_id=2, user="admin"),
            SimpleNamespace(user_id=3, user="idle"),
        ]

    def test_workload_lists_every_member(self, clock):
        rows = [
            row(assigned_to_id=1, status="todo"),
            row(assigned_to_id=1, status="todo", due_date=at(11)),
            row(assigned_to_id=2, status="completed", completed_at=at(11)),
            row(assigned_to_id=2, status="todo", archived=True),
        ]
        result = workload(rows, self.members(), clock)

        assert result == [
            {"member": "owner", "open_tasks": 2, "overdue_tasks": 1},
            {"member": "admin", "open_tasks": 0, "overdue_tasks": 0},
            {"member": "idle", "open_tasks": 0, "overdue_tasks": 0},
        ]

    def test_member_performance(self):
        rows = [
            row(assigned_to_id=1, status="completed", completed_at=at(11)),
            row(assigned_to_id=1, status="todo"),
            row(assigned_to_id=2, status="completed", completed_at=at(11)),
        ]
        result = member_performance(rows, self.members())

        assert result[0] == {"member": "owner", "completed": 1, "total": 2, "completion_rate": 50.0}
        assert result[1]["completion_rate"] == 100.0
        assert result[2] == {"member": "idle", "completed": 0, "total": 0, "completion_rate": 0.0}

    def test_efficiency_score(self):
        summary = {
            "performance": {"total_tasks": 4, "completion_rate": 50.0},
            "status_distribution": {"overdue": 1},
        }
        assert efficiency_score(summary) == 37.5

    def test_efficiency_score_without_tasks(self):
        summary = {
            "performance": {"total_tasks": 0, "completion_rate": 0.0},
            "status_distribution": {"overdue": 0},
        }
        assert efficiency_score(summary) == 0.0
