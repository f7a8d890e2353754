"""
Unit Tests for Weighted Task Allocation and Time Frame Filtering

Tests the allocation scoring components:
- get_urgency_category: due-date bucketing
- get_task_points_breakdown / calculate_task_points: per-task points
- calculate_member_allocation: summing open work per member
- merge_weights: per-org weight overrides
- time frame windows, filtering and capacity scaling
- summarize_team_allocation: the combined team view

Usage:
    cd backend && pytest tests/test_allocation.py -v
"""

import sys
import os
from datetime import date
from typing import Any, Dict

import pytest

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.allocation import (
    DEFAULT_ALLOCATION_WEIGHTS,
    calculate_member_allocation,
    calculate_task_points,
    get_allocation_percentage,
    get_task_points_breakdown,
    get_urgency_category,
    merge_weights,
    round_half_up,
    summarize_team_allocation,
)
from app.timeframe import (
    filter_tasks_by_time_frame,
    get_capacity_for_time_frame,
    get_points_per_week,
    get_time_frame_label,
    get_time_frame_range,
    is_task_in_time_frame,
)

# Wednesday; the week runs Mon 2026-03-09 .. Sun 2026-03-15
TODAY = date(2026, 3, 11)


# ============================================================================
# FIXTURES AND TEST DATA FACTORIES
# ============================================================================

def make_task(
    task_id: str = "t-1",
    assignee_id: str = "m-1",
    estimated_hours: float = 4,
    priority: str = "medium",
    status: str = "todo",
    start_date: str = None,
    due_date: str = None,
) -> Dict[str, Any]:
    """Factory function to create test task data."""
    return {
        "id": task_id,
        "assignee_id": assignee_id,
        "estimated_hours": estimated_hours,
        "priority": priority,
        "status": status,
        "start_date": start_date,
        "due_date": due_date,
    }


# ============================================================================
# URGENCY
# ============================================================================

class TestUrgencyCategory:
    def test_no_due_date(self):
        assert get_urgency_category(None, TODAY) == "no_due_date"
        assert get_urgency_category("", TODAY) == "no_due_date"

    def test_overdue(self):
        assert get_urgency_category("2026-03-10", TODAY) == "overdue"

    def test_due_today_is_due_soon(self):
        assert get_urgency_category("2026-03-11", TODAY) == "due_soon"

    def test_seven_day_boundary(self):
        assert get_urgency_category("2026-03-18", TODAY) == "due_soon"
        assert get_urgency_category("2026-03-19", TODAY) == "due_moderate"

    def test_thirty_day_boundary(self):
        assert get_urgency_category("2026-04-10", TODAY) == "due_moderate"
        assert get_urgency_category("2026-04-11", TODAY) == "due_later"

    def test_accepts_date_objects(self):
        assert get_urgency_category(date(2026, 3, 1), TODAY) == "overdue"


# ============================================================================
# TASK POINTS
# ============================================================================

class TestTaskPoints:
    def test_all_multipliers_apply(self):
        task = make_task(
            estimated_hours=4, priority="high", status="in-progress", due_date="2026-03-13"
        )
        breakdown = get_task_points_breakdown(task, today=TODAY)
        assert breakdown["base_points"] == 4.0
        assert breakdown["priority_multiplier"] == 1.5
        assert breakdown["urgency_category"] == "due_soon"
        assert breakdown["urgency_multiplier"] == 1.5
        assert breakdown["status_multiplier"] == 1.25
        assert breakdown["total"] == 11.25

    def test_missing_hours_count_as_one(self):
        assert calculate_task_points(make_task(estimated_hours=None), today=TODAY) == 1.0
        assert calculate_task_points(make_task(estimated_hours=0), today=TODAY) == 1.0

    def test_unknown_keys_use_neutral_multiplier(self):
        task = make_task(estimated_hours=2, priority="urgent", status="qa")
        assert calculate_task_points(task, today=TODAY) == 2.0

    def test_overdue_doubles(self):
        task = make_task(estimated_hours=3, due_date="2026-03-01")
        assert calculate_task_points(task, today=TODAY) == 6.0

    def test_custom_weights(self):
        weights = merge_weights({"priority": {"low": 0.5}})
        task = make_task(estimated_hours=4, priority="low")
        assert calculate_task_points(task, weights, TODAY) == 2.0


class TestRoundHalfUp:
    def test_halves_round_up(self):
        assert round_half_up(12.5) == 13
        assert round_half_up(0.125, 2) == 0.13

    def test_below_half_rounds_down(self):
        assert round_half_up(12.49) == 12


# ============================================================================
# MEMBER ALLOCATION
# ============================================================================

class TestMemberAllocation:
    def test_sums_only_members_open_tasks(self):
        tasks = [
            make_task("t-1", "m-1", estimated_hours=2),
            make_task("t-2", "m-1", estimated_hours=3),
            make_task("t-3", "m-1", estimated_hours=10, status="done"),
            make_task("t-4", "m-1", estimated_hours=10, status="cancelled"),
            make_task("t-5", "m-2", estimated_hours=7),
            make_task("t-6", None, estimated_hours=7),
        ]
        assert calculate_member_allocation("m-1", tasks, today=TODAY) == 5.0
        assert calculate_member_allocation("m-2", tasks, today=TODAY) == 7.0

    def test_no_tasks(self):
        assert calculate_member_allocation("m-1", [], today=TODAY) == 0.0


class TestAllocationPercentage:
    def test_basic(self):
        assert get_allocation_percentage(20, 40) == 50

    def test_rounds_half_up(self):
        assert get_allocation_percentage(5, 40) == 13

    def test_zero_capacity(self):
        assert get_allocation_percentage(20, 0) == 0
        assert get_allocation_percentage(20, None) == 0


# ============================================================================
# WEIGHTS
# ============================================================================

class TestMergeWeights:
    def test_none_returns_defaults(self):
        assert merge_weights(None) == DEFAULT_ALLOCATION_WEIGHTS

    def test_overrides_and_custom_keys(self):
        merged = merge_weights({"priority": {"high": 2, "urgent": 3}})
        assert merged["priority"]["high"] == 2.0
        assert merged["priority"]["urgent"] == 3.0
        assert merged["priority"]["medium"] == 1.0

    def test_invalid_values_ignored(self):
        merged = merge_weights(
            {
                "bogus": {"x": 1},
                "status": {"todo": -1, "review": True, "blocked": "high"},
            }
        )
        assert "bogus" not in merged
        assert merged["status"]["todo"] == 1.0
        assert merged["status"]["review"] == 1.0
        assert merged["status"]["blocked"] == 0.5

    def test_defaults_not_mutated(self):
        merge_weights({"priority": {"high": 9}})
        assert DEFAULT_ALLOCATION_WEIGHTS["priority"]["high"] == 1.5


# ============================================================================
# TIME FRAMES
# ============================================================================

class TestTimeFrameRange:
    def test_current_week_is_monday_to_sunday(self):
        assert get_time_frame_range("current-week", TODAY) == (date(2026, 3, 9), date(2026, 3, 15))

    def test_month(self):
        assert get_time_frame_range("this-month", TODAY) == (date(2026, 3, 1), date(2026, 3, 31))

    def test_quarter(self):
        assert get_time_frame_range("this-quarter", TODAY) == (date(2026, 1, 1), date(2026, 3, 31))
        assert get_time_frame_range("this-quarter", date(2026, 11, 2)) == (
            date(2026, 10, 1),
            date(2026, 12, 31),
        )

    def test_year(self):
        assert get_time_frame_range("this-year", TODAY) == (date(2026, 1, 1), date(2026, 12, 31))

    def test_unknown_falls_back_to_week(self):
        assert get_time_frame_range("fortnight", TODAY) == get_time_frame_range("current-week", TODAY)

    def test_labels(self):
        assert get_time_frame_label("this-quarter") == "This Quarter"
        assert get_time_frame_label("nope") == "Current Week"


class TestTimeFrameInclusion:
    WINDOW = (date(2026, 3, 9), date(2026, 3, 15))

    @pytest.mark.parametrize(
        "start,due,expected",
        [
            (None, None, True),
            (None, "2026-03-12", True),
            (None, "2026-03-20", False),
            ("2026-03-15", None, True),
            ("2026-03-16", None, False),
            ("2026-03-01", "2026-03-31", True),
            ("2026-03-01", "2026-03-08", False),
            ("2026-03-15", "2026-04-01", True),
        ],
    )
    def test_rules(self, start, due, expected):
        task = make_task(start_date=start, due_date=due)
        assert is_task_in_time_frame(task, self.WINDOW) is expected

    def test_all_time_keeps_everything(self):
        tasks = [make_task(due_date="1999-01-01"), make_task(due_date="2090-01-01")]
        assert len(filter_tasks_by_time_frame(tasks, "all-time", TODAY)) == 2

    def test_filter_by_week(self):
        tasks = [make_task("a", due_date="2026-03-12"), make_task("b", due_date="2026-04-12")]
        assert [t["id"] for t in filter_tasks_by_time_frame(tasks, "current-week", TODAY)] == ["a"]


class TestCapacityScaling:
    def test_week(self):
        assert get_capacity_for_time_frame(40, "current-week", TODAY) == 40.0

    def test_month(self):
        assert get_capacity_for_time_frame(40, "this-month", TODAY) == 177.14

    def test_all_time_is_one_year(self):
        assert get_capacity_for_time_frame(40, "all-time", TODAY) == 2080

    def test_points_per_week(self):
        assert get_points_per_week(31, "this-month", TODAY) == 7.0
        assert get_points_per_week(31, "all-time", TODAY) == 31


# ============================================================================
# TEAM SUMMARY
# ============================================================================

class TestSummarizeTeamAllocation:
    def test_over_allocated_member(self):
        members = [
            {"id": "m-1", "name": "Ana", "capacity": 40},
            {"id": "m-2", "name": "Ben", "capacity": 40},
        ]
        tasks = [
            make_task("t-1", "m-1", estimated_hours=20, priority="high", due_date="2026-03-13"),
            make_task("t-2", "m-1", estimated_hours=20, due_date="2026-05-01"),
        ]
        rows = summarize_team_allocation(members, tasks, time_frame="current-week", today=TODAY)
        ana, ben = rows

        assert ana["allocation"] == 45.0
        assert ana["points_per_week"] == 45.0
        assert ana["capacity"] == 40.0
        assert ana["allocation_percentage"] == 113
        assert ana["is_over_allocated"] is True
        assert ana["task_count"] == 1

        assert ben["allocation"] == 0.0
        assert ben["allocation_percentage"] == 0
        assert ben["is_over_allocated"] is False

    def test_member_without_capacity(self):
        rows = summarize_team_allocation(
            [{"id": "m-1", "name": "Ana", "capacity": None}],
            [make_task("t-1", "m-1")],
            today=TODAY,
        )
        assert rows[0]["allocation_percentage"] == 0
