"""
Unit Tests for Timeline Geometry

Tests the task Gantt pixel grid, the project Gantt percentage grid, drag
rescheduling and the month calendar.

Usage:
    cd backend && pytest tests/test_timeline.py -v
"""

import sys
import os
from datetime import date

import pytest

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.timeline import (
    DAY_PX,
    build_calendar_month,
    build_project_gantt,
    build_task_gantt,
    calculate_drag_offset_days,
    get_project_bar_position,
    get_project_dates,
    get_project_gantt_range,
    get_task_bar_position,
    get_task_gantt_range,
    group_items_by_day,
    navigate_range,
    reschedule_dates,
)

TODAY = date(2026, 3, 11)


# ============================================================================
# TASK GANTT
# ============================================================================

class TestTaskGanttRange:
    def test_pads_months_of_due_dates(self):
        tasks = [{"due_date": "2026-03-11"}, {"due_date": "2026-04-20"}, {"due_date": None}]
        assert get_task_gantt_range(tasks, TODAY) == (date(2026, 2, 22), date(2026, 5, 7))

    def test_no_due_dates_uses_current_month(self):
        assert get_task_gantt_range([{"due_date": None}], TODAY) == (
            date(2026, 3, 1),
            date(2026, 3, 31),
        )


class TestTaskBarPosition:
    RANGE_START = date(2026, 2, 22)

    def test_week_before_due_date(self):
        position = get_task_bar_position("2026-03-11", self.RANGE_START)
        assert position == {"left_px": 10 * DAY_PX, "width_px": 8 * DAY_PX}

    def test_clamped_at_range_start(self):
        position = get_task_bar_position("2026-02-24", self.RANGE_START)
        assert position == {"left_px": 0, "width_px": 3 * DAY_PX}

    def test_due_on_range_start(self):
        assert get_task_bar_position("2026-02-22", self.RANGE_START) == {
            "left_px": 0,
            "width_px": DAY_PX,
        }

    def test_hidden_when_missing_or_before_range(self):
        assert get_task_bar_position(None, self.RANGE_START) is None
        assert get_task_bar_position("2026-02-21", self.RANGE_START) is None


class TestBuildTaskGantt:
    def test_layout(self):
        tasks = [
            {"id": "t-1", "title": "Draft", "status": "todo", "due_date": "2026-03-11"},
            {"id": "t-2", "title": "Ship", "status": "todo", "due_date": "2026-04-20"},
        ]
        gantt = build_task_gantt(tasks, TODAY)
        assert gantt["total_days"] == 75
        assert gantt["timeline_width_px"] == 75 * DAY_PX
        assert len(gantt["days"]) == 75
        today_cols = [d for d in gantt["days"] if d["is_today"]]
        assert today_cols[0]["date"] == "2026-03-11"
        assert gantt["bars"][0]["position"]["left_px"] == 10 * DAY_PX

    def test_weekend_flags(self):
        gantt = build_task_gantt([], TODAY)
        first = gantt["days"][0]
        assert first["date"] == "2026-03-01"
        assert first["is_weekend"] is True
        assert first["is_month_start"] is True


# ============================================================================
# PROJECT GANTT
# ============================================================================

class TestProjectDates:
    def test_both_dates(self):
        assert get_project_dates({"start_date": "2026-03-01", "end_date": "2026-05-01"}) == (
            date(2026, 3, 1),
            date(2026, 5, 1),
        )

    def test_missing_side_gets_thirty_days(self):
        assert get_project_dates({"start_date": "2026-03-01"}) == (date(2026, 3, 1), date(2026, 3, 31))
        assert get_project_dates({"end_date": "2026-03-31"}) == (date(2026, 3, 1), date(2026, 3, 31))

    def test_no_dates(self):
        assert get_project_dates({}) is None


class TestProjectGanttRange:
    def test_padded_to_monday(self):
        projects = [{"start_date": "2026-03-02", "end_date": "2026-03-31"}]
        start, end = get_project_gantt_range(projects, TODAY)
        assert start == date(2026, 2, 16)
        assert start.weekday() == 0
        assert end == date(2026, 4, 28)

    def test_empty(self):
        assert get_project_gantt_range([], TODAY) == (date(2026, 3, 2), date(2026, 6, 3))


class TestProjectBarPosition:
    RANGE = (date(2026, 3, 1), date(2026, 3, 10))

    def test_inside(self):
        assert get_project_bar_position(date(2026, 3, 3), date(2026, 3, 4), self.RANGE) == {
            "out_of_view": False,
            "left_pct": 20.0,
            "width_pct": 20.0,
        }

    def test_clamped_start(self):
        position = get_project_bar_position(date(2026, 2, 25), date(2026, 3, 2), self.RANGE)
        assert position["left_pct"] == 0.0
        assert position["width_pct"] == 20.0

    def test_offset_moves_bar(self):
        position = get_project_bar_position(date(2026, 3, 3), date(2026, 3, 4), self.RANGE, 2)
        assert position["left_pct"] == 40.0

    def test_out_of_view(self):
        assert get_project_bar_position(date(2026, 2, 1), date(2026, 2, 27), self.RANGE)["out_of_view"]
        assert get_project_bar_position(date(2026, 3, 20), date(2026, 3, 25), self.RANGE)["out_of_view"]

    def test_build_project_gantt_without_dates(self):
        gantt = build_project_gantt([{"id": "p-1", "name": "Undated"}], TODAY)
        assert gantt["bars"][0]["position"] is None
        assert gantt["bars"][0]["progress"] == 0


class TestDragAndReschedule:
    def test_offset_rounding(self):
        assert calculate_drag_offset_days(230, 100, 20) == 5
        assert calculate_drag_offset_days(240, 100, 20) == 6
        assert calculate_drag_offset_days(80, 100, 20) == -2
        assert calculate_drag_offset_days(70, 100, 20) == -3

    def test_invalid_day_width(self):
        with pytest.raises(ValueError):
            calculate_drag_offset_days(100, 0, 0)

    def test_reschedule(self):
        assert reschedule_dates("2026-03-01", "2026-03-31", 7) == {
            "start_date": "2026-03-08",
            "end_date": "2026-04-07",
        }
        assert reschedule_dates(None, date(2026, 3, 31), -1) == {
            "start_date": None,
            "end_date": "2026-03-30",
        }

    def test_navigate(self):
        window = (date(2026, 3, 2), date(2026, 6, 3))
        assert navigate_range(window, "next") == (date(2026, 3, 30), date(2026, 7, 1))
        assert navigate_range(window, "prev") == (date(2026, 2, 2), date(2026, 5, 6))
        with pytest.raises(ValueError):
            navigate_range(window, "up")


# ============================================================================
# CALENDAR
# ============================================================================

class TestCalendar:
    def test_month_grid_is_monday_first(self):
        month = build_calendar_month(2026, 3, [], TODAY)
        weeks = month["weeks"]
        assert len(weeks) == 6
        assert weeks[0][0]["date"] == "2026-02-23"
        assert weeks[0][0]["in_month"] is False
        assert weeks[0][6]["date"] == "2026-03-01"
        assert weeks[-1][-1]["date"] == "2026-04-05"

    def test_items_land_on_their_day(self):
        items = [
            {"id": "a", "due_date": "2026-03-11"},
            {"id": "b", "due_date": "2026-03-11"},
            {"id": "c", "due_date": None},
        ]
        month = build_calendar_month(2026, 3, items, TODAY)
        day = next(d for week in month["weeks"] for d in week if d["date"] == "2026-03-11")
        assert day["is_today"] is True
        assert [i["id"] for i in day["items"]] == ["a", "b"]

    def test_group_by_other_field(self):
        grouped = group_items_by_day([{"start_date": "2026-03-02"}], "start_date")
        assert list(grouped) == ["2026-03-02"]
