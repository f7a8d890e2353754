"""
Time Frame Filtering

Restricts tasks to a reporting window before allocation is scored and
normalizes scores to a weekly rate.

Inclusion rules:
- no start or due date: always included (unscheduled work still needs doing)
- due date only: due date inside the window
- start date only: start date inside the window
- both: the task's [start, due] period overlaps the window
"""

import math
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple

from app.helpers.date_utils import (
    end_of_month,
    parse_date,
    start_of_month,
    start_of_week,
)

TIME_FRAMES = ("current-week", "this-month", "this-quarter", "this-year", "all-time")
DEFAULT_TIME_FRAME = "current-week"

TIME_FRAME_LABELS: Dict[str, str] = {
    "current-week": "Current Week",
    "this-month": "This Month",
    "this-quarter": "This Quarter",
    "this-year": "This Year",
    "all-time": "All Time",
}

ALL_TIME_START = date(1970, 1, 1)
ALL_TIME_END = date(2100, 1, 1)
WEEKS_PER_YEAR = 52


def _round2(value: float) -> float:
    return math.floor(value * 100 + 0.5) / 100


def get_time_frame_range(time_frame: str, today: Optional[date] = None) -> Tuple[date, date]:
    """Inclusive ``(first_day, last_day)`` of ``time_frame`` around ``today``.

    Unknown frames fall back to the current week.
    """
    today = today or date.today()

    if time_frame == "this-month":
        return start_of_month(today), end_of_month(today)
    if time_frame == "this-quarter":
        first_month = 3 * ((today.month - 1) // 3) + 1
        quarter_start = date(today.year, first_month, 1)
        quarter_end = end_of_month(date(today.year, first_month + 2, 1))
        return quarter_start, quarter_end
    if time_frame == "this-year":
        return date(today.year, 1, 1), date(today.year, 12, 31)
    if time_frame == "all-time":
        return ALL_TIME_START, ALL_TIME_END

    week_start = start_of_week(today)
    return week_start, week_start + timedelta(days=6)


def get_time_frame_label(time_frame: str) -> str:
    return TIME_FRAME_LABELS.get(time_frame, TIME_FRAME_LABELS[DEFAULT_TIME_FRAME])


def _days_in_range(time_frame: str, today: Optional[date]) -> int:
    start, end = get_time_frame_range(time_frame, today)
    return (end - start).days + 1


def is_task_in_time_frame(task: Dict[str, Any], window: Tuple[date, date]) -> bool:
    start_date = parse_date(task.get("start_date"))
    due_date = parse_date(task.get("due_date"))
    window_start, window_end = window

    if start_date is None and due_date is None:
        return True
    if start_date is None:
        return window_start <= due_date <= window_end
    if due_date is None:
        return window_start <= start_date <= window_end
    return start_date <= window_end and due_date >= window_start


def filter_tasks_by_time_frame(
    tasks: List[Dict[str, Any]],
    time_frame: str,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    if time_frame == "all-time":
        return list(tasks)
    window = get_time_frame_range(time_frame, today)
    return [task for task in tasks if is_task_in_time_frame(task, window)]


def get_points_per_week(
    allocation: float, time_frame: str, today: Optional[date] = None
) -> float:
    """Normalize an allocation to a weekly rate; all-time is returned as-is."""
    if time_frame == "all-time":
        return allocation
    weeks = _days_in_range(time_frame, today) / 7
    if weeks <= 0:
        return allocation
    return _round2(allocation / weeks)


def get_capacity_for_time_frame(
    weekly_capacity: float, time_frame: str, today: Optional[date] = None
) -> float:
    """Scale a weekly capacity to the whole frame (all-time counts one year)."""
    if time_frame == "all-time":
        return weekly_capacity * WEEKS_PER_YEAR
    weeks = _days_in_range(time_frame, today) / 7
    return _round2(weekly_capacity * weeks)
