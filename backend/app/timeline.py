"""
Timeline Geometry

Date ranges and bar positions for the task Gantt (fixed pixel grid), the
project/program Gantt (percentage grid) and the month calendar, plus the
drag-to-reschedule arithmetic the project Gantt uses.

All functions are pure and take ``today`` explicitly so callers and tests
control "now".
"""

import calendar
import math
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.helpers.date_utils import (
    end_of_month,
    parse_date,
    start_of_month,
    start_of_week,
)

DateRange = Tuple[date, date]

# ============================================================================
# TASK GANTT
# ============================================================================

DAY_PX = 44
ASSUMED_TASK_DURATION_DAYS = 7
MIN_TASK_BAR_PX = 24
RANGE_PADDING_DAYS = 7


def _due_dates(tasks: Iterable[Dict[str, Any]]) -> List[date]:
    dates = [parse_date(t.get("due_date")) for t in tasks]
    return [d for d in dates if d is not None]


def get_task_gantt_range(
    tasks: List[Dict[str, Any]], today: Optional[date] = None
) -> DateRange:
    """
    Visible window for the task Gantt.

    With due dates: from a week before the month of the earliest due date to
    a week after the month of the latest one. Without: the current month.
    """
    today = today or date.today()
    dates = _due_dates(tasks)
    if not dates:
        return start_of_month(today), end_of_month(today)
    return (
        start_of_month(min(dates)) - timedelta(days=RANGE_PADDING_DAYS),
        end_of_month(max(dates)) + timedelta(days=RANGE_PADDING_DAYS),
    )


def get_task_bar_position(due_date: Any, range_start: date) -> Optional[Dict[str, int]]:
    """
    Pixel geometry of a task bar.

    Tasks are drawn as the week leading up to their due date. Returns None
    when the task has no due date or is due before the visible range.
    """
    due = parse_date(due_date)
    if due is None:
        return None

    end_diff = (due - range_start).days
    if end_diff < 0:
        return None
    start_diff = end_diff - ASSUMED_TASK_DURATION_DAYS
    safe_start = max(0, start_diff)
    duration_days = end_diff - safe_start + 1

    return {
        "left_px": safe_start * DAY_PX,
        "width_px": max(MIN_TASK_BAR_PX, duration_days * DAY_PX),
    }


def build_day_columns(date_range: DateRange, today: Optional[date] = None) -> List[Dict[str, Any]]:
    today = today or date.today()
    start, end = date_range
    columns = []
    current = start
    while current <= end:
        columns.append(
            {
                "date": current.isoformat(),
                "day": current.day,
                "is_weekend": current.weekday() >= 5,
                "is_today": current == today,
                "is_month_start": current.day == 1,
            }
        )
        current += timedelta(days=1)
    return columns


def build_task_gantt(
    tasks: List[Dict[str, Any]], today: Optional[date] = None
) -> Dict[str, Any]:
    """Range, day columns and bar geometry for every task."""
    today = today or date.today()
    start, end = get_task_gantt_range(tasks, today)
    total_days = (end - start).days + 1
    bars = []
    for task in tasks:
        bars.append(
            {
                "task_id": str(task.get("id")),
                "title": task.get("title"),
                "status": task.get("status"),
                "due_date": task.get("due_date"),
                "position": get_task_bar_position(task.get("due_date"), start),
            }
        )
    return {
        "range_start": start.isoformat(),
        "range_end": end.isoformat(),
        "total_days": total_days,
        "timeline_width_px": total_days * DAY_PX,
        "days": build_day_columns((start, end), today),
        "bars": bars,
    }


# ============================================================================
# PROJECT GANTT
# ============================================================================

DEFAULT_PROJECT_LENGTH_DAYS = 30
PROJECT_RANGE_LEAD_DAYS = 14
PROJECT_RANGE_TAIL_DAYS = 28
EMPTY_RANGE_LEAD_DAYS = 7
EMPTY_RANGE_TAIL_DAYS = 84
NAVIGATE_WEEKS = 4
DEFAULT_GRAB_OFFSET_PX = 30


def get_project_dates(project: Dict[str, Any]) -> Optional[DateRange]:
    """Start/end of a project, filling a missing side with a 30-day span."""
    start = parse_date(project.get("start_date"))
    end = parse_date(project.get("end_date"))
    if start is None and end is None:
        return None
    if start is None:
        start = end - timedelta(days=DEFAULT_PROJECT_LENGTH_DAYS)
    if end is None:
        end = start + timedelta(days=DEFAULT_PROJECT_LENGTH_DAYS)
    return start, end


def get_project_gantt_range(
    projects: List[Dict[str, Any]], today: Optional[date] = None
) -> DateRange:
    today = today or date.today()
    spans = [s for s in (get_project_dates(p) for p in projects) if s is not None]
    if not spans:
        return (
            start_of_week(today - timedelta(days=EMPTY_RANGE_LEAD_DAYS)),
            today + timedelta(days=EMPTY_RANGE_TAIL_DAYS),
        )
    earliest = min(s for s, _ in spans)
    latest = max(e for _, e in spans)
    return (
        start_of_week(earliest - timedelta(days=PROJECT_RANGE_LEAD_DAYS)),
        latest + timedelta(days=PROJECT_RANGE_TAIL_DAYS),
    )


def get_project_bar_position(
    start: date, end: date, date_range: DateRange, offset_days: int = 0
) -> Dict[str, Any]:
    """
    Percentage geometry of a project bar inside ``date_range``.

    The bar is clamped to the visible days; ``out_of_view`` is set when the
    project lies entirely outside the range.
    """
    range_start, range_end = date_range
    total_days = (range_end - range_start).days + 1
    day_width = 100 / total_days

    start_diff = (start - range_start).days + offset_days
    end_diff = (end - range_start).days + offset_days

    if end_diff < 0 or start_diff > total_days:
        return {"out_of_view": True, "left_pct": None, "width_pct": None}

    visible_start = max(0, start_diff)
    visible_end = min(total_days - 1, end_diff)
    return {
        "out_of_view": False,
        "left_pct": round(visible_start * day_width, 4),
        "width_pct": round(max(1, visible_end - visible_start + 1) * day_width, 4),
    }


def build_project_gantt(
    projects: List[Dict[str, Any]],
    today: Optional[date] = None,
    date_range: Optional[DateRange] = None,
) -> Dict[str, Any]:
    today = today or date.today()
    start, end = date_range or get_project_gantt_range(projects, today)
    bars = []
    for project in projects:
        span = get_project_dates(project)
        bars.append(
            {
                "project_id": str(project.get("id")),
                "name": project.get("name"),
                "status": project.get("status"),
                "progress": project.get("progress") or 0,
                "start_date": span[0].isoformat() if span else None,
                "end_date": span[1].isoformat() if span else None,
                "position": get_project_bar_position(span[0], span[1], (start, end))
                if span
                else None,
            }
        )
    return {
        "range_start": start.isoformat(),
        "range_end": end.isoformat(),
        "total_days": (end - start).days + 1,
        "bars": bars,
    }


def calculate_drag_offset_days(
    mouse_x: float,
    original_start_px: float,
    day_width_px: float,
    grab_offset_px: float = DEFAULT_GRAB_OFFSET_PX,
) -> int:
    """Whole days a dragged bar moved; halves round up."""
    if day_width_px <= 0:
        raise ValueError("day_width_px must be positive")
    return int(math.floor((mouse_x - original_start_px - grab_offset_px) / day_width_px + 0.5))


def reschedule_dates(start: Any, end: Any, offset_days: int) -> Dict[str, Optional[str]]:
    """Shift both dates by ``offset_days``; returns ``yyyy-MM-dd`` strings."""
    shift = timedelta(days=offset_days)
    new_start = parse_date(start)
    new_end = parse_date(end)
    return {
        "start_date": (new_start + shift).isoformat() if new_start else None,
        "end_date": (new_end + shift).isoformat() if new_end else None,
    }


def navigate_range(date_range: DateRange, direction: str) -> DateRange:
    if direction not in ("prev", "next"):
        raise ValueError(f"Unknown direction: {direction}")
    step = timedelta(weeks=NAVIGATE_WEEKS)
    if direction == "prev":
        step = -step
    return date_range[0] + step, date_range[1] + step


# ============================================================================
# CALENDAR
# ============================================================================


def get_calendar_month_grid(year: int, month: int) -> List[List[date]]:
    """Monday-first weeks covering every day of the month."""
    return calendar.Calendar(firstweekday=calendar.MONDAY).monthdatescalendar(year, month)


def group_items_by_day(
    items: Iterable[Dict[str, Any]], date_field: str = "due_date"
) -> Dict[str, List[Dict[str, Any]]]:
    """Bucket items by ISO day; items without a date are left out."""
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for item in items:
        day = parse_date(item.get(date_field))
        if day is None:
            continue
        grouped.setdefault(day.isoformat(), []).append(item)
    return grouped


def build_calendar_month(
    year: int,
    month: int,
    items: Iterable[Dict[str, Any]],
    today: Optional[date] = None,
    date_field: str = "due_date",
) -> Dict[str, Any]:
    today = today or date.today()
    grouped = group_items_by_day(items, date_field)
    weeks = []
    for week in get_calendar_month_grid(year, month):
        weeks.append(
            [
                {
                    "date": day.isoformat(),
                    "in_month": day.month == month,
                    "is_today": day == today,
                    "items": grouped.get(day.isoformat(), []),
                }
                for day in week
            ]
        )
    return {"year": year, "month": month, "weeks": weeks}
