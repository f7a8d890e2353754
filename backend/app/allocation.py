"""
Weighted Task Allocation

Computes a workload score for each team member from the tasks assigned to
them. Each open task contributes

    points = estimated_hours × priority × urgency × status

where ``estimated_hours`` falls back to 1 when missing or zero and every
multiplier falls back to 1.0 for keys the weight table does not know.

Weights are configurable per organization (see ``allocation_settings``);
stored weights are merged category-by-category onto the defaults below.
"""

import copy
import math
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from app.helpers.date_utils import parse_date
from app.timeframe import (
    filter_tasks_by_time_frame,
    get_capacity_for_time_frame,
    get_points_per_week,
)
from app.workflow import is_task_closed


# ============================================================================
# DEFAULT WEIGHTS
# ============================================================================

DEFAULT_ALLOCATION_WEIGHTS: Dict[str, Dict[str, float]] = {
    "priority": {
        "high": 1.5,
        "medium": 1.0,
        "low": 0.75,
    },
    "urgency": {
        "overdue": 2.0,
        "due_soon": 1.5,  # within 7 days
        "due_moderate": 1.0,  # 8-30 days
        "due_later": 0.5,  # more than 30 days out
        "no_due_date": 1.0,
    },
    "status": {
        "in-progress": 1.25,
        "todo": 1.0,
        "review": 1.0,
        "blocked": 0.5,
    },
}

DUE_SOON_DAYS = 7
DUE_MODERATE_DAYS = 30


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up, matching how scores are shown in the UI."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def default_weights() -> Dict[str, Dict[str, float]]:
    return copy.deepcopy(DEFAULT_ALLOCATION_WEIGHTS)


def merge_weights(stored: Optional[Dict[str, Any]]) -> Dict[str, Dict[str, float]]:
    """
    Overlay stored weights onto the defaults.

    Unknown categories are ignored; within a known category any key is
    accepted (custom statuses and priorities get their own multipliers) as
    long as the value is a non-negative number.
    """
    merged = default_weights()
    if not isinstance(stored, dict):
        return merged

    for category, values in stored.items():
        if category not in merged or not isinstance(values, dict):
            continue
        for key, value in values.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            if value < 0 or math.isnan(value) or math.isinf(value):
                continue
            merged[category][key] = float(value)
    return merged


# ============================================================================
# SCORING
# ============================================================================


def get_urgency_category(due_date: Any, today: Optional[date] = None) -> str:
    """
    Bucket a due date by calendar days remaining.

    - no due date: no_due_date
    - before today: overdue
    - 0-7 days: due_soon
    - 8-30 days: due_moderate
    - later: due_later
    """
    due = parse_date(due_date)
    if due is None:
        return "no_due_date"

    today = today or date.today()
    days_until_due = (due - today).days

    if days_until_due < 0:
        return "overdue"
    if days_until_due <= DUE_SOON_DAYS:
        return "due_soon"
    if days_until_due <= DUE_MODERATE_DAYS:
        return "due_moderate"
    return "due_later"


def get_task_points_breakdown(
    task: Dict[str, Any],
    weights: Optional[Dict[str, Dict[str, float]]] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Return every factor used to score ``task`` together with the total."""
    weights = weights or DEFAULT_ALLOCATION_WEIGHTS

    base_points = float(task.get("estimated_hours") or 1)
    priority_multiplier = weights["priority"].get(task.get("priority") or "", 1.0)
    status_multiplier = weights["status"].get(task.get("status") or "", 1.0)
    urgency_category = get_urgency_category(task.get("due_date"), today)
    urgency_multiplier = weights["urgency"].get(urgency_category, 1.0)

    total = base_points * priority_multiplier * urgency_multiplier * status_multiplier

    return {
        "base_points": base_points,
        "priority_multiplier": priority_multiplier,
        "urgency_category": urgency_category,
        "urgency_multiplier": urgency_multiplier,
        "status_multiplier": status_multiplier,
        "total": round_half_up(total, 2),
    }


def calculate_task_points(
    task: Dict[str, Any],
    weights: Optional[Dict[str, Dict[str, float]]] = None,
    today: Optional[date] = None,
) -> float:
    """Weighted points for a single task, rounded to 2 decimal places."""
    return get_task_points_breakdown(task, weights, today)["total"]


def calculate_member_allocation(
    member_id: Any,
    tasks: Iterable[Dict[str, Any]],
    weights: Optional[Dict[str, Dict[str, float]]] = None,
    today: Optional[date] = None,
) -> float:
    """Sum of points over the member's tasks that are not done or cancelled."""
    member_key = str(member_id)
    total = 0.0
    for task in tasks:
        assignee = task.get("assignee_id")
        if assignee is None or str(assignee) != member_key:
            continue
        if is_task_closed(task.get("status")):
            continue
        total += calculate_task_points(task, weights, today)
    return round_half_up(total, 2)


def get_allocation_percentage(allocation: float, capacity: float) -> int:
    """Allocation as a whole-number percentage of capacity (0 for no capacity)."""
    if not capacity or capacity <= 0:
        return 0
    return int(round_half_up(allocation / capacity * 100))


def summarize_team_allocation(
    members: List[Dict[str, Any]],
    tasks: List[Dict[str, Any]],
    weights: Optional[Dict[str, Dict[str, float]]] = None,
    time_frame: str = "current-week",
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """
    Allocation rows for every team member over ``time_frame``.

    Tasks are filtered to the time frame before scoring; allocation is then
    normalized to points per week and compared with the member's weekly
    capacity (hours) scaled to the same frame.
    """
    today = today or date.today()
    scoped_tasks = filter_tasks_by_time_frame(tasks, time_frame, today)

    rows: List[Dict[str, Any]] = []
    for member in members:
        member_id = member.get("id")
        weekly_capacity = float(member.get("capacity") or 0)
        allocation = calculate_member_allocation(member_id, scoped_tasks, weights, today)
        frame_capacity = get_capacity_for_time_frame(weekly_capacity, time_frame, today)
        open_tasks = [
            t
            for t in scoped_tasks
            if str(t.get("assignee_id")) == str(member_id)
            and not is_task_closed(t.get("status"))
        ]
        percentage = get_allocation_percentage(allocation, frame_capacity)
        rows.append(
            {
                "member_id": member_id,
                "name": member.get("name"),
                "allocation": allocation,
                "points_per_week": get_points_per_week(allocation, time_frame, today),
                "weekly_capacity": weekly_capacity,
                "capacity": frame_capacity,
                "allocation_percentage": percentage,
                "is_over_allocated": percentage > 100,
                "task_count": len(open_tasks),
            }
        )
    return rows
