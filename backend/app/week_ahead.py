"""Week ahead digest: what is due in the current Monday-to-Sunday week."""

from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Set

from app.critical_path import get_blocked_task_ids
from app.helpers.date_utils import parse_date, start_of_week
from app.workflow import is_task_closed

MAX_ITEMS = 12
MAX_FOCUS_ITEMS = 3
EMPTY_MESSAGE = "No tasks or milestones due this week. Focus on backlog or planning."

ACTIVE_RISK_STATUSES = {"identified", "active"}


def get_week_window(today: Optional[date] = None):
    week_start = start_of_week(today or date.today())
    return week_start, week_start + timedelta(days=6)


def build_week_ahead(
    tasks: List[Dict[str, Any]],
    milestones: List[Dict[str, Any]],
    risks: List[Dict[str, Any]],
    edges: Optional[List[Dict[str, Any]]] = None,
    critical_task_ids: Optional[Set[str]] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Collect tasks, milestones and risk reviews due this week.

    ``critical_task_ids`` comes from the critical path of each task's
    project. Items are ordered by due date and capped at 12; the suggested
    focus is the first three critical items, or the first three items when
    none is critical.
    """
    week_start, week_end = get_week_window(today)
    critical = critical_task_ids or set()
    blocked = get_blocked_task_ids(tasks, edges or [])

    def in_week(value: Any) -> Optional[date]:
        due = parse_date(value)
        if due is not None and week_start <= due <= week_end:
            return due
        return None

    items: List[Dict[str, Any]] = []
    for task in tasks:
        if is_task_closed(task.get("status")):
            continue
        due = in_week(task.get("due_date"))
        if due is None:
            continue
        task_id = str(task.get("id"))
        items.append(
            {
                "type": "task",
                "id": task_id,
                "title": task.get("title"),
                "due_date": due.isoformat(),
                "project_id": str(task["project_id"]) if task.get("project_id") else None,
                "is_critical": task_id in critical,
                "is_blocked": task_id in blocked,
            }
        )

    for milestone in milestones:
        due = in_week(milestone.get("due_date"))
        if due is None:
            continue
        items.append(
            {
                "type": "milestone",
                "id": str(milestone.get("id")),
                "title": milestone.get("title"),
                "due_date": due.isoformat(),
                "project_id": str(milestone["project_id"]) if milestone.get("project_id") else None,
                "is_critical": False,
                "is_blocked": False,
            }
        )

    for risk in risks:
        if risk.get("status") not in ACTIVE_RISK_STATUSES:
            continue
        due = in_week(risk.get("due_date"))
        if due is None:
            continue
        items.append(
            {
                "type": "risk_review",
                "id": str(risk.get("id")),
                "title": risk.get("title"),
                "due_date": due.isoformat(),
                "project_id": str(risk["project_id"]) if risk.get("project_id") else None,
                "risk_id": str(risk.get("id")),
                "is_critical": False,
                "is_blocked": False,
            }
        )

    items.sort(key=lambda item: item["due_date"])
    items = items[:MAX_ITEMS]

    focus = [item for item in items if item["is_critical"]][:MAX_FOCUS_ITEMS]
    if not focus:
        focus = items[:MAX_FOCUS_ITEMS]

    return {
        "week_start": week_start.isoformat(),
        "week_end": week_end.isoformat(),
        "items": items,
        "suggested_focus": focus,
        "message": None if items else EMPTY_MESSAGE,
    }
