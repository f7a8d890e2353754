"""
Workflow Options

Default and per-project status/priority option lists. Projects may carry
their own ``custom_statuses``, ``custom_task_statuses`` and
``custom_task_priorities`` (JSONB lists of ``{"id", "label", "color"}``);
a non-empty custom list replaces the defaults entirely.
"""

from typing import Any, Dict, List, Optional

WORKFLOW_COLORS = {"muted", "info", "success", "warning", "destructive"}

DEFAULT_PROJECT_STATUSES: List[Dict[str, str]] = [
    {"id": "planning", "label": "Planning", "color": "muted"},
    {"id": "active", "label": "Active", "color": "info"},
    {"id": "on-hold", "label": "On Hold", "color": "warning"},
    {"id": "completed", "label": "Completed", "color": "success"},
]

DEFAULT_TASK_STATUSES: List[Dict[str, str]] = [
    {"id": "todo", "label": "To Do", "color": "muted"},
    {"id": "in-progress", "label": "In Progress", "color": "info"},
    {"id": "review", "label": "Review", "color": "warning"},
    {"id": "done", "label": "Done", "color": "success"},
]

DEFAULT_TASK_PRIORITIES: List[Dict[str, str]] = [
    {"id": "low", "label": "Low", "color": "muted"},
    {"id": "medium", "label": "Medium", "color": "warning"},
    {"id": "high", "label": "High", "color": "destructive"},
]

# Accepted on any project regardless of its custom list
RESERVED_TASK_STATUSES = {"blocked", "cancelled"}

DONE_STATUSES = {"done", "completed"}
CLOSED_STATUSES = DONE_STATUSES | {"cancelled"}


def _pick(custom: Optional[List[Dict[str, Any]]], defaults: List[Dict[str, str]]):
    if custom and isinstance(custom, list):
        return custom
    return defaults


def get_project_statuses(custom: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
    return _pick(custom, DEFAULT_PROJECT_STATUSES)


def get_task_statuses(custom: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
    return _pick(custom, DEFAULT_TASK_STATUSES)


def get_task_priorities(custom: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
    return _pick(custom, DEFAULT_TASK_PRIORITIES)


def _option_meta(option_id: str, options: List[Dict[str, Any]]) -> Dict[str, str]:
    for option in options:
        if option.get("id") == option_id:
            return {
                "id": option_id,
                "label": option.get("label") or option_id,
                "color": option.get("color") or "muted",
            }
    return {"id": option_id, "label": option_id, "color": "muted"}


def get_status_meta(
    status_id: str, options: Optional[List[Dict[str, Any]]] = None
) -> Dict[str, str]:
    """Label/color for a task status; unknown ids render as a muted raw id."""
    return _option_meta(status_id, get_task_statuses(options))


def get_project_status_meta(
    status_id: str, options: Optional[List[Dict[str, Any]]] = None
) -> Dict[str, str]:
    return _option_meta(status_id, get_project_statuses(options))


def get_priority_meta(
    priority_id: str, options: Optional[List[Dict[str, Any]]] = None
) -> Dict[str, str]:
    return _option_meta(priority_id, get_task_priorities(options))


def get_project_workflow(project: Optional[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Effective option lists for a project row (dict) or None."""
    project = project or {}
    return {
        "statuses": get_project_statuses(project.get("custom_statuses")),
        "task_statuses": get_task_statuses(project.get("custom_task_statuses")),
        "task_priorities": get_task_priorities(project.get("custom_task_priorities")),
    }


def is_valid_task_status(status: str, custom: Optional[List[Dict[str, Any]]] = None) -> bool:
    if status in RESERVED_TASK_STATUSES:
        return True
    return any(option.get("id") == status for option in get_task_statuses(custom))


def is_valid_task_priority(priority: str, custom: Optional[List[Dict[str, Any]]] = None) -> bool:
    return any(option.get("id") == priority for option in get_task_priorities(custom))


def is_valid_project_status(status: str, custom: Optional[List[Dict[str, Any]]] = None) -> bool:
    return any(option.get("id") == status for option in get_project_statuses(custom))


def is_task_done(status: Optional[str]) -> bool:
    return status in DONE_STATUSES


def is_task_closed(status: Optional[str]) -> bool:
    """Done or cancelled; closed tasks carry no remaining workload."""
    return status in CLOSED_STATUSES


def validate_options(options: List[Dict[str, Any]]) -> List[str]:
    """Return a list of problems with a custom option list (empty when valid)."""
    errors: List[str] = []
    seen: set = set()
    for index, option in enumerate(options):
        option_id = (option.get("id") or "").strip() if isinstance(option, dict) else ""
        if not option_id:
            errors.append(f"Option {index} is missing an id")
            continue
        if option_id in seen:
            errors.append(f"Duplicate option id: {option_id}")
        seen.add(option_id)
        color = option.get("color") or "muted"
        if color not in WORKFLOW_COLORS:
            errors.append(f"Invalid color for {option_id}: {color}")
    return errors
