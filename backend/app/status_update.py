"""
Status Update Generation

Builds a project or program status update from live rows: progress,
upcoming milestones, active risks, blockers, pending scope changes and a
free-text next focus. The caller gathers rows already scoped to the project
(or to every project of the program); this module only shapes the text.
"""

from collections import Counter
from datetime import date
from typing import Any, Dict, List, Optional

from app.allocation import round_half_up
from app.critical_path import get_blocked_task_ids
from app.helpers.date_utils import format_long_date, format_short_date, parse_date
from app.workflow import is_task_done

FORMATS = ("executive", "weekly")
SCOPES = ("project", "program")

ACTIVE_RISK_STATUSES = {"identified", "active"}
MAX_UPCOMING_MILESTONES = 5
DEFAULT_NEXT_FOCUS = "Review critical path and unblock dependent tasks."

FORMAT_MARKERS = {
    "executive": "_(Executive summary)_",
    "weekly": "_(Weekly)_",
}


def _section(section_id: str, title: str, content: str, sources: List[Any]) -> Dict[str, Any]:
    return {
        "id": section_id,
        "title": title,
        "content": content,
        "generated_from": [str(s) for s in sources],
    }


def _progress_section(tasks: List[Dict[str, Any]]) -> Dict[str, Any]:
    total = len(tasks)
    completed = sum(1 for t in tasks if is_task_done(t.get("status")))
    percent = int(round_half_up(completed / total * 100)) if total else 0

    lines = [f"Tasks: {completed}/{total} completed ({percent}%)."]
    counts = Counter(t.get("status") or "todo" for t in tasks)
    for status, count in sorted(counts.items()):
        lines.append(f"• {status}: {count}")
    return _section("progress", "Progress", "\n".join(lines), [t.get("id") for t in tasks])


def _milestone_section(milestones: List[Dict[str, Any]], today: date) -> Dict[str, Any]:
    upcoming = []
    for milestone in milestones:
        due = parse_date(milestone.get("due_date"))
        if due is None or due < today or milestone.get("completed"):
            continue
        upcoming.append((due, milestone))
    upcoming.sort(key=lambda pair: pair[0])
    upcoming = upcoming[:MAX_UPCOMING_MILESTONES]

    if not upcoming:
        content = "No upcoming milestones."
    else:
        content = "\n".join(f"• {m.get('title')} – {format_short_date(due)}" for due, m in upcoming)
    return _section("milestones", "Upcoming milestones", content, [m.get("id") for _, m in upcoming])


def _risk_section(risks: List[Dict[str, Any]]) -> Dict[str, Any]:
    active = [r for r in risks if r.get("status") in ACTIVE_RISK_STATUSES]
    if not active:
        content = "No active risks."
    else:
        content = "\n".join(
            f"• {r.get('title')} ({r.get('severity')}) – {r.get('status')}" for r in active
        )
    return _section("risks", "Risks", content, [r.get("id") for r in active])


def _blocker_section(tasks: List[Dict[str, Any]], edges: List[Dict[str, Any]]) -> Dict[str, Any]:
    blocked_ids = get_blocked_task_ids(tasks, edges)
    blocked = [
        t
        for t in tasks
        if str(t.get("id")) in blocked_ids
        or (t.get("status") == "blocked" and not is_task_done(t.get("status")))
    ]
    if not blocked:
        content = "No blockers."
    else:
        content = "\n".join(f"• {t.get('title')}" for t in blocked)
    return _section("blockers", "Blockers", content, [t.get("id") for t in blocked])


def _scope_change_section(change_requests: List[Dict[str, Any]]) -> Dict[str, Any]:
    pending = [c for c in change_requests if c.get("status") == "pending_approval"]
    if not pending:
        content = "No pending scope changes."
    else:
        content = "\n".join(f"• {c.get('title')} – {c.get('type')}" for c in pending)
    return _section("scope_changes", "Scope changes (pending)", content, [c.get("id") for c in pending])


def build_status_update(
    tasks: List[Dict[str, Any]],
    milestones: List[Dict[str, Any]],
    risks: List[Dict[str, Any]],
    change_requests: List[Dict[str, Any]],
    edges: Optional[List[Dict[str, Any]]] = None,
    next_focus: Optional[str] = None,
    format_type: str = "weekly",
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Assemble the six sections of a status update.

    Args:
        tasks: Tasks in scope.
        milestones: Milestones in scope.
        risks: Risks in scope (any status; only active ones are listed).
        change_requests: Change requests in scope (only pending ones listed).
        edges: Dependency edges between the tasks, used to find blockers.
        next_focus: Free text for the last section.
        format_type: ``executive`` or ``weekly``.
        today: Reference date for upcoming milestones and the heading.

    Returns:
        ``{"format", "generated_on", "sections"}``
    """
    if format_type not in FORMATS:
        raise ValueError(f"Unknown status update format: {format_type}")
    today = today or date.today()

    sections = [
        _progress_section(tasks),
        _milestone_section(milestones, today),
        _risk_section(risks),
        _blocker_section(tasks, edges or []),
        _scope_change_section(change_requests),
        _section("next_focus", "Next focus", (next_focus or "").strip() or DEFAULT_NEXT_FOCUS, []),
    ]
    return {
        "format": format_type,
        "generated_on": today.isoformat(),
        "sections": sections,
    }


def to_markdown(update: Dict[str, Any]) -> str:
    generated_on = parse_date(update.get("generated_on")) or date.today()
    lines = [
        f"# Status Update – {format_long_date(generated_on)}",
        "",
        FORMAT_MARKERS.get(update.get("format"), FORMAT_MARKERS["weekly"]),
        "",
    ]
    lines.extend(f"## {s['title']}\n\n{s['content']}\n" for s in update["sections"])
    return "\n".join(lines)
