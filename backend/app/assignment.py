"""
Assignment Decline and Reassignment

When an assignee declines a task, the next candidate is picked from the
available team members: members matching the preferred role first, then the
lowest workload (members without a workload figure count as 50%).
Members with ``availability`` explicitly False are never proposed.
"""

from typing import Any, Dict, Iterable, List, Optional

DEFAULT_WORKLOAD = 50
DEFAULT_OPTIONS_LIMIT = 5
NO_ASSIGNEE_REASON = "No available team members to reassign"


def _workload(member: Dict[str, Any]) -> float:
    workload = member.get("workload")
    return DEFAULT_WORKLOAD if workload is None else workload


def _available(members: Iterable[Dict[str, Any]], exclude_ids: Iterable[Any]) -> List[Dict[str, Any]]:
    excluded = {str(member_id) for member_id in exclude_ids if member_id is not None}
    return [
        member
        for member in members
        if str(member.get("id")) not in excluded and member.get("availability") is not False
    ]


def find_next_assignee(
    members: List[Dict[str, Any]],
    exclude_ids: Iterable[Any],
    preferred_role: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    candidates = _available(members, exclude_ids)
    if not candidates:
        return None

    def sort_key(member: Dict[str, Any]):
        role_rank = 0
        if preferred_role:
            roles = member.get("preferred_roles") or []
            role = member.get("role")
            role_rank = 0 if role == preferred_role or preferred_role in roles else 1
        return (role_rank, _workload(member))

    # sorted() is stable, so ties keep the caller's ordering
    return sorted(candidates, key=sort_key)[0]


def handle_assignment_decline(
    declined_by: Any,
    members: List[Dict[str, Any]],
    previous_decliners: Optional[List[Any]] = None,
    preferred_role: Optional[str] = None,
) -> Dict[str, Any]:
    """Pick a new assignee after ``declined_by`` turns a task down.

    Returns ``{"success": True, "assigned_to": member}`` or
    ``{"success": False, "reason": ...}``.
    """
    excluded = list(previous_decliners or []) + [declined_by]
    next_assignee = find_next_assignee(members, excluded, preferred_role)
    if next_assignee is None:
        return {"success": False, "assigned_to": None, "reason": NO_ASSIGNEE_REASON}
    return {"success": True, "assigned_to": next_assignee, "reason": None}


def get_reassignment_options(
    members: List[Dict[str, Any]],
    exclude_ids: Iterable[Any],
    limit: int = DEFAULT_OPTIONS_LIMIT,
) -> List[Dict[str, Any]]:
    """Available members ordered by ascending workload, at most ``limit``."""
    return sorted(_available(members, exclude_ids), key=_workload)[:limit]
