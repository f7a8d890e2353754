"""Over-allocation detection for the masterbook resource conflicts view.

Members carry ``allocation`` as a percentage of their capacity (see
``app.allocation.summarize_team_allocation``) and ``capacity`` as the
percentage they can take on, 100 when unset.
"""

from typing import Any, Dict, Iterable, List, Optional

DEFAULT_CAPACITY_PERCENT = 100
SUGGESTED_ACTIONS = ("reallocate", "extend_timeline", "reduce_scope")


def build_resource_conflicts(
    members: Iterable[Dict[str, Any]],
    project_ids: Optional[List[Any]] = None,
) -> List[Dict[str, Any]]:
    """
    One conflict per member whose allocation exceeds capacity.

    With ``project_ids``, members not working on any of those projects are
    skipped and each conflict lists only the matching projects. Results are
    ordered by how far over capacity the member is, worst first.
    """
    scope = {str(p) for p in project_ids} if project_ids else None
    conflicts: List[Dict[str, Any]] = []

    for member in members:
        member_projects = [str(p) for p in member.get("project_ids") or []]
        if scope is not None:
            member_projects = [p for p in member_projects if p in scope]
            if not member_projects:
                continue

        capacity = member.get("capacity_percent") or DEFAULT_CAPACITY_PERCENT
        allocation = member.get("allocation_percentage") or 0
        if allocation <= capacity:
            continue

        conflicts.append(
            {
                "member_id": str(member.get("id")),
                "member_name": member.get("name"),
                "project_ids": member_projects,
                "allocation_total": allocation,
                "capacity": capacity,
                "over_allocation_by": allocation - capacity,
                "suggested_actions": list(SUGGESTED_ACTIONS),
            }
        )

    conflicts.sort(key=lambda c: c["over_allocation_by"], reverse=True)
    return conflicts
