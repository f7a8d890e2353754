"""
Role-Based Permissions

Static role → permission tables for the four levels of the hierarchy (org,
portfolio, program, project) plus the policy helpers used by routers.
Organizations can grant or revoke individual permissions per role; those
overrides are applied on top of the static tables by ``has_permission``.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

# ============================================================================
# ROLES
# ============================================================================

ORG_ROLE_OWNER = "owner"
ORG_ROLE_ADMIN = "admin"
ORG_ROLE_MANAGER = "manager"
ORG_ROLE_MEMBER = "member"
ORG_ROLE_VIEWER = "viewer"

ORG_ROLES = (
    ORG_ROLE_OWNER,
    ORG_ROLE_ADMIN,
    ORG_ROLE_MANAGER,
    ORG_ROLE_MEMBER,
    ORG_ROLE_VIEWER,
)

ORG_ROLE_RANK: Dict[str, int] = {
    ORG_ROLE_VIEWER: 1,
    ORG_ROLE_MEMBER: 2,
    ORG_ROLE_MANAGER: 3,
    ORG_ROLE_ADMIN: 4,
    ORG_ROLE_OWNER: 5,
}

PROJECT_ROLES = ("project-manager", "team-lead", "contributor", "viewer")
PROGRAM_ROLES = ("program-manager", "contributor", "viewer")
PORTFOLIO_ROLES = ("portfolio-manager", "stakeholder", "viewer")

LEVELS = ("org", "portfolio", "program", "project")

DECLINE_ASSIGNMENT = "decline_assignment"

# ============================================================================
# DEFAULT PERMISSION TABLES
# ============================================================================

DEFAULT_ORG_ROLE_PERMISSIONS: Dict[str, List[str]] = {
    "owner": [
        "manage-org",
        "manage-billing",
        "manage-members",
        "create-projects",
        "delete-projects",
        "view-all-projects",
        "manage-settings",
        DECLINE_ASSIGNMENT,
    ],
    "admin": [
        "manage-members",
        "create-projects",
        "delete-projects",
        "view-all-projects",
        "manage-settings",
        DECLINE_ASSIGNMENT,
    ],
    "manager": [
        "create-projects",
        "delete-projects",
        "view-all-projects",
        DECLINE_ASSIGNMENT,
    ],
    "member": [
        "create-projects",
        "view-all-projects",
        DECLINE_ASSIGNMENT,
    ],
    "viewer": [
        "view-all-projects",
    ],
}

DEFAULT_PROJECT_ROLE_PERMISSIONS: Dict[str, List[str]] = {
    "project-manager": [
        "manage-project",
        "manage-tasks",
        "manage-team",
        "view-project",
        "create-tasks",
        "edit-tasks",
        "delete-tasks",
        "assign-tasks",
        DECLINE_ASSIGNMENT,
    ],
    "team-lead": [
        "manage-tasks",
        "view-project",
        "create-tasks",
        "edit-tasks",
        "assign-tasks",
        DECLINE_ASSIGNMENT,
    ],
    "contributor": [
        "view-project",
        "create-tasks",
        "edit-tasks",
        DECLINE_ASSIGNMENT,
    ],
    "viewer": [
        "view-project",
    ],
}

DEFAULT_PROGRAM_ROLE_PERMISSIONS: Dict[str, List[str]] = {
    "program-manager": ["manage-program", "manage-projects", "view-program"],
    "contributor": ["view-program", "edit-program"],
    "viewer": ["view-program"],
}

DEFAULT_PORTFOLIO_ROLE_PERMISSIONS: Dict[str, List[str]] = {
    "portfolio-manager": ["manage-portfolio", "view-portfolio", "make-decisions"],
    "stakeholder": ["view-portfolio", "make-decisions"],
    "viewer": ["view-portfolio"],
}

_TABLES: Dict[str, Dict[str, List[str]]] = {
    "org": DEFAULT_ORG_ROLE_PERMISSIONS,
    "portfolio": DEFAULT_PORTFOLIO_ROLE_PERMISSIONS,
    "program": DEFAULT_PROGRAM_ROLE_PERMISSIONS,
    "project": DEFAULT_PROJECT_ROLE_PERMISSIONS,
}

# (level, role, permission) -> granted
Overrides = Mapping[Tuple[str, str, str], bool]


def all_permissions(level: str) -> List[str]:
    """Every permission key known at ``level``, in first-seen order."""
    seen: List[str] = []
    for permissions in _TABLES.get(level, {}).values():
        for permission in permissions:
            if permission not in seen:
                seen.append(permission)
    return seen


def roles_for_level(level: str) -> List[str]:
    return list(_TABLES.get(level, {}).keys())


# ============================================================================
# ROLE MAPPING
# ============================================================================


def map_database_role(role: Optional[str]) -> str:
    """Map a raw ``user_roles.role`` value to a known org role (default viewer)."""
    if not role:
        return ORG_ROLE_VIEWER
    return role if role in ORG_ROLES else ORG_ROLE_VIEWER


def has_min_org_role(role: Optional[str], minimum: str) -> bool:
    return ORG_ROLE_RANK.get(map_database_role(role), 0) >= ORG_ROLE_RANK[minimum]


# ============================================================================
# PERMISSION CHECKS
# ============================================================================


def get_role_permissions(
    role: str, level: str = "org", overrides: Optional[Overrides] = None
) -> Set[str]:
    """Effective permissions for ``role`` at ``level`` after org overrides."""
    granted = set(_TABLES.get(level, {}).get(role, []))
    for (o_level, o_role, permission), allowed in (overrides or {}).items():
        if o_level != level or o_role != role:
            continue
        if allowed:
            granted.add(permission)
        else:
            granted.discard(permission)
    return granted


def has_permission(
    role: Optional[str],
    permission: str,
    level: str = "org",
    overrides: Optional[Overrides] = None,
) -> bool:
    if not role:
        return False
    return permission in get_role_permissions(role, level, overrides)


def build_permission_matrix(overrides: Optional[Overrides] = None) -> Dict[str, Dict[str, List[str]]]:
    """``{level: {role: sorted effective permissions}}`` for every level."""
    return {
        level: {
            role: sorted(get_role_permissions(role, level, overrides))
            for role in roles_for_level(level)
        }
        for level in LEVELS
    }


def overrides_from_rows(rows: Iterable[Mapping]) -> Dict[Tuple[str, str, str], bool]:
    return {
        (row.get("level") or "org", row["role"], row["permission"]): bool(row["granted"])
        for row in rows
    }


# ============================================================================
# POLICIES
# ============================================================================


def can_manage_org(org_role: Optional[str]) -> bool:
    return org_role in (ORG_ROLE_OWNER, ORG_ROLE_ADMIN)


def can_manage_org_members(org_role: Optional[str]) -> bool:
    return org_role in (ORG_ROLE_OWNER, ORG_ROLE_ADMIN)


def can_manage_projects(org_role: Optional[str], project_role: Optional[str] = None) -> bool:
    return org_role != ORG_ROLE_VIEWER and project_role != "viewer"


def can_decline_assignment(
    role: Optional[str], level: str = "org", overrides: Optional[Overrides] = None
) -> bool:
    return has_permission(role, DECLINE_ASSIGNMENT, level, overrides)


def can_manage_task_for_user(
    org_role: Optional[str],
    project_role: Optional[str] = None,
    current_member_id: Optional[str] = None,
    task_assignee_id: Optional[str] = None,
) -> bool:
    """The assignee, a project manager, or an org owner/admin/manager."""
    if current_member_id and task_assignee_id and str(current_member_id) == str(task_assignee_id):
        return True
    if project_role == "project-manager":
        return True
    return org_role in (ORG_ROLE_OWNER, ORG_ROLE_ADMIN, ORG_ROLE_MANAGER)
