"""Shared access-control helpers for org-scoped resources.

Org role comes from the caller profile (``app.deps.get_org_context``);
project roles come from ``project_members`` via the caller's team member
row. Per-org permission overrides are loaded from
``org_permission_overrides`` and applied by ``app.permissions``.
"""

import uuid
from typing import Any, Dict, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.helpers.db_utils import get_org_row, to_uuid
from app.models.db.contact import TeamMember
from app.models.db.organization import OrgPermissionOverride
from app.models.db.portfolio import Project, ProjectMember
from app.permissions import (
    ORG_ROLE_MEMBER,
    Overrides,
    can_manage_projects,
    has_min_org_role,
    has_permission,
    overrides_from_rows,
)


def require_write_access(user: Dict[str, Any]) -> None:
    """Writes need org role ``member`` or above."""
    if not has_min_org_role(user.get("role"), ORG_ROLE_MEMBER):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Viewers cannot modify data",
        )


async def load_overrides(db: AsyncSession, org_id: Any) -> Overrides:
    result = await db.execute(
        select(OrgPermissionOverride).where(
            OrgPermissionOverride.org_id == to_uuid(org_id)
        )
    )
    return overrides_from_rows(
        {"level": o.level, "role": o.role, "permission": o.permission, "granted": o.granted}
        for o in result.scalars().all()
    )


async def require_org_permission(
    db: AsyncSession, user: Dict[str, Any], permission: str
) -> None:
    overrides = await load_overrides(db, user["org_id"])
    if not has_permission(user.get("role"), permission, "org", overrides):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Missing permission: {permission}",
        )


async def get_team_member_for_user(
    db: AsyncSession, org_id: Any, user_id: Any
) -> Optional[TeamMember]:
    result = await db.execute(
        select(TeamMember)
        .where(
            TeamMember.org_id == to_uuid(org_id),
            TeamMember.user_id == to_uuid(user_id),
        )
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_project_role(
    db: AsyncSession, org_id: Any, project_id: uuid.UUID, user_id: Any
) -> Tuple[Optional[str], Optional[uuid.UUID]]:
    """``(project role, team member id)`` for the caller; Nones when not staffed."""
    member = await get_team_member_for_user(db, org_id, user_id)
    if member is None:
        return None, None
    result = await db.execute(
        select(ProjectMember.role).where(
            ProjectMember.project_id == project_id,
            ProjectMember.member_id == member.id,
        )
    )
    return result.scalar_one_or_none(), member.id


async def require_project_access(
    db: AsyncSession,
    user: Dict[str, Any],
    project_id: Any,
    manage: bool = False,
) -> Project:
    """
    Load a project in the caller's org. With ``manage`` the caller also needs
    a non-viewer org role and must not be a project viewer.
    """
    project = await get_org_row(db, Project, project_id, user["org_id"], "Project")
    if manage:
        require_write_access(user)
        project_role, _ = await get_project_role(db, user["org_id"], project.id, user["id"])
        if not can_manage_projects(user.get("role"), project_role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not authorized to modify this project",
            )
    return project
