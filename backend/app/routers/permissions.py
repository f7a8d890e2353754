"""Permissions router: the caller's effective rights, the org-wide role
matrix and per-org permission overrides."""

import logging
import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_org_context, require_min_org_role
from app.helpers.db_utils import get_org_row, row_to_dict, to_uuid
from app.models.db.organization import OrgPermissionOverride
from app.models.db.portfolio import ProjectMember
from app.models.org_models import PermissionOverrideUpsert
from app.permissions import (
    ORG_ROLE_ADMIN,
    build_permission_matrix,
    get_role_permissions,
    map_database_role,
)
from app.services.access_control import get_team_member_for_user, load_overrides
from app.services.activity_service import ActivityService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["permissions"])


# ---------------------------------------------------------------------------
# GET /permissions/me
# ---------------------------------------------------------------------------


@router.get("/permissions/me")
async def get_my_permissions(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Org role, effective org permissions and per-project roles of the caller."""
    role = map_database_role(user.get("role"))
    overrides = await load_overrides(db, user["org_id"])

    project_roles = {}
    member = await get_team_member_for_user(db, user["org_id"], user["id"])
    if member is not None:
        result = await db.execute(
            select(ProjectMember.project_id, ProjectMember.role).where(
                ProjectMember.member_id == member.id
            )
        )
        project_roles = {str(project_id): p_role for project_id, p_role in result.all()}

    return {
        "org_role": role,
        "permissions": sorted(get_role_permissions(role, "org", overrides)),
        "project_roles": {
            project_id: {
                "role": p_role,
                "permissions": sorted(get_role_permissions(p_role, "project", overrides)),
            }
            for project_id, p_role in project_roles.items()
        },
    }


# ---------------------------------------------------------------------------
# GET /permissions/matrix
# ---------------------------------------------------------------------------


@router.get("/permissions/matrix")
async def get_permission_matrix(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    result = await db.execute(
        select(OrgPermissionOverride)
        .where(OrgPermissionOverride.org_id == to_uuid(user["org_id"]))
        .order_by(OrgPermissionOverride.level, OrgPermissionOverride.role)
    )
    rows = list(result.scalars().all())
    overrides = {(o.level, o.role, o.permission): o.granted for o in rows}
    return {
        "matrix": build_permission_matrix(overrides),
        "overrides": [row_to_dict(o) for o in rows],
    }


# ---------------------------------------------------------------------------
# PUT /permissions/overrides, DELETE /permissions/overrides/{id}
# ---------------------------------------------------------------------------


@router.put("/permissions/overrides", status_code=status.HTTP_200_OK)
async def upsert_override(
    body: PermissionOverrideUpsert,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Grant or revoke one permission for a role; replaces an existing override."""
    require_min_org_role(user, ORG_ROLE_ADMIN)
    org_id = to_uuid(user["org_id"])
    result = await db.execute(
        select(OrgPermissionOverride).where(
            OrgPermissionOverride.org_id == org_id,
            OrgPermissionOverride.level == body.level,
            OrgPermissionOverride.role == body.role,
            OrgPermissionOverride.permission == body.permission,
        )
    )
    override = result.scalar_one_or_none()
    if override is None:
        override = OrgPermissionOverride(org_id=org_id, **body.model_dump())
        db.add(override)
    else:
        override.granted = body.granted
    await db.flush()
    await db.refresh(override)

    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "settings_updated",
        f"{'Granted' if body.granted else 'Revoked'} {body.permission} for {body.level} role {body.role}",
        entity_type="permission_override", entity_id=override.id,
    )
    return row_to_dict(override)


@router.delete("/permissions/overrides/{override_id}")
async def delete_override(
    override_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_min_org_role(user, ORG_ROLE_ADMIN)
    override = await get_org_row(
        db, OrgPermissionOverride, override_id, user["org_id"], "Permission override"
    )
    await db.delete(override)
    await db.flush()
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "settings_updated",
        f"Removed override {override.permission} for {override.level} role {override.role}",
        entity_type="permission_override", entity_id=override_id,
    )
    return {"success": True}
