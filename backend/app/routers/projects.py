"""Projects router: CRUD, workflow, project staffing, drag-to-reschedule
and the critical path view."""

import logging
import uuid
from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_org_context, _safe_error
from app.helpers.db_utils import apply_updates, get_org_row, row_to_dict, to_uuid
from app.models.db.contact import Contact, TeamMember
from app.models.db.portfolio import Program, Project, ProjectMember
from app.models.org_models import ProjectMemberCreate, ProjectMemberUpdate
from app.models.project_models import ProjectCreate, ProjectReschedule, ProjectUpdate
from app.services.access_control import (
    get_team_member_for_user,
    require_org_permission,
    require_project_access,
)
from app.services.activity_service import ActivityService
from app.services.dependency_service import DependencyService
from app.timeline import calculate_drag_offset_days, reschedule_dates
from app.workflow import get_project_workflow, is_valid_project_status

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["projects"])

PROJECT_FIELDS = {
    "program_id",
    "name",
    "description",
    "status",
    "progress",
    "budget",
    "allocated_budget",
    "actual_cost",
    "start_date",
    "end_date",
    "custom_statuses",
    "custom_task_statuses",
    "custom_task_priorities",
}


def _check_project_status(project_status, custom_statuses) -> None:
    if project_status is not None and not is_valid_project_status(project_status, custom_statuses):
        raise HTTPException(status_code=400, detail=f"Invalid project status: {project_status}")


# ---------------------------------------------------------------------------
# GET /projects
# ---------------------------------------------------------------------------


@router.get("/projects")
async def list_projects(
    program_id: uuid.UUID = Query(None),
    status_filter: str = Query(None, alias="status"),
    include_archived: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    query = select(Project).where(Project.org_id == to_uuid(user["org_id"]))
    if program_id:
        query = query.where(Project.program_id == program_id)
    if status_filter:
        query = query.where(Project.status == status_filter)
    if not include_archived:
        query = query.where(Project.archived_at.is_(None))
    try:
        result = await db.execute(query.order_by(Project.created_at.desc()))
        return [row_to_dict(p) for p in result.scalars().all()]
    except Exception as e:
        logger.error("Failed to list projects: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("listing projects", e),
        ) from e


@router.get("/projects/{project_id}")
async def get_project(
    project_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    project = await require_project_access(db, user, project_id)
    data = row_to_dict(project)
    data["workflow"] = get_project_workflow(data)
    return data


@router.get("/projects/{project_id}/workflow")
async def get_workflow(
    project_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Effective statuses and priorities: the project's custom lists or the defaults."""
    project = await require_project_access(db, user, project_id)
    return get_project_workflow(row_to_dict(project))


# ---------------------------------------------------------------------------
# POST /projects, PATCH /projects/{id}, DELETE /projects/{id}
# ---------------------------------------------------------------------------


@router.post("/projects", status_code=status.HTTP_201_CREATED)
async def create_project(
    body: ProjectCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Create a project; the creator is staffed on it as project manager."""
    await require_org_permission(db, user, "create-projects")
    data = body.model_dump()
    if data["program_id"]:
        await get_org_row(db, Program, data["program_id"], user["org_id"], "Program")
    _check_project_status(data["status"], data["custom_statuses"])

    project = Project(org_id=to_uuid(user["org_id"]), **data)
    db.add(project)
    await db.flush()

    creator = await get_team_member_for_user(db, user["org_id"], user["id"])
    if creator is not None:
        db.add(
            ProjectMember(
                org_id=project.org_id,
                project_id=project.id,
                member_id=creator.id,
                role="project-manager",
            )
        )
        await db.flush()
    await db.refresh(project)

    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "project_created", f"Created project: {project.name}",
        entity_type="project", entity_id=project.id,
    )
    return row_to_dict(project)


@router.patch("/projects/{project_id}")
async def update_project(
    project_id: uuid.UUID,
    body: ProjectUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    project = await require_project_access(db, user, project_id, manage=True)
    changes = body.model_dump(exclude_unset=True)
    if changes.get("program_id"):
        await get_org_row(db, Program, changes["program_id"], user["org_id"], "Program")
    _check_project_status(
        changes.get("status"), changes.get("custom_statuses", project.custom_statuses)
    )

    changed = apply_updates(project, changes, PROJECT_FIELDS)
    if changed:
        await db.flush()
        await db.refresh(project)
        await ActivityService.log_activity(
            db, user["org_id"], user["id"], "project_updated", f"Updated project: {project.name}",
            entity_type="project", entity_id=project.id, details={"fields": changed},
        )
    return row_to_dict(project)


@router.post("/projects/{project_id}/archive")
async def archive_project(
    project_id: uuid.UUID,
    archived: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    project = await require_project_access(db, user, project_id, manage=True)
    project.archived_at = datetime.now(timezone.utc) if archived else None
    await db.flush()
    await db.refresh(project)
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "project_updated",
        f"{'Archived' if archived else 'Restored'} project: {project.name}",
        entity_type="project", entity_id=project.id, details={"archived": archived},
    )
    return row_to_dict(project)


@router.delete("/projects/{project_id}")
async def delete_project(
    project_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Delete a project with its tasks, milestones, risks and change requests."""
    await require_org_permission(db, user, "delete-projects")
    project = await require_project_access(db, user, project_id, manage=True)
    name = project.name
    await db.delete(project)
    await db.flush()
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "project_deleted", f"Deleted project: {name}",
        entity_type="project", entity_id=project_id,
    )
    return {"success": True}


# ---------------------------------------------------------------------------
# POST /projects/{id}/reschedule
# ---------------------------------------------------------------------------


@router.post("/projects/{project_id}/reschedule")
async def reschedule_project(
    project_id: uuid.UUID,
    body: ProjectReschedule,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Shift a project's start and end dates, either by a day offset or from
    the pixel geometry of a Gantt drag."""
    project = await require_project_access(db, user, project_id, manage=True)
    if body.offset_days is not None:
        offset = body.offset_days
    else:
        offset = calculate_drag_offset_days(
            body.mouse_x, body.original_start_px, body.day_width_px, body.grab_offset_px
        )
    if offset == 0:
        return {"offset_days": 0, "project": row_to_dict(project)}

    shifted = reschedule_dates(project.start_date, project.end_date, offset)
    if project.start_date:
        project.start_date = date.fromisoformat(shifted["start_date"])
    if project.end_date:
        project.end_date = date.fromisoformat(shifted["end_date"])
    await db.flush()
    await db.refresh(project)
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "project_updated", f"Rescheduled project: {project.name}",
        entity_type="project", entity_id=project.id, details={"offset_days": offset},
    )
    return {"offset_days": offset, "project": row_to_dict(project)}


# ---------------------------------------------------------------------------
# GET /projects/{id}/critical-path
# ---------------------------------------------------------------------------


@router.get("/projects/{project_id}/critical-path")
async def get_critical_path(
    project_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    await require_project_access(db, user, project_id)
    return await DependencyService.project_critical_path(db, user["org_id"], project_id)


# ---------------------------------------------------------------------------
# Project members
# ---------------------------------------------------------------------------


@router.get("/projects/{project_id}/members")
async def list_project_members(
    project_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    project = await require_project_access(db, user, project_id)
    result = await db.execute(
        select(ProjectMember, Contact)
        .join(TeamMember, TeamMember.id == ProjectMember.member_id)
        .join(Contact, Contact.id == TeamMember.contact_id)
        .where(ProjectMember.project_id == project.id)
        .order_by(Contact.name)
    )
    members = []
    for membership, contact in result.all():
        data = row_to_dict(membership)
        data["name"] = contact.name
        data["email"] = contact.email
        members.append(data)
    return members


@router.post("/projects/{project_id}/members", status_code=status.HTTP_201_CREATED)
async def add_project_member(
    project_id: uuid.UUID,
    body: ProjectMemberCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    project = await require_project_access(db, user, project_id, manage=True)
    member = await get_org_row(db, TeamMember, body.member_id, user["org_id"], "Team member")
    membership = ProjectMember(
        org_id=project.org_id, project_id=project.id, member_id=member.id, role=body.role
    )
    try:
        async with db.begin_nested():
            db.add(membership)
    except IntegrityError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Team member is already on this project",
        ) from e
    await db.refresh(membership)
    return row_to_dict(membership)


@router.patch("/projects/{project_id}/members/{membership_id}")
async def update_project_member(
    project_id: uuid.UUID,
    membership_id: uuid.UUID,
    body: ProjectMemberUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    project = await require_project_access(db, user, project_id, manage=True)
    membership = await get_org_row(db, ProjectMember, membership_id, user["org_id"], "Project member")
    if membership.project_id != project.id:
        raise HTTPException(status_code=404, detail="Project member not found")
    membership.role = body.role
    await db.flush()
    await db.refresh(membership)
    return row_to_dict(membership)


@router.delete("/projects/{project_id}/members/{membership_id}")
async def remove_project_member(
    project_id: uuid.UUID,
    membership_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    project = await require_project_access(db, user, project_id, manage=True)
    membership = await get_org_row(db, ProjectMember, membership_id, user["org_id"], "Project member")
    if membership.project_id != project.id:
        raise HTTPException(status_code=404, detail="Project member not found")
    await db.delete(membership)
    await db.flush()
    return {"success": True}
