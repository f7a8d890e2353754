"""Milestones and personal schedule blocks router."""

import logging
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_org_context, _safe_error
from app.helpers.db_utils import apply_updates, get_org_row, row_to_dict, to_uuid
from app.models.db.contact import TeamMember
from app.models.db.milestone import Milestone, ScheduleBlock
from app.models.db.portfolio import Program
from app.models.project_models import (
    MilestoneCreate,
    MilestoneUpdate,
    ScheduleBlockCreate,
    ScheduleBlockUpdate,
)
from app.services.access_control import require_project_access, require_write_access
from app.services.activity_service import ActivityService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["milestones"])

MILESTONE_FIELDS = {"title", "description", "due_date", "completed"}
BLOCK_FIELDS = {"title", "start_utc", "end_utc"}


# ---------------------------------------------------------------------------
# Milestones
# ---------------------------------------------------------------------------


@router.get("/milestones")
async def list_milestones(
    project_id: uuid.UUID = Query(None),
    program_id: uuid.UUID = Query(None),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    query = select(Milestone).where(Milestone.org_id == to_uuid(user["org_id"]))
    if project_id:
        query = query.where(Milestone.project_id == project_id)
    if program_id:
        query = query.where(Milestone.program_id == program_id)
    try:
        result = await db.execute(query.order_by(Milestone.due_date))
        return [row_to_dict(m) for m in result.scalars().all()]
    except Exception as e:
        logger.error("Failed to list milestones: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("listing milestones", e),
        ) from e


@router.post("/milestones", status_code=status.HTTP_201_CREATED)
async def create_milestone(
    body: MilestoneCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    if body.project_id:
        await require_project_access(db, user, body.project_id, manage=True)
    if body.program_id:
        await get_org_row(db, Program, body.program_id, user["org_id"], "Program")

    milestone = Milestone(org_id=to_uuid(user["org_id"]), **body.model_dump())
    db.add(milestone)
    await db.flush()
    await db.refresh(milestone)
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "milestone_created", f"Created milestone: {milestone.title}",
        entity_type="milestone", entity_id=milestone.id,
    )
    return row_to_dict(milestone)


@router.patch("/milestones/{milestone_id}")
async def update_milestone(
    milestone_id: uuid.UUID,
    body: MilestoneUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    milestone = await get_org_row(db, Milestone, milestone_id, user["org_id"], "Milestone")
    if milestone.project_id:
        await require_project_access(db, user, milestone.project_id, manage=True)
    changed = apply_updates(milestone, body.model_dump(exclude_unset=True), MILESTONE_FIELDS)
    if changed:
        await db.flush()
        await db.refresh(milestone)
        await ActivityService.log_activity(
            db, user["org_id"], user["id"], "milestone_updated", f"Updated milestone: {milestone.title}",
            entity_type="milestone", entity_id=milestone.id, details={"fields": changed},
        )
    return row_to_dict(milestone)


@router.delete("/milestones/{milestone_id}")
async def delete_milestone(
    milestone_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    milestone = await get_org_row(db, Milestone, milestone_id, user["org_id"], "Milestone")
    if milestone.project_id:
        await require_project_access(db, user, milestone.project_id, manage=True)
    title = milestone.title
    await db.delete(milestone)
    await db.flush()
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "milestone_deleted", f"Deleted milestone: {title}",
        entity_type="milestone", entity_id=milestone_id,
    )
    return {"success": True}


# ---------------------------------------------------------------------------
# Schedule blocks
# ---------------------------------------------------------------------------


@router.get("/schedule-blocks")
async def list_schedule_blocks(
    assignee_id: uuid.UUID = Query(None),
    start: datetime = Query(None, description="Only blocks ending after this instant"),
    end: datetime = Query(None, description="Only blocks starting before this instant"),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """List blocks overlapping ``[start, end)``, optionally for one assignee."""
    query = select(ScheduleBlock).where(ScheduleBlock.org_id == to_uuid(user["org_id"]))
    if assignee_id:
        query = query.where(ScheduleBlock.assignee_id == assignee_id)
    if start:
        query = query.where(ScheduleBlock.end_utc > start)
    if end:
        query = query.where(ScheduleBlock.start_utc < end)
    result = await db.execute(query.order_by(ScheduleBlock.start_utc))
    return [row_to_dict(b) for b in result.scalars().all()]


@router.post("/schedule-blocks", status_code=status.HTTP_201_CREATED)
async def create_schedule_block(
    body: ScheduleBlockCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    await get_org_row(db, TeamMember, body.assignee_id, user["org_id"], "Team member")
    block = ScheduleBlock(org_id=to_uuid(user["org_id"]), **body.model_dump())
    db.add(block)
    await db.flush()
    await db.refresh(block)
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "schedule_block_created", f"Scheduled block: {block.title}",
        entity_type="schedule_block", entity_id=block.id,
    )
    return row_to_dict(block)


@router.patch("/schedule-blocks/{block_id}")
async def update_schedule_block(
    block_id: uuid.UUID,
    body: ScheduleBlockUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    block = await get_org_row(db, ScheduleBlock, block_id, user["org_id"], "Schedule block")
    changes = body.model_dump(exclude_unset=True)
    start_utc = changes.get("start_utc") or block.start_utc
    end_utc = changes.get("end_utc") or block.end_utc
    if end_utc <= start_utc:
        raise HTTPException(status_code=400, detail="end_utc must be after start_utc")
    changed = apply_updates(block, changes, BLOCK_FIELDS)
    if changed:
        await db.flush()
        await db.refresh(block)
        await ActivityService.log_activity(
            db, user["org_id"], user["id"], "schedule_block_updated", f"Updated block: {block.title}",
            entity_type="schedule_block", entity_id=block.id, details={"fields": changed},
        )
    return row_to_dict(block)


@router.delete("/schedule-blocks/{block_id}")
async def delete_schedule_block(
    block_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    block = await get_org_row(db, ScheduleBlock, block_id, user["org_id"], "Schedule block")
    title = block.title
    await db.delete(block)
    await db.flush()
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "schedule_block_deleted", f"Removed block: {title}",
        entity_type="schedule_block", entity_id=block_id,
    )
    return {"success": True}
