"""Timeline router: task Gantt, project Gantt and month calendar views."""

import logging
import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_org_context
from app.helpers.db_utils import row_to_dict, to_uuid
from app.models.db.milestone import Milestone
from app.models.db.portfolio import Project
from app.services.task_service import TaskService
from app.timeline import (
    build_calendar_month,
    build_project_gantt,
    build_task_gantt,
    navigate_range,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["timeline"])


@router.get("/timeline/tasks")
async def task_timeline(
    project_id: uuid.UUID = Query(None),
    assignee_id: uuid.UUID = Query(None),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Task Gantt on a fixed 44px-per-day grid."""
    tasks = await TaskService.list_tasks(
        db, user["org_id"], project_id=project_id, assignee_id=assignee_id
    )
    return build_task_gantt(tasks, date.today())


@router.get("/timeline/projects")
async def project_timeline(
    program_id: uuid.UUID = Query(None),
    range_start: date = Query(None),
    range_end: date = Query(None),
    navigate: str = Query(None, pattern="^(prev|next)$"),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Project Gantt with percentage bars.

    Pass the currently shown ``range_start``/``range_end`` together with
    ``navigate`` to page four weeks back or forward.
    """
    if (range_start is None) != (range_end is None):
        raise HTTPException(status_code=400, detail="range_start and range_end go together")
    if range_start and range_end and range_end < range_start:
        raise HTTPException(status_code=400, detail="range_end must not be before range_start")

    query = select(Project).where(
        Project.org_id == to_uuid(user["org_id"]), Project.archived_at.is_(None)
    )
    if program_id:
        query = query.where(Project.program_id == program_id)
    result = await db.execute(query.order_by(Project.start_date, Project.name))
    projects = [row_to_dict(p) for p in result.scalars().all()]

    date_range = (range_start, range_end) if range_start else None
    if navigate:
        if date_range is None:
            raise HTTPException(status_code=400, detail="navigate needs range_start and range_end")
        date_range = navigate_range(date_range, navigate)
    return build_project_gantt(projects, date.today(), date_range)


@router.get("/timeline/calendar")
async def calendar_month(
    year: int = Query(..., ge=1970, le=2100),
    month: int = Query(..., ge=1, le=12),
    project_id: uuid.UUID = Query(None),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Monday-first month grid with tasks and milestones placed on their due day."""
    tasks = await TaskService.list_tasks(db, user["org_id"], project_id=project_id)
    query = select(Milestone).where(Milestone.org_id == to_uuid(user["org_id"]))
    if project_id:
        query = query.where(Milestone.project_id == project_id)
    result = await db.execute(query)

    items = [{"kind": "task", **t} for t in tasks]
    items += [{"kind": "milestone", **row_to_dict(m)} for m in result.scalars().all()]
    return build_calendar_month(year, month, items, date.today())
