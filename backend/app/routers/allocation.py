"""Team allocation router: workload per member and the org's scoring weights."""

import logging
import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.allocation import get_task_points_breakdown
from app.deps import get_db, get_org_context, require_min_org_role, _safe_error
from app.helpers.db_utils import get_org_row, row_to_dict
from app.models.db.task import Task
from app.models.masterbook_models import AllocationWeightsUpdate
from app.permissions import ORG_ROLE_ADMIN
from app.services.activity_service import ActivityService
from app.services.allocation_service import AllocationService
from app.timeframe import DEFAULT_TIME_FRAME, TIME_FRAMES, get_time_frame_label

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["allocation"])


# ---------------------------------------------------------------------------
# GET /allocation
# ---------------------------------------------------------------------------


@router.get("/allocation")
async def get_team_allocation(
    time_frame: str = Query(DEFAULT_TIME_FRAME),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Weighted workload per team member for a time frame.

    Each row carries allocated points, points per week, capacity for the
    frame, the allocation percentage and an over-allocation flag.
    """
    if time_frame not in TIME_FRAMES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid time_frame. Must be one of: {', '.join(TIME_FRAMES)}",
        )
    try:
        summary = await AllocationService.team_allocation(
            db, user["org_id"], time_frame, date.today()
        )
    except Exception as e:
        logger.error("Failed to compute allocation for org %s: %s", user["org_id"], e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("computing allocation", e),
        ) from e
    summary["time_frame_label"] = get_time_frame_label(time_frame)
    return summary


@router.get("/allocation/tasks/{task_id}/points")
async def get_task_points(
    task_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Every factor behind a task's allocation points."""
    task = await get_org_row(db, Task, task_id, user["org_id"], "Task")
    weights = await AllocationService.get_weights(db, user["org_id"])
    return {
        "task_id": str(task.id),
        **get_task_points_breakdown(row_to_dict(task), weights, date.today()),
    }


# ---------------------------------------------------------------------------
# GET/PUT/DELETE /allocation/weights
# ---------------------------------------------------------------------------


@router.get("/allocation/weights")
async def get_weights(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    return await AllocationService.get_weights(db, user["org_id"])


@router.put("/allocation/weights")
async def update_weights(
    body: AllocationWeightsUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Replace the org's weights; categories left out keep their defaults."""
    require_min_org_role(user, ORG_ROLE_ADMIN)
    weights = await AllocationService.save_weights(
        db, user["org_id"], user["id"], body.model_dump(exclude_none=True)
    )
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "settings_updated", "Updated allocation weights",
        entity_type="allocation_settings",
    )
    return weights


@router.delete("/allocation/weights")
async def reset_weights(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_min_org_role(user, ORG_ROLE_ADMIN)
    weights = await AllocationService.reset_weights(db, user["org_id"])
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "settings_updated", "Reset allocation weights",
        entity_type="allocation_settings",
    )
    return weights
