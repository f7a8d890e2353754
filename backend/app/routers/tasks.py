"""Tasks router: tasks, Kanban reordering, subtasks, assignment decline and
per-task dependency views."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_org_context, _safe_error
from app.helpers.db_utils import get_org_row, row_to_dict
from app.models.db.task import Subtask, Task
from app.models.project_models import (
    SubtaskCreate,
    SubtaskUpdate,
    TaskCreate,
    TaskDecline,
    TaskReorder,
    TaskUpdate,
)
from app.services.access_control import require_project_access, require_write_access
from app.services.dependency_service import DependencyService
from app.services.task_service import TaskService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["tasks"])


async def _task_for_write(db: AsyncSession, user: dict, task_id: uuid.UUID) -> Task:
    task = await get_org_row(db, Task, task_id, user["org_id"], "Task")
    await require_project_access(db, user, task.project_id, manage=True)
    return task


# ---------------------------------------------------------------------------
# GET /tasks
# ---------------------------------------------------------------------------


@router.get("/tasks")
async def list_tasks(
    project_id: uuid.UUID = Query(None),
    assignee_id: uuid.UUID = Query(None),
    status_filter: str = Query(None, alias="status"),
    time_frame: str = Query(None),
    include_archived: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """List tasks, optionally narrowed to a project, assignee, status or
    allocation time frame."""
    try:
        return await TaskService.list_tasks(
            db,
            user["org_id"],
            project_id=project_id,
            assignee_id=assignee_id,
            status_filter=status_filter,
            time_frame=time_frame,
            include_archived=include_archived,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to list tasks: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("listing tasks", e),
        ) from e


@router.get("/tasks/{task_id}")
async def get_task(
    task_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    task = await get_org_row(db, Task, task_id, user["org_id"], "Task")
    return row_to_dict(task)


# ---------------------------------------------------------------------------
# POST /tasks, PATCH /tasks/{id}, DELETE /tasks/{id}
# ---------------------------------------------------------------------------


@router.post("/tasks", status_code=status.HTTP_201_CREATED)
async def create_task(
    body: TaskCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    await require_project_access(db, user, body.project_id, manage=True)
    task = await TaskService.create_task(db, user, body.model_dump())
    return row_to_dict(task)


@router.patch("/tasks/{task_id}")
async def update_task(
    task_id: uuid.UUID,
    body: TaskUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    await _task_for_write(db, user, task_id)
    task = await TaskService.update_task(db, user, task_id, body.model_dump(exclude_unset=True))
    return row_to_dict(task)


@router.post("/tasks/{task_id}/archive")
async def archive_task(
    task_id: uuid.UUID,
    archived: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    await _task_for_write(db, user, task_id)
    task = await TaskService.set_archived(db, user, task_id, archived)
    return row_to_dict(task)


@router.delete("/tasks/{task_id}")
async def delete_task(
    task_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    await _task_for_write(db, user, task_id)
    await TaskService.delete_task(db, user, task_id)
    return {"success": True}


# ---------------------------------------------------------------------------
# POST /projects/{id}/tasks/reorder
# ---------------------------------------------------------------------------


@router.post("/projects/{project_id}/tasks/reorder")
async def reorder_tasks(
    project_id: uuid.UUID,
    body: TaskReorder,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Persist a Kanban drop: new order within a column, optionally moving
    the tasks into that column's status."""
    await require_project_access(db, user, project_id, manage=True)
    tasks = await TaskService.reorder(db, user, project_id, body.task_ids, body.status)
    return [row_to_dict(t) for t in tasks]


# ---------------------------------------------------------------------------
# Decline and reassignment
# ---------------------------------------------------------------------------


@router.post("/tasks/{task_id}/decline")
async def decline_task(
    task_id: uuid.UUID,
    body: TaskDecline,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Decline an assignment; the task moves to the least loaded available
    member. ``success`` is false when nobody else can take it."""
    return await TaskService.decline_task(
        db, user, task_id, reason=body.reason, preferred_role=body.preferred_role
    )


@router.get("/tasks/{task_id}/reassignment-options")
async def get_reassignment_options(
    task_id: uuid.UUID,
    limit: int = Query(5, ge=1, le=20),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    return await TaskService.reassignment_options(db, user["org_id"], task_id, limit)


# ---------------------------------------------------------------------------
# Dependencies of a task
# ---------------------------------------------------------------------------


@router.get("/tasks/{task_id}/dependencies")
async def list_task_dependencies(
    task_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    return await DependencyService.list_for_task(db, user["org_id"], task_id)


@router.get("/tasks/{task_id}/downstream-impact")
async def get_downstream_impact(
    task_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Tasks that transitively wait on this one."""
    return await DependencyService.downstream_impact(db, user["org_id"], task_id)


# ---------------------------------------------------------------------------
# Subtasks
# ---------------------------------------------------------------------------


@router.get("/tasks/{task_id}/subtasks")
async def list_subtasks(
    task_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    subtasks = await TaskService.list_subtasks(db, user["org_id"], task_id)
    return [row_to_dict(s) for s in subtasks]


@router.post("/tasks/{task_id}/subtasks", status_code=status.HTTP_201_CREATED)
async def create_subtask(
    task_id: uuid.UUID,
    body: SubtaskCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    await _task_for_write(db, user, task_id)
    subtask = await TaskService.create_subtask(db, user["org_id"], task_id, body.model_dump())
    return row_to_dict(subtask)


@router.patch("/subtasks/{subtask_id}")
async def update_subtask(
    subtask_id: uuid.UUID,
    body: SubtaskUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    subtask = await get_org_row(db, Subtask, subtask_id, user["org_id"], "Subtask")
    await _task_for_write(db, user, subtask.task_id)
    subtask = await TaskService.update_subtask(
        db, user["org_id"], subtask_id, body.model_dump(exclude_unset=True)
    )
    return row_to_dict(subtask)


@router.post("/subtasks/{subtask_id}/toggle")
async def toggle_subtask(
    subtask_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    subtask = await get_org_row(db, Subtask, subtask_id, user["org_id"], "Subtask")
    await _task_for_write(db, user, subtask.task_id)
    subtask = await TaskService.toggle_subtask(db, user["org_id"], subtask_id)
    return row_to_dict(subtask)


@router.delete("/subtasks/{subtask_id}")
async def delete_subtask(
    subtask_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    subtask = await get_org_row(db, Subtask, subtask_id, user["org_id"], "Subtask")
    await _task_for_write(db, user, subtask.task_id)
    await TaskService.delete_subtask(db, user["org_id"], subtask_id)
    return {"success": True}
