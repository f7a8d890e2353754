"""Task dependency router: create, delete and dry-run cycle checks."""

import logging
import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_org_context
from app.helpers.db_utils import get_org_row, row_to_dict
from app.models.db.task import Task, TaskDependency
from app.models.project_models import CycleCheckRequest, DependencyCreate
from app.services.access_control import require_project_access
from app.services.dependency_service import DependencyService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["dependencies"])


# ---------------------------------------------------------------------------
# POST /dependencies
# ---------------------------------------------------------------------------


@router.post("/dependencies", status_code=status.HTTP_201_CREATED)
async def create_dependency(
    body: DependencyCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Add an edge ``predecessor -> successor``.

    Rejected with 409 when the edge would close a loop; the response detail
    lists the tasks on the cycle and the edges whose removal would break it.
    """
    successor = await get_org_row(db, Task, body.successor_id, user["org_id"], "Task")
    await require_project_access(db, user, successor.project_id, manage=True)
    edge = await DependencyService.create_dependency(
        db, user["org_id"], body.predecessor_id, body.successor_id, body.type
    )
    logger.info("Dependency %s -> %s (%s) created", edge.predecessor_id, edge.successor_id, edge.type)
    return row_to_dict(edge)


# ---------------------------------------------------------------------------
# POST /dependencies/check-cycle
# ---------------------------------------------------------------------------


@router.post("/dependencies/check-cycle")
async def check_cycle(
    body: CycleCheckRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    return await DependencyService.check_cycle(
        db, user["org_id"], body.predecessor_id, body.successor_id
    )


# ---------------------------------------------------------------------------
# DELETE /dependencies/{id}
# ---------------------------------------------------------------------------


@router.delete("/dependencies/{dependency_id}")
async def delete_dependency(
    dependency_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    edge = await get_org_row(db, TaskDependency, dependency_id, user["org_id"], "Dependency")
    successor = await get_org_row(db, Task, edge.successor_id, user["org_id"], "Task")
    await require_project_access(db, user, successor.project_id, manage=True)
    await DependencyService.delete_dependency(db, user["org_id"], dependency_id)
    return {"success": True}
