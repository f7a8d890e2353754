"""Task dependency edges: loading, validated creation and graph queries."""

import logging
import uuid
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.critical_path import (
    DEPENDENCY_TYPES,
    DependencyCycleError,
    compute_critical_path,
    detect_circular_dependencies,
    get_downstream_impact,
)
from app.helpers.db_utils import get_org_row, row_to_dict, to_uuid
from app.models.db.task import Task, TaskDependency

logger = logging.getLogger(__name__)


class DependencyService:
    @staticmethod
    async def load_edges(
        db: AsyncSession, org_id, task_ids: Optional[List[uuid.UUID]] = None
    ) -> List[Dict[str, Any]]:
        query = select(TaskDependency).where(TaskDependency.org_id == to_uuid(org_id))
        if task_ids is not None:
            query = query.where(
                or_(
                    TaskDependency.predecessor_id.in_(task_ids),
                    TaskDependency.successor_id.in_(task_ids),
                )
            )
        result = await db.execute(query)
        return [row_to_dict(e) for e in result.scalars().all()]

    @staticmethod
    async def _org_task_ids(db: AsyncSession, org_id) -> List[str]:
        result = await db.execute(select(Task.id).where(Task.org_id == to_uuid(org_id)))
        return [str(task_id) for task_id in result.scalars().all()]

    @staticmethod
    async def list_for_task(db: AsyncSession, org_id, task_id: uuid.UUID) -> Dict[str, Any]:
        await get_org_row(db, Task, task_id, org_id, "Task")
        edges = await DependencyService.load_edges(db, org_id, [task_id])
        key = str(task_id)
        return {
            "task_id": key,
            "predecessors": [e for e in edges if e["successor_id"] == key],
            "successors": [e for e in edges if e["predecessor_id"] == key],
        }

    @staticmethod
    async def check_cycle(
        db: AsyncSession, org_id, predecessor_id: uuid.UUID, successor_id: uuid.UUID
    ) -> Dict[str, Any]:
        """Cycle report for the graph as it would be with the new edge added."""
        if predecessor_id == successor_id:
            key = str(predecessor_id)
            return {
                "has_cycle": True,
                "cycle_task_ids": [key],
                "suggested_alternatives": [],
            }
        edges = await DependencyService.load_edges(db, org_id)
        task_ids = await DependencyService._org_task_ids(db, org_id)
        candidate = {
            "predecessor_id": str(predecessor_id),
            "successor_id": str(successor_id),
            "type": "blocks",
        }
        return detect_circular_dependencies(task_ids, edges + [candidate])

    @staticmethod
    async def create_dependency(
        db: AsyncSession,
        org_id,
        predecessor_id: uuid.UUID,
        successor_id: uuid.UUID,
        dependency_type: str = "blocks",
    ) -> TaskDependency:
        """
        Raises:
            HTTPException 400: self-edge or unknown type.
            HTTPException 404: either task is not in the org.
            HTTPException 409: duplicate edge, or the edge closes a loop
                (detail carries the cycle and removal suggestions).
        """
        if dependency_type not in DEPENDENCY_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid dependency type. Must be one of: {', '.join(DEPENDENCY_TYPES)}",
            )
        if predecessor_id == successor_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A task cannot depend on itself",
            )
        await get_org_row(db, Task, predecessor_id, org_id, "Task")
        await get_org_row(db, Task, successor_id, org_id, "Task")

        existing = await db.execute(
            select(TaskDependency.id).where(
                TaskDependency.predecessor_id == predecessor_id,
                TaskDependency.successor_id == successor_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Dependency already exists",
            )

        report = await DependencyService.check_cycle(db, org_id, predecessor_id, successor_id)
        if report["has_cycle"]:
            logger.info(
                "Rejected dependency %s -> %s: cycle %s",
                predecessor_id,
                successor_id,
                report["cycle_task_ids"],
            )
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"message": "Dependency would create a cycle", **report},
            )

        edge = TaskDependency(
            org_id=to_uuid(org_id),
            predecessor_id=predecessor_id,
            successor_id=successor_id,
            type=dependency_type,
        )
        db.add(edge)
        await db.flush()
        await db.refresh(edge)
        return edge

    @staticmethod
    async def delete_dependency(db: AsyncSession, org_id, dependency_id: uuid.UUID) -> None:
        edge = await get_org_row(db, TaskDependency, dependency_id, org_id, "Dependency")
        await db.delete(edge)
        await db.flush()

    @staticmethod
    async def project_critical_path(db: AsyncSession, org_id, project_id: uuid.UUID) -> Dict[str, Any]:
        result = await db.execute(
            select(Task).where(
                Task.org_id == to_uuid(org_id),
                Task.project_id == project_id,
                Task.archived_at.is_(None),
            )
        )
        tasks = [row_to_dict(t) for t in result.scalars().all()]
        edges = await DependencyService.load_edges(db, org_id, [to_uuid(t["id"]) for t in tasks])
        try:
            return {"project_id": str(project_id), **compute_critical_path(tasks, edges)}
        except DependencyCycleError as e:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"message": str(e), "cycle_task_ids": e.cycle},
            ) from e

    @staticmethod
    async def downstream_impact(db: AsyncSession, org_id, task_id: uuid.UUID) -> Dict[str, Any]:
        await get_org_row(db, Task, task_id, org_id, "Task")
        result = await db.execute(select(Task).where(Task.org_id == to_uuid(org_id)))
        tasks = [row_to_dict(t) for t in result.scalars().all()]
        edges = await DependencyService.load_edges(db, org_id)
        return get_downstream_impact(task_id, tasks, edges)
