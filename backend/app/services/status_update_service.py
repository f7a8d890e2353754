"""Collects a project's or program's tasks, milestones, risks and change
requests and renders them as a status update."""

import logging
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.helpers.db_utils import get_org_row, row_to_dict, to_uuid
from app.models.db.masterbook import ChangeRequest, Risk
from app.models.db.milestone import Milestone
from app.models.db.portfolio import Program, Project
from app.models.db.task import Task
from app.services.dependency_service import DependencyService
from app.status_update import build_status_update, to_markdown

logger = logging.getLogger(__name__)


class StatusUpdateService:
    @staticmethod
    async def _scope_projects(
        db: AsyncSession, org_id, scope: str, scope_id: uuid.UUID
    ) -> tuple:
        """``(display name, project ids)`` for a project or a whole program."""
        if scope == "program":
            program = await get_org_row(db, Program, scope_id, org_id, "Program")
            result = await db.execute(
                select(Project.id).where(
                    Project.program_id == program.id, Project.archived_at.is_(None)
                )
            )
            return program.name, list(result.scalars().all())
        project = await get_org_row(db, Project, scope_id, org_id, "Project")
        return project.name, [project.id]

    @staticmethod
    async def generate(
        db: AsyncSession,
        org_id,
        scope: str,
        scope_id: uuid.UUID,
        format_type: str = "weekly",
        next_focus: Optional[str] = None,
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        """
        Build a status update for ``scope`` (``project`` or ``program``).

        Program scope covers every unarchived project in the program plus
        milestones attached to the program itself.

        Returns:
            The sections from ``build_status_update`` plus ``scope``,
            ``scope_id``, ``name`` and the rendered ``markdown``.
        """
        org_uuid = to_uuid(org_id)
        name, project_ids = await StatusUpdateService._scope_projects(db, org_id, scope, scope_id)

        tasks: List[Dict[str, Any]] = []
        risks: List[Dict[str, Any]] = []
        change_requests: List[Dict[str, Any]] = []
        if project_ids:
            task_result = await db.execute(
                select(Task).where(
                    Task.org_id == org_uuid,
                    Task.project_id.in_(project_ids),
                    Task.archived_at.is_(None),
                )
            )
            tasks = [row_to_dict(t) for t in task_result.scalars().all()]
            risk_result = await db.execute(
                select(Risk).where(Risk.org_id == org_uuid, Risk.project_id.in_(project_ids))
            )
            risks = [row_to_dict(r) for r in risk_result.scalars().all()]
            cr_result = await db.execute(
                select(ChangeRequest).where(
                    ChangeRequest.org_id == org_uuid,
                    ChangeRequest.project_id.in_(project_ids),
                )
            )
            change_requests = [row_to_dict(c) for c in cr_result.scalars().all()]

        milestone_filter = Milestone.project_id.in_(project_ids) if project_ids else None
        if scope == "program":
            program_filter = Milestone.program_id == scope_id
            milestone_filter = (
                or_(milestone_filter, program_filter) if milestone_filter is not None else program_filter
            )
        milestones: List[Dict[str, Any]] = []
        if milestone_filter is not None:
            milestone_result = await db.execute(
                select(Milestone).where(Milestone.org_id == org_uuid, milestone_filter)
            )
            milestones = [row_to_dict(m) for m in milestone_result.scalars().all()]

        edges = []
        if tasks:
            edges = await DependencyService.load_edges(db, org_id, [to_uuid(t["id"]) for t in tasks])

        update = build_status_update(
            tasks, milestones, risks, change_requests, edges, next_focus, format_type, today
        )
        update.update(
            {
                "scope": scope,
                "scope_id": str(scope_id),
                "name": name,
                "markdown": to_markdown(update),
            }
        )
        logger.info(
            "Generated %s status update for %s %s (%d tasks)", format_type, scope, scope_id, len(tasks)
        )
        return update
