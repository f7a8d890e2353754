"""Loading team members and tasks for workload scoring, and the per-org
allocation weight settings."""

import logging
import uuid
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.allocation import merge_weights, summarize_team_allocation
from app.helpers.db_utils import row_to_dict, to_uuid
from app.models.db.allocation import AllocationSetting
from app.models.db.contact import Contact, TeamMember
from app.models.db.task import Task

logger = logging.getLogger(__name__)


def member_to_dict(member: TeamMember, contact: Optional[Contact]) -> Dict[str, Any]:
    data = row_to_dict(member)
    data["name"] = contact.name if contact else None
    data["email"] = contact.email if contact else None
    return data


class AllocationService:
    # -- weights ------------------------------------------------------------

    @staticmethod
    async def _settings_row(db: AsyncSession, org_id) -> Optional[AllocationSetting]:
        result = await db.execute(
            select(AllocationSetting).where(AllocationSetting.org_id == to_uuid(org_id))
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_weights(db: AsyncSession, org_id) -> Dict[str, Dict[str, float]]:
        row = await AllocationService._settings_row(db, org_id)
        return merge_weights(row.weights if row else None)

    @staticmethod
    async def save_weights(
        db: AsyncSession, org_id, user_id, weights: Dict[str, Any]
    ) -> Dict[str, Dict[str, float]]:
        """Store the merged (validated) weights; invalid entries are dropped."""
        merged = merge_weights(weights)
        row = await AllocationService._settings_row(db, org_id)
        if row is None:
            row = AllocationSetting(org_id=to_uuid(org_id), weights=merged)
            db.add(row)
        else:
            row.weights = merged
        row.updated_by = to_uuid(user_id)
        await db.flush()
        logger.info("Allocation weights updated for org %s", org_id)
        return merged

    @staticmethod
    async def reset_weights(db: AsyncSession, org_id) -> Dict[str, Dict[str, float]]:
        await db.execute(
            delete(AllocationSetting).where(AllocationSetting.org_id == to_uuid(org_id))
        )
        return merge_weights(None)

    # -- inputs -------------------------------------------------------------

    @staticmethod
    async def load_members(db: AsyncSession, org_id) -> List[Dict[str, Any]]:
        result = await db.execute(
            select(TeamMember, Contact)
            .outerjoin(Contact, Contact.id == TeamMember.contact_id)
            .where(TeamMember.org_id == to_uuid(org_id))
            .order_by(Contact.name)
        )
        return [member_to_dict(member, contact) for member, contact in result.all()]

    @staticmethod
    async def load_tasks(
        db: AsyncSession,
        org_id,
        project_ids: Optional[Iterable[uuid.UUID]] = None,
        include_archived: bool = False,
    ) -> List[Dict[str, Any]]:
        query = select(Task).where(Task.org_id == to_uuid(org_id))
        if project_ids is not None:
            query = query.where(Task.project_id.in_(list(project_ids)))
        if not include_archived:
            query = query.where(Task.archived_at.is_(None))
        result = await db.execute(query.order_by(Task.position, Task.created_at))
        return [row_to_dict(t) for t in result.scalars().all()]

    # -- summaries ----------------------------------------------------------

    @staticmethod
    async def team_allocation(
        db: AsyncSession,
        org_id,
        time_frame: str = "current-week",
        today: Optional[date] = None,
    ) -> Dict[str, Any]:
        weights = await AllocationService.get_weights(db, org_id)
        members = await AllocationService.load_members(db, org_id)
        tasks = await AllocationService.load_tasks(db, org_id)
        rows = summarize_team_allocation(members, tasks, weights, time_frame, today)

        projects_by_member: Dict[str, set] = {}
        for task in tasks:
            if task.get("assignee_id"):
                projects_by_member.setdefault(task["assignee_id"], set()).add(task["project_id"])
        for row in rows:
            row["project_ids"] = sorted(projects_by_member.get(str(row["member_id"]), set()))

        return {"time_frame": time_frame, "weights": weights, "members": rows}
