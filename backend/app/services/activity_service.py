"""Activity log: who did what, for the org activity feed and audit trail."""

import logging
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.helpers.db_utils import row_to_dict, to_uuid
from app.models.db.activity import ActivityLog
from app.permissions import ORG_ROLE_VIEWER

logger = logging.getLogger(__name__)

ACTIVITY_TYPES = (
    "task_created",
    "task_updated",
    "task_deleted",
    "task_completed",
    "task_assigned",
    "task_reassigned",
    "project_created",
    "project_updated",
    "project_deleted",
    "program_created",
    "program_updated",
    "program_deleted",
    "portfolio_created",
    "portfolio_updated",
    "portfolio_deleted",
    "milestone_created",
    "milestone_updated",
    "milestone_deleted",
    "member_added",
    "member_removed",
    "member_role_changed",
    "org_created",
    "org_updated",
    "org_archived",
    "schedule_block_created",
    "schedule_block_updated",
    "schedule_block_deleted",
    "contact_created",
    "contact_updated",
    "contact_deleted",
    "email_sent",
    "settings_updated",
    "report_generated",
    "login",
    "logout",
)

_CATEGORY_BY_PREFIX = {
    "task": "tasks",
    "project": "projects",
    "program": "programs",
    "portfolio": "portfolios",
    "milestone": "milestones",
    "member": "team",
    "org": "settings",
    "schedule": "tasks",
    "contact": "contacts",
    "email": "email",
    "settings": "settings",
    "report": "reports",
    "login": "auth",
    "logout": "auth",
}

ACTIVITY_CATEGORIES = tuple(sorted(set(_CATEGORY_BY_PREFIX.values())))
MAX_ACTIVITY_LIMIT = 200


def get_activity_category(activity_type: str) -> str:
    prefix = activity_type.split("_", 1)[0]
    return _CATEGORY_BY_PREFIX.get(prefix, "settings")


class ActivityService:
    """Writes and reads ``activity_logs`` rows."""

    @staticmethod
    async def log_activity(
        db: AsyncSession,
        org_id: Any,
        user_id: Any,
        activity_type: str,
        description: str,
        entity_type: Optional[str] = None,
        entity_id: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record an activity. Never raises: a failed audit write is only logged."""
        if activity_type not in ACTIVITY_TYPES:
            logger.warning("Unknown activity type %s; not logged", activity_type)
            return
        try:
            async with db.begin_nested():
                db.add(
                    ActivityLog(
                        org_id=to_uuid(org_id),
                        user_id=to_uuid(user_id),
                        activity_type=activity_type,
                        category=get_activity_category(activity_type),
                        description=description,
                        entity_type=entity_type,
                        entity_id=to_uuid(entity_id) if entity_id else None,
                        details=details or {},
                    )
                )
        except Exception as e:
            logger.warning("Failed to log activity %s: %s", activity_type, e)

    @staticmethod
    async def list_activity(
        db: AsyncSession,
        org_id: Any,
        caller: Dict[str, Any],
        category: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
        user_id: Optional[uuid.UUID] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        query = select(ActivityLog).where(ActivityLog.org_id == to_uuid(org_id))
        if caller.get("role") == ORG_ROLE_VIEWER:
            query = query.where(ActivityLog.user_id == to_uuid(caller["id"]))
        elif user_id:
            query = query.where(ActivityLog.user_id == user_id)
        if category:
            query = query.where(ActivityLog.category == category)
        if entity_type:
            query = query.where(ActivityLog.entity_type == entity_type)
        if entity_id:
            query = query.where(ActivityLog.entity_id == entity_id)

        limit = max(1, min(limit, MAX_ACTIVITY_LIMIT))
        result = await db.execute(
            query.order_by(ActivityLog.created_at.desc()).offset(max(0, offset)).limit(limit)
        )
        return [row_to_dict(row) for row in result.scalars().all()]
