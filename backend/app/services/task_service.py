"""Task, subtask and assignment business logic.

Status and priority values are checked against the owning project's
effective workflow (``app.workflow``). Assignment changes notify the new
assignee and every write is recorded in the activity log.
"""

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.allocation import summarize_team_allocation
from app.assignment import get_reassignment_options, handle_assignment_decline
from app.helpers.db_utils import apply_updates, get_org_row, row_to_dict, to_uuid
from app.models.db.contact import TeamMember
from app.models.db.portfolio import Project
from app.models.db.task import Subtask, Task
from app.permissions import can_decline_assignment, can_manage_task_for_user
from app.services.access_control import get_project_role, load_overrides
from app.services.activity_service import ActivityService
from app.services.allocation_service import AllocationService
from app.services.notification_service import NotificationService
from app.timeframe import TIME_FRAMES, filter_tasks_by_time_frame
from app.workflow import is_task_done, is_valid_task_priority, is_valid_task_status

logger = logging.getLogger(__name__)

TASK_FIELDS = {
    "title",
    "description",
    "status",
    "priority",
    "assignee_id",
    "milestone_id",
    "start_date",
    "due_date",
    "estimated_hours",
    "actual_hours",
    "weight",
    "cost",
    "actual_cost",
}
SUBTASK_FIELDS = {"title", "completed", "position", "assignee_id"}


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def validate_task_workflow(project: Project, status_value: Optional[str], priority: Optional[str]) -> None:
    if status_value is not None and not is_valid_task_status(status_value, project.custom_task_statuses):
        raise _bad_request(f"Invalid task status: {status_value}")
    if priority is not None and not is_valid_task_priority(priority, project.custom_task_priorities):
        raise _bad_request(f"Invalid task priority: {priority}")


class TaskService:
    # =======================================================================
    # Queries
    # =======================================================================

    @staticmethod
    async def list_tasks(
        db: AsyncSession,
        org_id,
        project_id: Optional[uuid.UUID] = None,
        assignee_id: Optional[uuid.UUID] = None,
        status_filter: Optional[str] = None,
        time_frame: Optional[str] = None,
        include_archived: bool = False,
    ) -> List[Dict[str, Any]]:
        query = select(Task).where(Task.org_id == to_uuid(org_id))
        if project_id:
            query = query.where(Task.project_id == project_id)
        if assignee_id:
            query = query.where(Task.assignee_id == assignee_id)
        if status_filter:
            query = query.where(Task.status == status_filter)
        if not include_archived:
            query = query.where(Task.archived_at.is_(None))
        result = await db.execute(query.order_by(Task.position, Task.created_at))
        tasks = [row_to_dict(t) for t in result.scalars().all()]

        if time_frame:
            if time_frame not in TIME_FRAMES:
                raise _bad_request(f"Invalid time_frame. Must be one of: {', '.join(TIME_FRAMES)}")
            tasks = filter_tasks_by_time_frame(tasks, time_frame)
        return tasks

    @staticmethod
    async def _next_position(db: AsyncSession, project_id: uuid.UUID) -> int:
        result = await db.execute(
            select(func.coalesce(func.max(Task.position), -1)).where(Task.project_id == project_id)
        )
        return int(result.scalar()) + 1

    @staticmethod
    async def _check_assignee(db: AsyncSession, org_id, assignee_id) -> None:
        if assignee_id:
            await get_org_row(db, TeamMember, assignee_id, org_id, "Team member")

    @staticmethod
    async def _notify_assignee(db: AsyncSession, user: Dict[str, Any], task: Task) -> None:
        await NotificationService.notify_team_member(
            db,
            user["org_id"],
            task.assignee_id,
            "Task assigned",
            f"You have been assigned: {task.title}",
            preference="task-assigned",
            project_id=task.project_id,
            task_id=task.id,
        )

    # =======================================================================
    # Task writes
    # =======================================================================

    @staticmethod
    async def create_task(db: AsyncSession, user: Dict[str, Any], data: Dict[str, Any]) -> Task:
        org_id = user["org_id"]
        project = await get_org_row(db, Project, data["project_id"], org_id, "Project")

        task_status = data.get("status") or "todo"
        priority = data.get("priority") or "medium"
        validate_task_workflow(project, task_status, priority)
        await TaskService._check_assignee(db, org_id, data.get("assignee_id"))

        task = Task(
            org_id=to_uuid(org_id),
            project_id=project.id,
            milestone_id=data.get("milestone_id"),
            title=data["title"],
            description=data.get("description"),
            status=task_status,
            priority=priority,
            assignee_id=data.get("assignee_id"),
            start_date=data.get("start_date"),
            due_date=data.get("due_date"),
            estimated_hours=data["estimated_hours"] if data.get("estimated_hours") is not None else 1,
            actual_hours=data.get("actual_hours"),
            weight=data["weight"] if data.get("weight") is not None else 1,
            cost=data.get("cost"),
            actual_cost=data["actual_cost"] if data.get("actual_cost") is not None else 0,
            position=await TaskService._next_position(db, project.id),
            completed_at=datetime.now(timezone.utc) if is_task_done(task_status) else None,
        )
        db.add(task)
        await db.flush()
        await db.refresh(task)

        await ActivityService.log_activity(
            db, org_id, user["id"], "task_created", f"Created task: {task.title}",
            entity_type="task", entity_id=task.id, details={"project_id": str(project.id)},
        )
        if task.assignee_id:
            await TaskService._notify_assignee(db, user, task)
        return task

    @staticmethod
    async def update_task(
        db: AsyncSession, user: Dict[str, Any], task_id: uuid.UUID, changes: Dict[str, Any]
    ) -> Task:
        org_id = user["org_id"]
        task = await get_org_row(db, Task, task_id, org_id, "Task")
        project = await get_org_row(db, Project, task.project_id, org_id, "Project")
        validate_task_workflow(project, changes.get("status"), changes.get("priority"))
        if "assignee_id" in changes:
            await TaskService._check_assignee(db, org_id, changes["assignee_id"])

        previous_assignee = task.assignee_id
        was_done = is_task_done(task.status)
        changed = apply_updates(task, changes, TASK_FIELDS)
        if not changed:
            return task

        now_done = is_task_done(task.status)
        if now_done and not was_done:
            task.completed_at = datetime.now(timezone.utc)
        elif was_done and not now_done:
            task.completed_at = None
        await db.flush()
        await db.refresh(task)

        activity = "task_completed" if now_done and not was_done else "task_updated"
        await ActivityService.log_activity(
            db, org_id, user["id"], activity, f"Updated task: {task.title}",
            entity_type="task", entity_id=task.id, details={"fields": changed},
        )
        if "assignee_id" in changed and task.assignee_id and task.assignee_id != previous_assignee:
            await ActivityService.log_activity(
                db, org_id, user["id"], "task_assigned", f"Assigned task: {task.title}",
                entity_type="task", entity_id=task.id,
                details={"assignee_id": str(task.assignee_id)},
            )
            await TaskService._notify_assignee(db, user, task)
        return task

    @staticmethod
    async def set_archived(db: AsyncSession, user: Dict[str, Any], task_id: uuid.UUID, archived: bool) -> Task:
        task = await get_org_row(db, Task, task_id, user["org_id"], "Task")
        task.archived_at = datetime.now(timezone.utc) if archived else None
        await db.flush()
        await db.refresh(task)
        await ActivityService.log_activity(
            db, user["org_id"], user["id"], "task_updated",
            f"{'Archived' if archived else 'Restored'} task: {task.title}",
            entity_type="task", entity_id=task.id, details={"archived": archived},
        )
        return task

    @staticmethod
    async def delete_task(db: AsyncSession, user: Dict[str, Any], task_id: uuid.UUID) -> None:
        task = await get_org_row(db, Task, task_id, user["org_id"], "Task")
        title = task.title
        await db.delete(task)
        await db.flush()
        await ActivityService.log_activity(
            db, user["org_id"], user["id"], "task_deleted", f"Deleted task: {title}",
            entity_type="task", entity_id=task_id,
        )

    @staticmethod
    async def reorder(
        db: AsyncSession,
        user: Dict[str, Any],
        project_id: uuid.UUID,
        task_ids: List[uuid.UUID],
        status_value: Optional[str] = None,
    ) -> List[Task]:
        """
        Give the listed tasks positions 0..n-1 in list order. With
        ``status_value`` every listed task also moves to that Kanban column.
        """
        project = await get_org_row(db, Project, project_id, user["org_id"], "Project")
        if status_value is not None:
            validate_task_workflow(project, status_value, None)

        result = await db.execute(
            select(Task).where(Task.project_id == project.id, Task.id.in_(task_ids))
        )
        by_id = {t.id: t for t in result.scalars().all()}
        missing = [str(t) for t in task_ids if t not in by_id]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Tasks not found in project: {', '.join(missing)}",
            )

        now = datetime.now(timezone.utc)
        ordered = []
        for position, task_id in enumerate(task_ids):
            task = by_id[task_id]
            task.position = position
            if status_value is not None and task.status != status_value:
                was_done = is_task_done(task.status)
                task.status = status_value
                if is_task_done(status_value) and not was_done:
                    task.completed_at = now
                elif was_done and not is_task_done(status_value):
                    task.completed_at = None
            ordered.append(task)
        await db.flush()
        return ordered

    # =======================================================================
    # Decline and reassignment
    # =======================================================================

    @staticmethod
    async def _candidate_members(db: AsyncSession, org_id) -> List[Dict[str, Any]]:
        """Team members with ``workload`` filled from current allocation where unset."""
        members = await AllocationService.load_members(db, org_id)
        tasks = await AllocationService.load_tasks(db, org_id)
        weights = await AllocationService.get_weights(db, org_id)
        rows = {
            str(r["member_id"]): r
            for r in summarize_team_allocation(members, tasks, weights, "all-time", date.today())
        }
        for member in members:
            if member.get("workload") is None and member["id"] in rows:
                member["workload"] = rows[member["id"]]["allocation_percentage"]
        return members

    @staticmethod
    async def reassignment_options(
        db: AsyncSession, org_id, task_id: uuid.UUID, limit: int = 5
    ) -> List[Dict[str, Any]]:
        task = await get_org_row(db, Task, task_id, org_id, "Task")
        members = await TaskService._candidate_members(db, org_id)
        return get_reassignment_options(members, [task.assignee_id], limit)

    @staticmethod
    async def decline_task(
        db: AsyncSession,
        user: Dict[str, Any],
        task_id: uuid.UUID,
        reason: Optional[str] = None,
        preferred_role: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Decline an assignment and hand the task to the next available member.

        The caller needs ``decline_assignment`` (org or project level) and
        must be the assignee or someone who can manage the task.
        """
        org_id = user["org_id"]
        task = await get_org_row(db, Task, task_id, org_id, "Task")
        if task.assignee_id is None:
            raise _bad_request("Task is not assigned")

        project_role, member_id = await get_project_role(db, org_id, task.project_id, user["id"])
        overrides = await load_overrides(db, org_id)
        allowed = can_decline_assignment(user.get("role"), "org", overrides) or can_decline_assignment(
            project_role, "project", overrides
        )
        if not allowed or not can_manage_task_for_user(
            user.get("role"), project_role, member_id, task.assignee_id
        ):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Not allowed to decline this assignment",
            )

        declined_by = task.assignee_id
        members = await TaskService._candidate_members(db, org_id)
        outcome = handle_assignment_decline(declined_by, members, [member_id], preferred_role)
        if not outcome["success"]:
            return {"success": False, "reason": outcome["reason"], "task": row_to_dict(task)}

        new_assignee = outcome["assigned_to"]
        task.assignee_id = to_uuid(new_assignee["id"])
        await db.flush()
        await db.refresh(task)

        await ActivityService.log_activity(
            db, org_id, user["id"], "task_reassigned", f"Reassigned task: {task.title}",
            entity_type="task", entity_id=task.id,
            details={
                "declined_by": str(declined_by),
                "assigned_to": str(new_assignee["id"]),
                "reason": reason,
            },
        )
        await TaskService._notify_assignee(db, user, task)
        logger.info("Task %s reassigned from %s to %s", task.id, declined_by, new_assignee["id"])
        return {
            "success": True,
            "reason": None,
            "assigned_to": new_assignee,
            "task": row_to_dict(task),
        }

    # =======================================================================
    # Subtasks
    # =======================================================================

    @staticmethod
    async def list_subtasks(db: AsyncSession, org_id, task_id: uuid.UUID) -> List[Subtask]:
        await get_org_row(db, Task, task_id, org_id, "Task")
        result = await db.execute(
            select(Subtask)
            .where(Subtask.task_id == task_id, Subtask.org_id == to_uuid(org_id))
            .order_by(Subtask.position, Subtask.created_at)
        )
        return list(result.scalars().all())

    @staticmethod
    async def create_subtask(
        db: AsyncSession, org_id, task_id: uuid.UUID, data: Dict[str, Any]
    ) -> Subtask:
        await get_org_row(db, Task, task_id, org_id, "Task")
        await TaskService._check_assignee(db, org_id, data.get("assignee_id"))
        position = data.get("position")
        if position is None:
            result = await db.execute(
                select(func.coalesce(func.max(Subtask.position), -1)).where(Subtask.task_id == task_id)
            )
            position = int(result.scalar()) + 1
        subtask = Subtask(
            org_id=to_uuid(org_id),
            task_id=task_id,
            title=data["title"],
            completed=bool(data.get("completed", False)),
            position=position,
            assignee_id=data.get("assignee_id"),
        )
        db.add(subtask)
        await db.flush()
        await db.refresh(subtask)
        return subtask

    @staticmethod
    async def update_subtask(
        db: AsyncSession, org_id, subtask_id: uuid.UUID, changes: Dict[str, Any]
    ) -> Subtask:
        subtask = await get_org_row(db, Subtask, subtask_id, org_id, "Subtask")
        if changes.get("assignee_id"):
            await TaskService._check_assignee(db, org_id, changes["assignee_id"])
        apply_updates(subtask, changes, SUBTASK_FIELDS)
        await db.flush()
        await db.refresh(subtask)
        return subtask

    @staticmethod
    async def toggle_subtask(db: AsyncSession, org_id, subtask_id: uuid.UUID) -> Subtask:
        subtask = await get_org_row(db, Subtask, subtask_id, org_id, "Subtask")
        subtask.completed = not subtask.completed
        await db.flush()
        await db.refresh(subtask)
        return subtask

    @staticmethod
    async def delete_subtask(db: AsyncSession, org_id, subtask_id: uuid.UUID) -> None:
        subtask = await get_org_row(db, Subtask, subtask_id, org_id, "Subtask")
        await db.delete(subtask)
        await db.flush()
