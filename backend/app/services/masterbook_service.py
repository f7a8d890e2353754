"""Masterbook: risk register, change requests, the portfolio decision log,
weekly prompts and dismissed insights, plus the views built on them
(resource conflicts, week ahead).

Every row is scoped to the caller's organization.
"""

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.critical_path import get_critical_path_task_ids
from app.helpers.db_utils import apply_updates, get_org_row, row_to_dict, to_uuid
from app.models.db.masterbook import (
    ChangeRequest,
    DismissedInsight,
    PortfolioDecision,
    Risk,
    WeeklyPrompt,
)
from app.models.db.milestone import Milestone
from app.models.db.portfolio import Portfolio, Project
from app.models.db.task import Task
from app.resource_conflicts import build_resource_conflicts
from app.services.allocation_service import AllocationService
from app.services.dependency_service import DependencyService
from app.week_ahead import build_week_ahead, get_week_window

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Vocabularies
# ---------------------------------------------------------------------------

RISK_STATUSES = ("identified", "active", "mitigated", "realized")
RISK_SEVERITIES = ("low", "medium", "high", "critical")
ACTIVE_RISK_STATUSES = ("identified", "active")

CHANGE_REQUEST_TYPES = ("add_work", "modify_work", "remove_work")
CHANGE_REQUEST_STATUSES = ("draft", "pending_approval", "approved", "rejected", "implemented")
CHANGE_ITEM_TYPES = ("task", "milestone", "deliverable")

CHANGE_REQUEST_TRANSITIONS = {
    "draft": {"pending_approval"},
    "pending_approval": {"approved", "rejected", "draft"},
    "approved": {"implemented"},
    "rejected": {"draft"},
    "implemented": set(),
}

DECISION_TYPES = (
    "resource_allocation",
    "scope_approval",
    "priority_override",
    "cross_project_dependency",
    "schedule_adjustment",
    "risk_acceptance",
    "other",
)

INSIGHT_IDS = (
    "dependency_impact",
    "critical_path_intro",
    "circular_dependency",
    "resource_over_allocation",
    "risk_realized_blocker",
    "scope_change_approval",
    "first_dependency",
    "first_risk",
    "first_change_request",
)

RISK_FIELDS = {
    "title",
    "description",
    "status",
    "severity",
    "project_id",
    "program_id",
    "owner_id",
    "due_date",
    "mitigation_plan",
}
CHANGE_REQUEST_FIELDS = {
    "title",
    "description",
    "type",
    "items",
    "impact_summary",
    "approver_ids",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def can_transition(current: str, target: str) -> bool:
    return target in CHANGE_REQUEST_TRANSITIONS.get(current, set())


def resolve_approval_status(approver_ids: List[str], approvals: List[Dict[str, Any]]) -> Optional[str]:
    """
    Status implied by the approvals so far: ``rejected`` on any rejection,
    ``approved`` once every listed approver approved (or on any approval when
    nobody is listed), else None.
    """
    if any(not a.get("approved") for a in approvals):
        return "rejected"
    approved_by = {str(a.get("approver_id")) for a in approvals if a.get("approved")}
    if approver_ids:
        if all(str(a) in approved_by for a in approver_ids):
            return "approved"
        return None
    return "approved" if approved_by else None


def _conflict(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)


class MasterbookService:
    # =======================================================================
    # Risks
    # =======================================================================

    @staticmethod
    async def list_risks(
        db: AsyncSession,
        org_id,
        project_id: Optional[uuid.UUID] = None,
        active_only: bool = False,
    ) -> List[Risk]:
        query = select(Risk).where(Risk.org_id == to_uuid(org_id))
        if project_id:
            query = query.where(Risk.project_id == project_id)
        if active_only:
            query = query.where(Risk.status.in_(ACTIVE_RISK_STATUSES))
        result = await db.execute(query.order_by(Risk.identified_at.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def add_risk(db: AsyncSession, user: Dict[str, Any], data: Dict[str, Any]) -> Risk:
        project = await get_org_row(db, Project, data["project_id"], user["org_id"], "Project")
        risk = Risk(
            org_id=to_uuid(user["org_id"]),
            project_id=project.id,
            program_id=data.get("program_id") or project.program_id,
            title=data["title"],
            description=data.get("description") or "",
            status=data.get("status") or "identified",
            severity=data.get("severity") or "medium",
            owner_id=data.get("owner_id"),
            due_date=data.get("due_date"),
            mitigation_plan=data.get("mitigation_plan"),
        )
        db.add(risk)
        await db.flush()
        await db.refresh(risk)
        return risk

    @staticmethod
    async def update_risk(db: AsyncSession, org_id, risk_id: uuid.UUID, changes: Dict[str, Any]) -> Risk:
        risk = await get_org_row(db, Risk, risk_id, org_id, "Risk")
        if "project_id" in changes and changes["project_id"]:
            await get_org_row(db, Project, changes["project_id"], org_id, "Project")
        apply_updates(risk, changes, RISK_FIELDS)
        if risk.status == "realized" and risk.realized_at is None:
            risk.realized_at = _now()
        await db.flush()
        await db.refresh(risk)
        return risk

    @staticmethod
    async def remove_risk(db: AsyncSession, org_id, risk_id: uuid.UUID) -> None:
        risk = await get_org_row(db, Risk, risk_id, org_id, "Risk")
        await db.delete(risk)
        await db.flush()

    @staticmethod
    async def realize_risk(
        db: AsyncSession,
        user: Dict[str, Any],
        risk_id: uuid.UUID,
        blocker_task_id: Optional[uuid.UUID] = None,
        create_blocker: bool = False,
    ) -> Dict[str, Any]:
        """
        Mark a risk as realized and optionally link (or create) the task it
        now blocks.

        Returns:
            ``{"risk": ..., "blocker_task": ... or None}``
        """
        org_id = user["org_id"]
        risk = await get_org_row(db, Risk, risk_id, org_id, "Risk")
        if risk.status == "realized":
            raise _conflict("Risk is already realized")

        blocker: Optional[Task] = None
        if blocker_task_id:
            blocker = await get_org_row(db, Task, blocker_task_id, org_id, "Task")
        elif create_blocker:
            blocker = Task(
                org_id=risk.org_id,
                project_id=risk.project_id,
                title=f"Risk realized: {risk.title}",
                description=risk.mitigation_plan or risk.description or None,
                status="blocked",
                priority="high",
            )
            db.add(blocker)
            await db.flush()
            logger.info("Created blocker task %s for realized risk %s", blocker.id, risk.id)

        risk.status = "realized"
        risk.realized_at = _now()
        if blocker is not None:
            risk.blocker_task_id = blocker.id
        await db.flush()
        await db.refresh(risk)
        return {
            "risk": row_to_dict(risk),
            "blocker_task": row_to_dict(blocker) if blocker is not None else None,
        }

    # =======================================================================
    # Change requests
    # =======================================================================

    @staticmethod
    async def list_change_requests(
        db: AsyncSession,
        org_id,
        project_id: Optional[uuid.UUID] = None,
        pending_only: bool = False,
    ) -> List[ChangeRequest]:
        query = select(ChangeRequest).where(ChangeRequest.org_id == to_uuid(org_id))
        if project_id:
            query = query.where(ChangeRequest.project_id == project_id)
        if pending_only:
            query = query.where(ChangeRequest.status == "pending_approval")
        result = await db.execute(query.order_by(ChangeRequest.requested_at.desc()))
        return list(result.scalars().all())

    @staticmethod
    async def add_change_request(
        db: AsyncSession, user: Dict[str, Any], data: Dict[str, Any]
    ) -> ChangeRequest:
        project = await get_org_row(db, Project, data["project_id"], user["org_id"], "Project")
        initial_status = data.get("status") or "draft"
        if initial_status not in ("draft", "pending_approval"):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="New change requests start as draft or pending_approval",
            )
        change_request = ChangeRequest(
            org_id=to_uuid(user["org_id"]),
            project_id=project.id,
            program_id=data.get("program_id") or project.program_id,
            title=data["title"],
            description=data.get("description") or "",
            type=data["type"],
            status=initial_status,
            requested_by=to_uuid(user["id"]),
            requested_at=_now(),
            items=data.get("items") or [],
            impact_summary=data.get("impact_summary"),
            approver_ids=[str(a) for a in data.get("approver_ids") or []],
            approvals=[],
        )
        db.add(change_request)
        await db.flush()
        await db.refresh(change_request)
        return change_request

    @staticmethod
    async def update_change_request(
        db: AsyncSession, org_id, cr_id: uuid.UUID, changes: Dict[str, Any]
    ) -> ChangeRequest:
        change_request = await get_org_row(db, ChangeRequest, cr_id, org_id, "Change request")

        target = changes.get("status")
        if target and target != change_request.status:
            if not can_transition(change_request.status, target):
                raise _conflict(
                    f"Cannot move change request from {change_request.status} to {target}"
                )
            change_request.status = target
            if target == "implemented":
                change_request.implemented_at = _now()
            if target == "draft":
                change_request.approvals = []

        if "approver_ids" in changes and changes["approver_ids"] is not None:
            changes = {**changes, "approver_ids": [str(a) for a in changes["approver_ids"]]}
        apply_updates(change_request, changes, CHANGE_REQUEST_FIELDS)
        await db.flush()
        await db.refresh(change_request)
        return change_request

    @staticmethod
    async def remove_change_request(db: AsyncSession, org_id, cr_id: uuid.UUID) -> None:
        change_request = await get_org_row(db, ChangeRequest, cr_id, org_id, "Change request")
        await db.delete(change_request)
        await db.flush()

    @staticmethod
    async def add_approval(
        db: AsyncSession,
        org_id,
        cr_id: uuid.UUID,
        approver_id: str,
        approved: bool,
        comment: Optional[str] = None,
    ) -> ChangeRequest:
        change_request = await get_org_row(db, ChangeRequest, cr_id, org_id, "Change request")
        if change_request.status != "pending_approval":
            raise _conflict("Change request is not pending approval")

        approver_ids = [str(a) for a in change_request.approver_ids or []]
        if approver_ids and str(approver_id) not in approver_ids:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not an approver for this change request",
            )

        approvals = [
            a for a in change_request.approvals or [] if str(a.get("approver_id")) != str(approver_id)
        ]
        approvals.append(
            {
                "approver_id": str(approver_id),
                "approved": bool(approved),
                "comment": comment,
                "at": _now().isoformat(),
            }
        )
        # reassign so the JSONB column is flagged dirty
        change_request.approvals = approvals

        resolved = resolve_approval_status(approver_ids, approvals)
        if resolved:
            change_request.status = resolved
            logger.info("Change request %s resolved as %s", change_request.id, resolved)
        await db.flush()
        await db.refresh(change_request)
        return change_request

    # =======================================================================
    # Portfolio decisions (append-only)
    # =======================================================================

    @staticmethod
    async def add_decision(
        db: AsyncSession, user: Dict[str, Any], data: Dict[str, Any]
    ) -> PortfolioDecision:
        portfolio = await get_org_row(
            db, Portfolio, data["portfolio_id"], user["org_id"], "Portfolio"
        )
        decision = PortfolioDecision(
            org_id=to_uuid(user["org_id"]),
            portfolio_id=portfolio.id,
            type=data["type"],
            title=data["title"],
            description=data.get("description") or "",
            outcome=data.get("outcome") or "",
            project_ids=[str(p) for p in data.get("project_ids") or []],
            program_ids=[str(p) for p in data.get("program_ids") or []],
            decided_by=to_uuid(user["id"]),
            decided_at=_now(),
            details=data.get("metadata"),
        )
        db.add(decision)
        await db.flush()
        await db.refresh(decision)
        return decision

    @staticmethod
    async def list_decisions(
        db: AsyncSession, org_id, portfolio_id: Optional[uuid.UUID] = None
    ) -> List[PortfolioDecision]:
        query = select(PortfolioDecision).where(PortfolioDecision.org_id == to_uuid(org_id))
        if portfolio_id:
            query = query.where(PortfolioDecision.portfolio_id == portfolio_id)
        result = await db.execute(query.order_by(PortfolioDecision.decided_at.desc()))
        return list(result.scalars().all())

    # =======================================================================
    # Weekly prompts
    # =======================================================================

    @staticmethod
    async def list_weekly_prompts(db: AsyncSession, org_id, user_id) -> List[WeeklyPrompt]:
        result = await db.execute(
            select(WeeklyPrompt)
            .where(
                WeeklyPrompt.org_id == to_uuid(org_id),
                WeeklyPrompt.user_id == to_uuid(user_id),
                WeeklyPrompt.dismissed_at.is_(None),
            )
            .order_by(WeeklyPrompt.created_at.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def add_weekly_prompt(
        db: AsyncSession, org_id, user_id, data: Dict[str, Any]
    ) -> WeeklyPrompt:
        prompt = WeeklyPrompt(
            org_id=to_uuid(org_id),
            user_id=to_uuid(user_id),
            title=data["title"],
            description=data.get("description") or "",
            action_label=data.get("action_label"),
            action_href=data.get("action_href"),
        )
        db.add(prompt)
        await db.flush()
        await db.refresh(prompt)
        return prompt

    @staticmethod
    async def dismiss_weekly_prompt(
        db: AsyncSession, org_id, user_id, prompt_id: uuid.UUID
    ) -> WeeklyPrompt:
        prompt = await get_org_row(db, WeeklyPrompt, prompt_id, org_id, "Prompt")
        if str(prompt.user_id) != str(user_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Prompt not found")
        if prompt.dismissed_at is None:
            prompt.dismissed_at = _now()
            await db.flush()
        return prompt

    # =======================================================================
    # Insights
    # =======================================================================

    @staticmethod
    async def list_dismissed_insights(db: AsyncSession, org_id, user_id) -> List[str]:
        result = await db.execute(
            select(DismissedInsight.insight_id).where(
                DismissedInsight.org_id == to_uuid(org_id),
                DismissedInsight.user_id == to_uuid(user_id),
            )
        )
        return list(result.scalars().all())

    @staticmethod
    async def is_insight_dismissed(db: AsyncSession, org_id, user_id, insight_id: str) -> bool:
        return insight_id in await MasterbookService.list_dismissed_insights(db, org_id, user_id)

    @staticmethod
    async def dismiss_insight(db: AsyncSession, org_id, user_id, insight_id: str) -> None:
        if await MasterbookService.is_insight_dismissed(db, org_id, user_id, insight_id):
            return
        try:
            async with db.begin_nested():
                db.add(
                    DismissedInsight(
                        org_id=to_uuid(org_id),
                        user_id=to_uuid(user_id),
                        insight_id=insight_id,
                    )
                )
        except IntegrityError:
            # a concurrent request dismissed it first
            logger.debug("Insight %s already dismissed for %s", insight_id, user_id)

    # =======================================================================
    # Derived views
    # =======================================================================

    @staticmethod
    async def resource_conflicts(
        db: AsyncSession, org_id, project_id: Optional[uuid.UUID] = None
    ) -> List[Dict[str, Any]]:
        summary = await AllocationService.team_allocation(db, org_id)
        members = [
            {
                "id": row["member_id"],
                "name": row["name"],
                "project_ids": row["project_ids"],
                "allocation_percentage": row["allocation_percentage"],
            }
            for row in summary["members"]
        ]
        return build_resource_conflicts(members, [project_id] if project_id else None)

    @staticmethod
    async def week_ahead(db: AsyncSession, org_id, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or date.today()
        week_start, week_end = get_week_window(today)
        org_uuid = to_uuid(org_id)

        task_result = await db.execute(
            select(Task).where(Task.org_id == org_uuid, Task.archived_at.is_(None))
        )
        tasks = [row_to_dict(t) for t in task_result.scalars().all()]
        edges = await DependencyService.load_edges(db, org_id)

        critical: set = set()
        by_project: Dict[str, List[Dict[str, Any]]] = {}
        for task in tasks:
            by_project.setdefault(task["project_id"], []).append(task)
        for project_tasks in by_project.values():
            critical |= get_critical_path_task_ids(project_tasks, edges)

        milestone_result = await db.execute(
            select(Milestone).where(
                Milestone.org_id == org_uuid,
                Milestone.completed.is_(False),
                Milestone.due_date >= week_start,
                Milestone.due_date <= week_end,
            )
        )
        milestones = [row_to_dict(m) for m in milestone_result.scalars().all()]
        risks = [row_to_dict(r) for r in await MasterbookService.list_risks(db, org_id, active_only=True)]

        return build_week_ahead(tasks, milestones, risks, edges, critical, today)
