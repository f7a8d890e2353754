"""Masterbook router: risks, change requests, portfolio decisions, weekly
prompts, dismissed insights and the derived week-ahead and
resource-conflict views."""

import logging
import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_org_context, _safe_error
from app.helpers.db_utils import get_org_row, row_to_dict
from app.models.db.masterbook import ChangeRequest, Risk
from app.models.masterbook_models import (
    ApprovalCreate,
    ChangeRequestCreate,
    ChangeRequestUpdate,
    DecisionCreate,
    InsightDismiss,
    RiskCreate,
    RiskRealize,
    RiskUpdate,
    WeeklyPromptCreate,
)
from app.services.access_control import require_project_access, require_write_access
from app.services.masterbook_service import MasterbookService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/masterbook", tags=["masterbook"])


# ---------------------------------------------------------------------------
# Risks
# ---------------------------------------------------------------------------


@router.get("/risks")
async def list_risks(
    project_id: uuid.UUID = Query(None),
    active_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    risks = await MasterbookService.list_risks(
        db, user["org_id"], project_id=project_id, active_only=active_only
    )
    return [row_to_dict(r) for r in risks]


@router.post("/risks", status_code=status.HTTP_201_CREATED)
async def add_risk(
    body: RiskCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    await require_project_access(db, user, body.project_id, manage=True)
    risk = await MasterbookService.add_risk(db, user, body.model_dump())
    return row_to_dict(risk)


@router.patch("/risks/{risk_id}")
async def update_risk(
    risk_id: uuid.UUID,
    body: RiskUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    changes = body.model_dump(exclude_unset=True)
    risk = await get_org_row(db, Risk, risk_id, user["org_id"], "Risk")
    await require_project_access(db, user, risk.project_id, manage=True)
    if changes.get("project_id") and changes["project_id"] != risk.project_id:
        await require_project_access(db, user, changes["project_id"], manage=True)
    risk = await MasterbookService.update_risk(db, user["org_id"], risk_id, changes)
    return row_to_dict(risk)


@router.post("/risks/{risk_id}/realize")
async def realize_risk(
    risk_id: uuid.UUID,
    body: RiskRealize,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Mark a risk as realized, linking or creating the task it blocks."""
    risk = await get_org_row(db, Risk, risk_id, user["org_id"], "Risk")
    await require_project_access(db, user, risk.project_id, manage=True)
    return await MasterbookService.realize_risk(
        db, user, risk_id, blocker_task_id=body.blocker_task_id, create_blocker=body.create_blocker
    )


@router.delete("/risks/{risk_id}")
async def remove_risk(
    risk_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    risk = await get_org_row(db, Risk, risk_id, user["org_id"], "Risk")
    await require_project_access(db, user, risk.project_id, manage=True)
    await MasterbookService.remove_risk(db, user["org_id"], risk_id)
    return {"success": True}


# ---------------------------------------------------------------------------
# Change requests
# ---------------------------------------------------------------------------


@router.get("/change-requests")
async def list_change_requests(
    project_id: uuid.UUID = Query(None),
    pending_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    change_requests = await MasterbookService.list_change_requests(
        db, user["org_id"], project_id=project_id, pending_only=pending_only
    )
    return [row_to_dict(cr) for cr in change_requests]


@router.post("/change-requests", status_code=status.HTTP_201_CREATED)
async def add_change_request(
    body: ChangeRequestCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    await require_project_access(db, user, body.project_id, manage=True)
    change_request = await MasterbookService.add_change_request(db, user, body.model_dump())
    return row_to_dict(change_request)


@router.patch("/change-requests/{cr_id}")
async def update_change_request(
    cr_id: uuid.UUID,
    body: ChangeRequestUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Edit a change request; status moves must follow the approval workflow."""
    change_request = await get_org_row(db, ChangeRequest, cr_id, user["org_id"], "Change request")
    await require_project_access(db, user, change_request.project_id, manage=True)
    updated = await MasterbookService.update_change_request(
        db, user["org_id"], cr_id, body.model_dump(exclude_unset=True)
    )
    return row_to_dict(updated)


@router.post("/change-requests/{cr_id}/approvals")
async def add_approval(
    cr_id: uuid.UUID,
    body: ApprovalCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Record the caller's approval or rejection; may resolve the request."""
    require_write_access(user)
    change_request = await MasterbookService.add_approval(
        db, user["org_id"], cr_id, user["id"], body.approved, body.comment
    )
    return row_to_dict(change_request)


@router.delete("/change-requests/{cr_id}")
async def remove_change_request(
    cr_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    change_request = await get_org_row(db, ChangeRequest, cr_id, user["org_id"], "Change request")
    await require_project_access(db, user, change_request.project_id, manage=True)
    await MasterbookService.remove_change_request(db, user["org_id"], cr_id)
    return {"success": True}


# ---------------------------------------------------------------------------
# Portfolio decisions
# ---------------------------------------------------------------------------


@router.get("/decisions")
async def list_decisions(
    portfolio_id: uuid.UUID = Query(None),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    decisions = await MasterbookService.list_decisions(db, user["org_id"], portfolio_id)
    return [row_to_dict(d) for d in decisions]


@router.post("/decisions", status_code=status.HTTP_201_CREATED)
async def add_decision(
    body: DecisionCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Record a portfolio decision. Decisions cannot be edited or deleted."""
    require_write_access(user)
    decision = await MasterbookService.add_decision(db, user, body.model_dump())
    return row_to_dict(decision)


# ---------------------------------------------------------------------------
# Weekly prompts and insights
# ---------------------------------------------------------------------------


@router.get("/weekly-prompts")
async def list_weekly_prompts(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    prompts = await MasterbookService.list_weekly_prompts(db, user["org_id"], user["id"])
    return [row_to_dict(p) for p in prompts]


@router.post("/weekly-prompts", status_code=status.HTTP_201_CREATED)
async def add_weekly_prompt(
    body: WeeklyPromptCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    prompt = await MasterbookService.add_weekly_prompt(
        db, user["org_id"], user["id"], body.model_dump()
    )
    return row_to_dict(prompt)


@router.post("/weekly-prompts/{prompt_id}/dismiss")
async def dismiss_weekly_prompt(
    prompt_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    prompt = await MasterbookService.dismiss_weekly_prompt(
        db, user["org_id"], user["id"], prompt_id
    )
    return row_to_dict(prompt)


@router.get("/insights/dismissed")
async def list_dismissed_insights(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    insight_ids = await MasterbookService.list_dismissed_insights(db, user["org_id"], user["id"])
    return {"dismissed": insight_ids}


@router.post("/insights/dismiss")
async def dismiss_insight(
    body: InsightDismiss,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    await MasterbookService.dismiss_insight(db, user["org_id"], user["id"], body.insight_id)
    return {"success": True, "insight_id": body.insight_id}


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------


@router.get("/resource-conflicts")
async def get_resource_conflicts(
    project_id: uuid.UUID = Query(None),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Members whose allocation percentage exceeds capacity, worst first."""
    if project_id:
        await require_project_access(db, user, project_id)
    try:
        conflicts = await MasterbookService.resource_conflicts(db, user["org_id"], project_id)
    except Exception as e:
        logger.error("Failed to compute resource conflicts: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("computing resource conflicts", e),
        ) from e
    return {"conflicts": conflicts, "count": len(conflicts)}


@router.get("/week-ahead")
async def get_week_ahead(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    try:
        return await MasterbookService.week_ahead(db, user["org_id"], date.today())
    except Exception as e:
        logger.error("Failed to build week ahead: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("building week ahead", e),
        ) from e
