"""Portfolios and programs router.

Portfolios group programs, programs group projects. Deleting a portfolio or
program leaves its children in place with the parent link cleared.
"""

import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_org_context, _safe_error
from app.helpers.db_utils import apply_updates, get_org_row, row_to_dict, to_uuid
from app.models.db.milestone import Milestone
from app.models.db.portfolio import Portfolio, Program, Project
from app.models.db.task import Task
from app.models.project_models import (
    PortfolioCreate,
    PortfolioUpdate,
    ProgramCreate,
    ProgramUpdate,
)
from app.services.access_control import require_org_permission, require_write_access
from app.services.activity_service import ActivityService
from app.portfolio_summary import summarize_portfolio
from app.workflow import is_valid_project_status

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["portfolios"])

PORTFOLIO_FIELDS = {"name", "description", "owner_id", "status"}
PROGRAM_FIELDS = {
    "portfolio_id",
    "name",
    "description",
    "owner_id",
    "status",
    "budget",
    "allocated_budget",
    "start_date",
    "end_date",
    "custom_statuses",
}


def _check_program_status(program_status, custom_statuses) -> None:
    if program_status is not None and not is_valid_project_status(program_status, custom_statuses):
        raise HTTPException(status_code=400, detail=f"Invalid program status: {program_status}")


# ---------------------------------------------------------------------------
# Portfolios
# ---------------------------------------------------------------------------


@router.get("/portfolios")
async def list_portfolios(
    include_archived: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """List portfolios with the number of programs in each."""
    program_counts = (
        select(Program.portfolio_id, func.count(Program.id).label("program_count"))
        .where(Program.archived_at.is_(None))
        .group_by(Program.portfolio_id)
        .subquery()
    )
    query = (
        select(Portfolio, func.coalesce(program_counts.c.program_count, 0))
        .outerjoin(program_counts, program_counts.c.portfolio_id == Portfolio.id)
        .where(Portfolio.org_id == to_uuid(user["org_id"]))
    )
    if not include_archived:
        query = query.where(Portfolio.archived_at.is_(None))
    try:
        result = await db.execute(query.order_by(Portfolio.name))
    except Exception as e:
        logger.error("Failed to list portfolios: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("listing portfolios", e),
        ) from e

    portfolios = []
    for portfolio, count in result.all():
        data = row_to_dict(portfolio)
        data["program_count"] = int(count)
        portfolios.append(data)
    return portfolios


@router.get("/portfolios/{portfolio_id}")
async def get_portfolio(
    portfolio_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Portfolio detail with its programs."""
    portfolio = await get_org_row(db, Portfolio, portfolio_id, user["org_id"], "Portfolio")
    result = await db.execute(
        select(Program)
        .where(Program.portfolio_id == portfolio.id, Program.archived_at.is_(None))
        .order_by(Program.name)
    )
    data = row_to_dict(portfolio)
    data["programs"] = [row_to_dict(p) for p in result.scalars().all()]
    return data


@router.get("/portfolios/{portfolio_id}/summary")
async def get_portfolio_summary(
    portfolio_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Velocity, budget variance and health rolled up across the portfolio."""
    portfolio = await get_org_row(db, Portfolio, portfolio_id, user["org_id"], "Portfolio")
    programs = (
        await db.execute(
            select(Program).where(Program.portfolio_id == portfolio.id, Program.archived_at.is_(None))
        )
    ).scalars().all()
    program_ids = [p.id for p in programs]

    projects, tasks, milestones = [], [], []
    if program_ids:
        projects = (
            await db.execute(
                select(Project).where(
                    Project.program_id.in_(program_ids), Project.archived_at.is_(None)
                )
            )
        ).scalars().all()
    project_ids = [p.id for p in projects]
    if project_ids:
        tasks = (
            await db.execute(
                select(Task).where(Task.project_id.in_(project_ids), Task.archived_at.is_(None))
            )
        ).scalars().all()
    if program_ids:
        milestone_scope = Milestone.program_id.in_(program_ids)
        if project_ids:
            milestone_scope = or_(milestone_scope, Milestone.project_id.in_(project_ids))
        milestones = (await db.execute(select(Milestone).where(milestone_scope))).scalars().all()

    summary = summarize_portfolio(
        [row_to_dict(p) for p in programs],
        [row_to_dict(p) for p in projects],
        [row_to_dict(t) for t in tasks],
        [row_to_dict(m) for m in milestones],
    )
    summary["portfolio_id"] = str(portfolio.id)
    summary["name"] = portfolio.name
    return summary


@router.post("/portfolios", status_code=status.HTTP_201_CREATED)
async def create_portfolio(
    body: PortfolioCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    await require_org_permission(db, user, "create-projects")
    portfolio = Portfolio(org_id=to_uuid(user["org_id"]), **body.model_dump())
    db.add(portfolio)
    await db.flush()
    await db.refresh(portfolio)
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "portfolio_created", f"Created portfolio: {portfolio.name}",
        entity_type="portfolio", entity_id=portfolio.id,
    )
    return row_to_dict(portfolio)


@router.patch("/portfolios/{portfolio_id}")
async def update_portfolio(
    portfolio_id: uuid.UUID,
    body: PortfolioUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    portfolio = await get_org_row(db, Portfolio, portfolio_id, user["org_id"], "Portfolio")
    changed = apply_updates(portfolio, body.model_dump(exclude_unset=True), PORTFOLIO_FIELDS)
    if changed:
        await db.flush()
        await db.refresh(portfolio)
        await ActivityService.log_activity(
            db, user["org_id"], user["id"], "portfolio_updated", f"Updated portfolio: {portfolio.name}",
            entity_type="portfolio", entity_id=portfolio.id, details={"fields": changed},
        )
    return row_to_dict(portfolio)


@router.post("/portfolios/{portfolio_id}/archive")
async def archive_portfolio(
    portfolio_id: uuid.UUID,
    archived: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    portfolio = await get_org_row(db, Portfolio, portfolio_id, user["org_id"], "Portfolio")
    portfolio.archived_at = datetime.now(timezone.utc) if archived else None
    await db.flush()
    await db.refresh(portfolio)
    return row_to_dict(portfolio)


@router.delete("/portfolios/{portfolio_id}")
async def delete_portfolio(
    portfolio_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    await require_org_permission(db, user, "delete-projects")
    portfolio = await get_org_row(db, Portfolio, portfolio_id, user["org_id"], "Portfolio")
    name = portfolio.name
    await db.delete(portfolio)
    await db.flush()
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "portfolio_deleted", f"Deleted portfolio: {name}",
        entity_type="portfolio", entity_id=portfolio_id,
    )
    return {"success": True}


# ---------------------------------------------------------------------------
# Programs
# ---------------------------------------------------------------------------


@router.get("/programs")
async def list_programs(
    portfolio_id: uuid.UUID = Query(None),
    include_archived: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    query = select(Program).where(Program.org_id == to_uuid(user["org_id"]))
    if portfolio_id:
        query = query.where(Program.portfolio_id == portfolio_id)
    if not include_archived:
        query = query.where(Program.archived_at.is_(None))
    result = await db.execute(query.order_by(Program.name))
    return [row_to_dict(p) for p in result.scalars().all()]


@router.get("/programs/{program_id}")
async def get_program(
    program_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Program detail with its projects."""
    program = await get_org_row(db, Program, program_id, user["org_id"], "Program")
    result = await db.execute(
        select(Project)
        .where(Project.program_id == program.id, Project.archived_at.is_(None))
        .order_by(Project.name)
    )
    data = row_to_dict(program)
    data["projects"] = [row_to_dict(p) for p in result.scalars().all()]
    return data


@router.post("/programs", status_code=status.HTTP_201_CREATED)
async def create_program(
    body: ProgramCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    await require_org_permission(db, user, "create-projects")
    data = body.model_dump()
    if data["portfolio_id"]:
        await get_org_row(db, Portfolio, data["portfolio_id"], user["org_id"], "Portfolio")
    _check_program_status(data["status"], data["custom_statuses"])

    program = Program(org_id=to_uuid(user["org_id"]), **data)
    db.add(program)
    await db.flush()
    await db.refresh(program)
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "program_created", f"Created program: {program.name}",
        entity_type="program", entity_id=program.id,
    )
    return row_to_dict(program)


@router.patch("/programs/{program_id}")
async def update_program(
    program_id: uuid.UUID,
    body: ProgramUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    program = await get_org_row(db, Program, program_id, user["org_id"], "Program")
    changes = body.model_dump(exclude_unset=True)
    if changes.get("portfolio_id"):
        await get_org_row(db, Portfolio, changes["portfolio_id"], user["org_id"], "Portfolio")
    _check_program_status(
        changes.get("status"), changes.get("custom_statuses", program.custom_statuses)
    )

    changed = apply_updates(program, changes, PROGRAM_FIELDS)
    if changed:
        await db.flush()
        await db.refresh(program)
        await ActivityService.log_activity(
            db, user["org_id"], user["id"], "program_updated", f"Updated program: {program.name}",
            entity_type="program", entity_id=program.id, details={"fields": changed},
        )
    return row_to_dict(program)


@router.post("/programs/{program_id}/archive")
async def archive_program(
    program_id: uuid.UUID,
    archived: bool = Query(True),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    program = await get_org_row(db, Program, program_id, user["org_id"], "Program")
    program.archived_at = datetime.now(timezone.utc) if archived else None
    await db.flush()
    await db.refresh(program)
    return row_to_dict(program)


@router.delete("/programs/{program_id}")
async def delete_program(
    program_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    await require_org_permission(db, user, "delete-projects")
    program = await get_org_row(db, Program, program_id, user["org_id"], "Program")
    name = program.name
    await db.delete(program)
    await db.flush()
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "program_deleted", f"Deleted program: {name}",
        entity_type="program", entity_id=program_id,
    )
    return {"success": True}
