"""Reports router: status-update reports, PDF uploads and the retention sweep."""

import hmac
import logging
import os
from datetime import date

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_org_context, _safe_error
from app.models.notification import ReportUploadRequest, StatusUpdateRequest
from app.security import log_security_event
from app.services.access_control import require_write_access
from app.services.activity_service import ActivityService
from app.services.report_service import (
    REPORT_RETENTION_HOURS,
    ReportValidationError,
    cleanup_reports,
    upload_report,
)
from app.services.status_update_service import StatusUpdateService
from app.storage import ReportStorageError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/reports", tags=["reports"])


def _check_cron_secret(request: Request, authorization: str) -> None:
    """When CRON_SECRET is set, require ``Authorization: Bearer <secret>``."""
    secret = os.getenv("CRON_SECRET")
    if not secret:
        return
    expected = f"Bearer {secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        log_security_event("cron_auth_failed", request, {"endpoint": "reports/cleanup"})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


# ---------------------------------------------------------------------------
# POST /reports/cleanup
# ---------------------------------------------------------------------------


@router.post("/cleanup")
async def run_cleanup(
    request: Request,
    authorization: str = Header(None),
):
    """Delete stored reports older than the retention window.

    Called by an external cron as well as the in-process scheduler.
    """
    _check_cron_secret(request, authorization)
    try:
        return await cleanup_reports(REPORT_RETENTION_HOURS)
    except ReportStorageError as e:
        logger.error("Report cleanup failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        ) from e


# ---------------------------------------------------------------------------
# POST /reports/generate
# ---------------------------------------------------------------------------


@router.post("/generate")
async def generate_report(
    body: StatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Status update for a project or program as a markdown report."""
    try:
        update = await StatusUpdateService.generate(
            db, user["org_id"], body.scope, body.scope_id, body.format, body.next_focus, date.today()
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to generate report for %s %s: %s", body.scope, body.scope_id, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("generating report", e),
        ) from e

    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "report_generated", f"Generated report: {update['name']}",
        entity_type=body.scope, entity_id=body.scope_id, details={"format": body.format},
    )
    return {
        "name": update["name"],
        "scope": update["scope"],
        "scope_id": update["scope_id"],
        "format": update["format"],
        "generated_on": update["generated_on"],
        "markdown": update["markdown"],
    }


# ---------------------------------------------------------------------------
# POST /reports/upload
# ---------------------------------------------------------------------------


@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload(
    body: ReportUploadRequest,
    user: dict = Depends(get_org_context),
):
    """Store a client-rendered PDF; returns its storage path and public URL."""
    require_write_access(user)
    try:
        return await upload_report(body.filename, body.content)
    except ReportValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except ReportStorageError as e:
        logger.error("Report upload failed for %s: %s", body.filename, e)
        raise HTTPException(status_code=500, detail=str(e)) from e
