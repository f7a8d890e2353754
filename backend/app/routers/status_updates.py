"""Status update router: builds a project/program update and optionally
emails it."""

import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_org_context, _safe_error
from app.models.notification import StatusUpdateRequest
from app.security import rate_limit_sensitive
from app.services.access_control import require_write_access
from app.services.activity_service import ActivityService
from app.services.email_service import EMAIL_ERROR_STATUS, EMAIL_ERRORS, EmailService
from app.services.status_update_service import StatusUpdateService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["status-updates"])


# ---------------------------------------------------------------------------
# POST /status-updates
# ---------------------------------------------------------------------------


@router.post("/status-updates")
@rate_limit_sensitive()
async def create_status_update(
    request: Request,
    body: StatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Build a status update; with ``send_to`` the markdown is also emailed."""
    try:
        update = await StatusUpdateService.generate(
            db,
            user["org_id"],
            body.scope,
            body.scope_id,
            body.format,
            body.next_focus,
            date.today(),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Failed to build status update for %s %s: %s", body.scope, body.scope_id, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("building status update", e),
        ) from e

    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "report_generated",
        f"Generated status update: {update['name']}",
        entity_type=body.scope, entity_id=body.scope_id, details={"format": body.format},
    )

    update["email"] = None
    if body.send_to:
        require_write_access(user)
        try:
            update["email"] = await EmailService.send_email(
                db, user, body.send_to, f"Status update: {update['name']}", update["markdown"]
            )
        except EMAIL_ERRORS as e:
            raise HTTPException(status_code=EMAIL_ERROR_STATUS[type(e)], detail=str(e)) from e
    return update
