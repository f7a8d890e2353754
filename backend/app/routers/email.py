"""Email router: sends mail to org contacts and members through Resend."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_org_context
from app.models.notification import SendEmailRequest
from app.security import log_security_event, rate_limit_sensitive
from app.services.access_control import require_write_access
from app.services.email_service import (
    EMAIL_ERROR_STATUS,
    EMAIL_ERRORS,
    EmailRateLimitError,
    EmailRecipientNotAllowed,
    EmailService,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["email"])


# ---------------------------------------------------------------------------
# POST /email/send
# ---------------------------------------------------------------------------


@router.post("/email/send")
@rate_limit_sensitive()
async def send_email(
    request: Request,
    body: SendEmailRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Send an email on behalf of the caller.

    Recipients must belong to the caller's organization unless the message
    is an invite. Per-sender hourly and daily limits apply.
    """
    require_write_access(user)
    try:
        return await EmailService.send_email(
            db, user, body.to, body.subject, body.body, is_invite_email=body.is_invite_email
        )
    except EMAIL_ERRORS as e:
        if isinstance(e, (EmailRecipientNotAllowed, EmailRateLimitError)):
            log_security_event(
                "email_rejected", request, {"user_id": user["id"], "reason": type(e).__name__}
            )
        raise HTTPException(status_code=EMAIL_ERROR_STATUS[type(e)], detail=str(e)) from e
