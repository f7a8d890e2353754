"""Stream router: user tokens for chat, video and activity feeds."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from app.deps import get_current_user
from app.models.notification import StreamTokenRequest
from app.security import rate_limit_auth
from app.services.stream_service import StreamNotConfiguredError, issue_stream_credentials

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["stream"])


@router.post("/stream/token")
@rate_limit_auth()
async def create_stream_token(
    request: Request,
    body: Optional[StreamTokenRequest] = None,
    user: dict = Depends(get_current_user),
):
    token_type = body.type if body else "chat"
    try:
        return issue_stream_credentials(user, token_type)
    except StreamNotConfiguredError as e:
        logger.error("STREAM_API_SECRET not configured")
        raise HTTPException(status_code=500, detail=str(e)) from e
