"""Feedback router: forwards feedback and bug reports to Canny."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from app.deps import get_current_user
from app.models.notification import FeedbackRequest
from app.security import rate_limit_sensitive
from app.services.feedback_service import (
    FeedbackConfigError,
    FeedbackProviderError,
    FeedbackService,
    FeedbackValidationError,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["feedback"])


@router.post("/feedback")
@rate_limit_sensitive()
async def submit_feedback(
    request: Request,
    body: FeedbackRequest,
    user: dict = Depends(get_current_user),
):
    try:
        return await FeedbackService.submit(user, body.title, body.description, body.type)
    except FeedbackValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except FeedbackConfigError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    except FeedbackProviderError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
