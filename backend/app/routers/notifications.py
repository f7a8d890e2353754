"""Notification inbox and notification settings router."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_org_context, _safe_error
from app.models.notification import NotificationSettingsUpdate
from app.services.notification_service import (
    NotificationService,
    NotificationSettingsError,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["notifications"])


# ---------------------------------------------------------------------------
# GET /notifications
# ---------------------------------------------------------------------------


@router.get("/notifications")
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """List the caller's notifications, newest first."""
    try:
        notifications = await NotificationService.list_notifications(
            db, user["org_id"], user["id"], unread_only=unread_only, limit=limit
        )
        unread = await NotificationService.unread_count(db, user["org_id"], user["id"])
    except Exception as e:
        logger.error("Failed to list notifications for %s: %s", user["id"], e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("listing notifications", e),
        ) from e
    return {"notifications": notifications, "unread_count": unread}


@router.get("/notifications/unread-count")
async def get_unread_count(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    count = await NotificationService.unread_count(db, user["org_id"], user["id"])
    return {"unread_count": count}


# ---------------------------------------------------------------------------
# POST /notifications/{id}/read, POST /notifications/read-all
# ---------------------------------------------------------------------------


@router.post("/notifications/read-all")
async def mark_all_notifications_read(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    updated = await NotificationService.mark_all_read(db, user["org_id"], user["id"])
    return {"success": True, "updated": updated}


@router.post("/notifications/{notification_id}/read")
async def mark_notification_read(
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    if not await NotificationService.mark_read(db, user["org_id"], user["id"], notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}


# ---------------------------------------------------------------------------
# DELETE /notifications/{id}, DELETE /notifications
# ---------------------------------------------------------------------------


@router.delete("/notifications/{notification_id}")
async def delete_notification(
    notification_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    if not await NotificationService.delete_notification(
        db, user["org_id"], user["id"], notification_id
    ):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}


@router.delete("/notifications")
async def clear_notifications(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    deleted = await NotificationService.clear_all(db, user["org_id"], user["id"])
    return {"success": True, "deleted": deleted}


# ---------------------------------------------------------------------------
# GET/PUT /notification-settings, POST /notification-settings/reset
# ---------------------------------------------------------------------------


@router.get("/notification-settings")
async def get_notification_settings(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Return the caller's settings, creating the default row on first read."""
    try:
        return await NotificationService.get_or_create_settings(db, user["org_id"], user["id"])
    except Exception as e:
        logger.error("Failed to load notification settings for %s: %s", user["id"], e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("loading notification settings", e),
        ) from e


@router.put("/notification-settings")
async def update_notification_settings(
    body: NotificationSettingsUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Merge a partial update into the caller's settings."""
    changes = body.model_dump(exclude_none=True)

    try:
        return await NotificationService.update_settings(db, user["org_id"], user["id"], changes)
    except NotificationSettingsError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error("Failed to update notification settings for %s: %s", user["id"], e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("updating notification settings", e),
        ) from e


@router.post("/notification-settings/reset")
async def reset_notification_settings(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    return await NotificationService.reset_settings(db, user["org_id"], user["id"])
