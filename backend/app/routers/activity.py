"""Activity feed and watched items router."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_org_context, _safe_error
from app.helpers.db_utils import row_to_dict, to_uuid
from app.models.db.activity import WatchedItem
from app.models.org_models import WatchItemCreate
from app.services.activity_service import (
    ACTIVITY_CATEGORIES,
    MAX_ACTIVITY_LIMIT,
    ActivityService,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["activity"])


# ---------------------------------------------------------------------------
# GET /activity
# ---------------------------------------------------------------------------


@router.get("/activity")
async def list_activity(
    category: str = Query(None),
    entity_type: str = Query(None),
    entity_id: uuid.UUID = Query(None),
    user_id: uuid.UUID = Query(None),
    limit: int = Query(50, ge=1, le=MAX_ACTIVITY_LIMIT),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Org activity, newest first. Viewers only see their own entries."""
    if category and category not in ACTIVITY_CATEGORIES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid category. Must be one of: {', '.join(ACTIVITY_CATEGORIES)}",
        )
    try:
        return await ActivityService.list_activity(
            db,
            user["org_id"],
            user,
            category=category,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            limit=limit,
            offset=offset,
        )
    except Exception as e:
        logger.error("Failed to list activity: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("listing activity", e),
        ) from e


# ---------------------------------------------------------------------------
# Watched items
# ---------------------------------------------------------------------------


@router.get("/watched-items")
async def list_watched_items(
    item_type: str = Query(None),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    query = select(WatchedItem).where(
        WatchedItem.org_id == to_uuid(user["org_id"]),
        WatchedItem.user_id == to_uuid(user["id"]),
    )
    if item_type:
        query = query.where(WatchedItem.item_type == item_type)
    result = await db.execute(query.order_by(WatchedItem.created_at.desc()))
    return [row_to_dict(w) for w in result.scalars().all()]


@router.post("/watched-items")
async def watch_item(
    body: WatchItemCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Watch an item; watching it again returns the existing row."""
    org_id = to_uuid(user["org_id"])
    user_id = to_uuid(user["id"])
    lookup = select(WatchedItem).where(
        WatchedItem.org_id == org_id,
        WatchedItem.user_id == user_id,
        WatchedItem.item_id == body.item_id,
    )
    existing = (await db.execute(lookup)).scalar_one_or_none()
    if existing is not None:
        return row_to_dict(existing)

    item = WatchedItem(org_id=org_id, user_id=user_id, **body.model_dump())
    try:
        async with db.begin_nested():
            db.add(item)
    except IntegrityError:
        # concurrent watch of the same item
        item = (await db.execute(lookup)).scalar_one()
    await db.refresh(item)
    return row_to_dict(item)


@router.delete("/watched-items/{item_id}")
async def unwatch_item(
    item_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    result = await db.execute(
        select(WatchedItem).where(
            WatchedItem.org_id == to_uuid(user["org_id"]),
            WatchedItem.user_id == to_uuid(user["id"]),
            WatchedItem.item_id == item_id,
        )
    )
    item = result.scalar_one_or_none()
    if item is not None:
        await db.delete(item)
        await db.flush()
    return {"success": True, "removed": item is not None}
