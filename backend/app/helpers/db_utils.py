"""ORM row conversion and org-scoped lookup helpers.

Routers return plain dicts built by ``row_to_dict`` so UUIDs, dates and
Decimals serialise the same way everywhere, and the pure scheduling modules
(allocation, critical path, timeline) can consume the rows directly.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Set, Type, TypeVar

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

ModelT = TypeVar("ModelT")


def to_uuid(value: Any, label: str = "id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {label}",
        ) from exc


def serialize_value(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def row_to_dict(obj, skip_cols: Optional[Set[str]] = None) -> dict:
    skip = skip_cols or set()
    result = {}
    for col in obj.__table__.columns:
        if col.name in skip:
            continue
        result[col.name] = serialize_value(getattr(obj, col.key, None))
    return result


def rows_to_dicts(rows: Iterable[Any]) -> List[dict]:
    return [row_to_dict(row) for row in rows]


async def get_org_row(
    db: AsyncSession,
    model: Type[ModelT],
    row_id: Any,
    org_id: Any,
    label: str = "Resource",
) -> ModelT:
    """Fetch ``model`` by id within the caller's org; 404 when absent or foreign."""
    result = await db.execute(
        select(model).where(
            model.id == to_uuid(row_id, f"{label.lower()} id"),
            model.org_id == to_uuid(org_id, "org id"),
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{label} not found",
        )
    return row


def apply_updates(obj, updates: dict, allowed: Optional[Set[str]] = None) -> List[str]:
    """Set attributes from ``updates``; returns the names that changed."""
    changed = []
    for key, value in updates.items():
        if allowed is not None and key not in allowed:
            continue
        if getattr(obj, key) != value:
            setattr(obj, key, value)
            changed.append(key)
    return changed
