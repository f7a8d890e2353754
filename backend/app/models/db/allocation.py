"""SQLAlchemy model for per-organization allocation weight settings."""

import uuid
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.db.base import Base, OrgScopedMixin, TimestampMixin, uuid_pk

__all__ = ["AllocationSetting"]


class AllocationSetting(Base, OrgScopedMixin, TimestampMixin):
    __tablename__ = "allocation_settings"
    __table_args__ = (UniqueConstraint("org_id", name="uq_allocation_settings_org"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    weights: Mapped[dict] = mapped_column(JSONB, nullable=False, server_default="{}")
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
