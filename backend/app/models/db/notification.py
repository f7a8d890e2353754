"""Notification ORM models.

Tables
------
- notifications           (in-app notification feed per user)
- notification_settings   (per-user preference, reminder and quiet-hour settings)
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.db.base import Base, OrgScopedMixin, TimestampMixin, uuid_pk

__all__ = ["Notification", "NotificationSetting"]


class Notification(Base, OrgScopedMixin):
    """A single in-app notification."""

    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False, server_default="info")
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    task_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class NotificationSetting(Base, OrgScopedMixin, TimestampMixin):
    """Per-user notification configuration.

    ``preferences`` maps preference ids to ``{enabled, email_enabled,
    in_app_enabled}``; ``reminders`` maps reminder ids to ``{enabled, timing}``.
    """

    __tablename__ = "notification_settings"
    __table_args__ = (
        UniqueConstraint("org_id", "user_id", name="uq_notification_settings_user"),
    )

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    preferences: Mapped[dict] = mapped_column(JSONB, nullable=False)
    reminders: Mapped[dict] = mapped_column(JSONB, nullable=False)
    email_digest: Mapped[str] = mapped_column(Text, nullable=False, server_default="daily")
    quiet_hours_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default="false"
    )
    quiet_hours_start: Mapped[str] = mapped_column(
        Text, nullable=False, server_default="22:00"
    )
    quiet_hours_end: Mapped[str] = mapped_column(
        Text, nullable=False, server_default="08:00"
    )
    weekend_notifications: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default="true"
    )
