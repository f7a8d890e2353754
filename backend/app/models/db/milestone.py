"""SQLAlchemy models for milestones and personal schedule blocks."""

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.db.base import Base, OrgScopedMixin, TimestampMixin, uuid_pk

__all__ = ["Milestone", "ScheduleBlock"]


class Milestone(Base, OrgScopedMixin, TimestampMixin):
    __tablename__ = "milestones"
    __table_args__ = (
        CheckConstraint(
            "project_id IS NOT NULL OR program_id IS NOT NULL",
            name="ck_milestones_parent",
        ),
    )

    id: Mapped[uuid.UUID] = uuid_pk()
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
    )
    program_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("programs.id", ondelete="CASCADE"),
        nullable=True,
    )
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="false")


class ScheduleBlock(Base, OrgScopedMixin, TimestampMixin):
    """A block of time on a team member's calendar.

    ``source_type`` is ``manual``, ``task`` or ``milestone``; for the latter two
    ``source_id`` points at the originating row.
    """

    __tablename__ = "schedule_blocks"
    __table_args__ = (
        CheckConstraint("end_utc > start_utc", name="ck_schedule_blocks_range"),
    )

    id: Mapped[uuid.UUID] = uuid_pk()
    assignee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("team_members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    start_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    source_type: Mapped[str] = mapped_column(Text, nullable=False, server_default="manual")
    source_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
