"""Masterbook ORM models.

Tables
------
- risks                 (risk register per project)
- change_requests       (scope change requests with approval trail)
- portfolio_decisions   (append-only decision log)
- weekly_prompts        (weekly review prompts per user)
- dismissed_insights    (contextual insights a user has closed)
"""

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, DateTime, ForeignKey, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.db.base import Base, OrgScopedMixin, TimestampMixin, uuid_pk

__all__ = [
    "Risk",
    "ChangeRequest",
    "PortfolioDecision",
    "WeeklyPrompt",
    "DismissedInsight",
]


class Risk(Base, OrgScopedMixin, TimestampMixin):
    __tablename__ = "risks"

    id: Mapped[uuid.UUID] = uuid_pk()
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    program_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default="identified")
    severity: Mapped[str] = mapped_column(Text, nullable=False, server_default="medium")
    owner_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    identified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    mitigation_plan: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    realized_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    blocker_task_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tasks.id", ondelete="SET NULL"),
        nullable=True,
    )


class ChangeRequest(Base, OrgScopedMixin, TimestampMixin):
    __tablename__ = "change_requests"

    id: Mapped[uuid.UUID] = uuid_pk()
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    program_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    type: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, server_default="draft")
    requested_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    items: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
    impact_summary: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    approver_ids: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
    approvals: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
    implemented_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class PortfolioDecision(Base, OrgScopedMixin):
    """Immutable decision log entry. Rows are only ever inserted."""

    __tablename__ = "portfolio_decisions"

    id: Mapped[uuid.UUID] = uuid_pk()
    portfolio_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("portfolios.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    outcome: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    project_ids: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
    program_ids: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")
    decided_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    decided_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    details: Mapped[Optional[dict]] = mapped_column("metadata", JSONB, nullable=True)


class WeeklyPrompt(Base, OrgScopedMixin):
    __tablename__ = "weekly_prompts"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    action_label: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    action_href: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    dismissed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class DismissedInsight(Base, OrgScopedMixin):
    __tablename__ = "dismissed_insights"
    __table_args__ = (
        UniqueConstraint(
            "org_id", "user_id", "insight_id", name="uq_dismissed_insights"
        ),
    )

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    insight_id: Mapped[str] = mapped_column(Text, nullable=False)
    dismissed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
