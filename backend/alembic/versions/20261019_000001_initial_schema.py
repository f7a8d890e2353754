"""Create the Accord schema: tenancy, portfolio hierarchy, tasks,
masterbook, notifications and audit tables.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID

revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Every tenant table carries an indexed org_id
ORG_SCOPED_TABLES = (
    "user_roles",
    "org_invites",
    "org_permission_overrides",
    "contacts",
    "team_members",
    "portfolios",
    "programs",
    "projects",
    "project_members",
    "milestones",
    "tasks",
    "subtasks",
    "task_dependencies",
    "schedule_blocks",
    "risks",
    "change_requests",
    "portfolio_decisions",
    "weekly_prompts",
    "dismissed_insights",
    "notifications",
    "notification_settings",
    "activity_logs",
    "watched_items",
    "email_logs",
    "allocation_settings",
)


def _id() -> sa.Column:
    return sa.Column(
        "id",
        UUID(),
        server_default=sa.text("gen_random_uuid()"),
        primary_key=True,
    )


def _org_id() -> sa.Column:
    return sa.Column("org_id", UUID(), nullable=False)


def _timestamps() -> list:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def _fk(column: str, target: str, ondelete: str, nullable: bool = True) -> sa.Column:
    return sa.Column(
        column,
        UUID(),
        sa.ForeignKey(target, ondelete=ondelete),
        nullable=nullable,
    )


def upgrade() -> None:
    # -- tenancy -------------------------------------------------------------
    op.create_table(
        "organizations",
        _id(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("slug", sa.Text(), nullable=False, unique=True),
        sa.Column("logo_url", sa.Text(), nullable=True),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "profiles",
        sa.Column("id", UUID(), primary_key=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("first_name", sa.Text(), nullable=True),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("org_id", UUID(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_profiles_org_id", "profiles", ["org_id"])
    op.create_table(
        "user_roles",
        _id(),
        _org_id(),
        sa.Column("user_id", UUID(), nullable=False),
        sa.Column("role", sa.Text(), server_default="member", nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "org_id", name="uq_user_roles_user_org"),
    )
    op.create_table(
        "org_invites",
        _id(),
        _org_id(),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("role", sa.Text(), server_default="member", nullable=False),
        sa.Column("token", sa.Text(), nullable=False, unique=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invited_by", UUID(), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "org_permission_overrides",
        _id(),
        _org_id(),
        sa.Column("level", sa.Text(), server_default="org", nullable=False),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("permission", sa.Text(), nullable=False),
        sa.Column("granted", sa.Boolean(), server_default="true", nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "org_id", "level", "role", "permission", name="uq_permission_override"
        ),
        sa.CheckConstraint(
            "level IN ('org','portfolio','program','project')",
            name="org_permission_overrides_level_check",
        ),
    )

    # -- people --------------------------------------------------------------
    op.create_table(
        "contacts",
        _id(),
        _org_id(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("company", sa.Text(), nullable=True),
        sa.Column("role", sa.Text(), nullable=True),
        sa.Column("expertise", ARRAY(sa.Text()), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "team_members",
        _id(),
        _org_id(),
        _fk("contact_id", "contacts.id", "CASCADE", nullable=False),
        sa.Column("user_id", UUID(), nullable=True),
        sa.Column("capacity", sa.Float(), server_default="40", nullable=False),
        sa.Column("availability", sa.Boolean(), server_default="true", nullable=False),
        sa.Column("preferred_roles", ARRAY(sa.Text()), nullable=True),
        sa.Column("workload", sa.Integer(), nullable=True),
        *_timestamps(),
    )

    # -- portfolio hierarchy -------------------------------------------------
    op.create_table(
        "portfolios",
        _id(),
        _org_id(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("owner_id", UUID(), nullable=True),
        sa.Column("status", sa.Text(), server_default="active", nullable=False),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "programs",
        _id(),
        _org_id(),
        _fk("portfolio_id", "portfolios.id", "SET NULL"),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("owner_id", UUID(), nullable=True),
        sa.Column("status", sa.Text(), server_default="planning", nullable=False),
        sa.Column("budget", sa.Numeric(14, 2), nullable=True),
        sa.Column("allocated_budget", sa.Numeric(14, 2), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("custom_statuses", JSONB(), nullable=True),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "projects",
        _id(),
        _org_id(),
        _fk("program_id", "programs.id", "SET NULL"),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), server_default="planning", nullable=False),
        sa.Column("progress", sa.Integer(), server_default="0", nullable=False),
        sa.Column("budget", sa.Numeric(14, 2), nullable=True),
        sa.Column("allocated_budget", sa.Numeric(14, 2), nullable=True),
        sa.Column("actual_cost", sa.Numeric(14, 2), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("custom_statuses", JSONB(), nullable=True),
        sa.Column("custom_task_statuses", JSONB(), nullable=True),
        sa.Column("custom_task_priorities", JSONB(), nullable=True),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "progress BETWEEN 0 AND 100", name="projects_progress_check"
        ),
    )
    op.create_table(
        "project_members",
        _id(),
        _org_id(),
        _fk("project_id", "projects.id", "CASCADE", nullable=False),
        _fk("member_id", "team_members.id", "CASCADE", nullable=False),
        sa.Column("role", sa.Text(), server_default="contributor", nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("project_id", "member_id", name="uq_project_members"),
    )

    # -- work ----------------------------------------------------------------
    op.create_table(
        "milestones",
        _id(),
        _org_id(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=False),
        _fk("project_id", "projects.id", "CASCADE"),
        _fk("program_id", "programs.id", "CASCADE"),
        sa.Column("completed", sa.Boolean(), server_default="false", nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "project_id IS NOT NULL OR program_id IS NOT NULL",
            name="ck_milestones_parent",
        ),
    )
    op.create_table(
        "tasks",
        _id(),
        _org_id(),
        _fk("project_id", "projects.id", "CASCADE", nullable=False),
        _fk("milestone_id", "milestones.id", "SET NULL"),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), server_default="todo", nullable=False),
        sa.Column("priority", sa.Text(), server_default="medium", nullable=False),
        _fk("assignee_id", "team_members.id", "SET NULL"),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("estimated_hours", sa.Float(), server_default="1", nullable=True),
        sa.Column("actual_hours", sa.Float(), nullable=True),
        sa.Column("weight", sa.Float(), server_default="1", nullable=True),
        sa.Column("cost", sa.Numeric(14, 2), nullable=True),
        sa.Column("actual_cost", sa.Numeric(14, 2), server_default="0", nullable=True),
        sa.Column("position", sa.Integer(), server_default="0", nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_tasks_project_id", "tasks", ["project_id"])
    op.create_index("ix_tasks_assignee_id", "tasks", ["assignee_id"])
    op.create_table(
        "subtasks",
        _id(),
        _org_id(),
        _fk("task_id", "tasks.id", "CASCADE", nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("completed", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("position", sa.Integer(), server_default="0", nullable=False),
        _fk("assignee_id", "team_members.id", "SET NULL"),
        *_timestamps(),
    )
    op.create_index("ix_subtasks_task_id", "subtasks", ["task_id"])
    op.create_table(
        "task_dependencies",
        _id(),
        _org_id(),
        _fk("predecessor_id", "tasks.id", "CASCADE", nullable=False),
        _fk("successor_id", "tasks.id", "CASCADE", nullable=False),
        sa.Column("type", sa.Text(), server_default="blocks", nullable=False),
        _created_at(),
        sa.UniqueConstraint(
            "predecessor_id", "successor_id", name="uq_task_dependencies_edge"
        ),
        sa.CheckConstraint(
            "predecessor_id <> successor_id", name="ck_task_dependencies_no_self"
        ),
        sa.CheckConstraint(
            "type IN ('blocks','relates_to')", name="task_dependencies_type_check"
        ),
    )
    op.create_table(
        "schedule_blocks",
        _id(),
        _org_id(),
        _fk("assignee_id", "team_members.id", "CASCADE", nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("start_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source_type", sa.Text(), server_default="manual", nullable=False),
        sa.Column("source_id", UUID(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("end_utc > start_utc", name="ck_schedule_blocks_range"),
    )
    op.create_index("ix_schedule_blocks_assignee_id", "schedule_blocks", ["assignee_id"])

    # -- masterbook ----------------------------------------------------------
    op.create_table(
        "risks",
        _id(),
        _org_id(),
        _fk("project_id", "projects.id", "CASCADE", nullable=False),
        sa.Column("program_id", UUID(), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), server_default="", nullable=False),
        sa.Column("status", sa.Text(), server_default="identified", nullable=False),
        sa.Column("severity", sa.Text(), server_default="medium", nullable=False),
        sa.Column("owner_id", UUID(), nullable=True),
        sa.Column(
            "identified_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("mitigation_plan", sa.Text(), nullable=True),
        sa.Column("realized_at", sa.DateTime(timezone=True), nullable=True),
        _fk("blocker_task_id", "tasks.id", "SET NULL"),
        *_timestamps(),
    )
    op.create_index("ix_risks_project_id", "risks", ["project_id"])
    op.create_table(
        "change_requests",
        _id(),
        _org_id(),
        _fk("project_id", "projects.id", "CASCADE", nullable=False),
        sa.Column("program_id", UUID(), nullable=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), server_default="", nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), server_default="draft", nullable=False),
        sa.Column("requested_by", UUID(), nullable=False),
        sa.Column(
            "requested_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("items", JSONB(), server_default="[]", nullable=False),
        sa.Column("impact_summary", JSONB(), nullable=True),
        sa.Column("approver_ids", JSONB(), server_default="[]", nullable=False),
        sa.Column("approvals", JSONB(), server_default="[]", nullable=False),
        sa.Column("implemented_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_change_requests_project_id", "change_requests", ["project_id"])
    op.create_table(
        "portfolio_decisions",
        _id(),
        _org_id(),
        _fk("portfolio_id", "portfolios.id", "CASCADE", nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), server_default="", nullable=False),
        sa.Column("outcome", sa.Text(), server_default="", nullable=False),
        sa.Column("project_ids", JSONB(), server_default="[]", nullable=False),
        sa.Column("program_ids", JSONB(), server_default="[]", nullable=False),
        sa.Column("decided_by", UUID(), nullable=False),
        sa.Column(
            "decided_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("metadata", JSONB(), nullable=True),
    )
    op.create_index(
        "ix_portfolio_decisions_portfolio_id", "portfolio_decisions", ["portfolio_id"]
    )
    op.create_table(
        "weekly_prompts",
        _id(),
        _org_id(),
        sa.Column("user_id", UUID(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), server_default="", nullable=False),
        sa.Column("action_label", sa.Text(), nullable=True),
        sa.Column("action_href", sa.Text(), nullable=True),
        sa.Column("dismissed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_table(
        "dismissed_insights",
        _id(),
        _org_id(),
        sa.Column("user_id", UUID(), nullable=False),
        sa.Column("insight_id", sa.Text(), nullable=False),
        sa.Column(
            "dismissed_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "org_id", "user_id", "insight_id", name="uq_dismissed_insights"
        ),
    )

    # -- notifications, audit and settings -----------------------------------
    op.create_table(
        "notifications",
        _id(),
        _org_id(),
        sa.Column("user_id", UUID(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.Text(), server_default="info", nullable=False),
        sa.Column("read", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("project_id", UUID(), nullable=True),
        sa.Column("task_id", UUID(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_table(
        "notification_settings",
        _id(),
        _org_id(),
        sa.Column("user_id", UUID(), nullable=False),
        sa.Column("preferences", JSONB(), nullable=False),
        sa.Column("reminders", JSONB(), nullable=False),
        sa.Column("email_digest", sa.Text(), server_default="daily", nullable=False),
        sa.Column(
            "quiet_hours_enabled", sa.Boolean(), server_default="false", nullable=False
        ),
        sa.Column("quiet_hours_start", sa.Text(), server_default="22:00", nullable=False),
        sa.Column("quiet_hours_end", sa.Text(), server_default="08:00", nullable=False),
        sa.Column(
            "weekend_notifications", sa.Boolean(), server_default="true", nullable=False
        ),
        *_timestamps(),
        sa.UniqueConstraint("org_id", "user_id", name="uq_notification_settings_user"),
    )
    op.create_table(
        "activity_logs",
        _id(),
        _org_id(),
        sa.Column("user_id", UUID(), nullable=True),
        sa.Column("activity_type", sa.Text(), nullable=False),
        sa.Column("category", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("entity_type", sa.Text(), nullable=True),
        sa.Column("entity_id", UUID(), nullable=True),
        sa.Column("metadata", JSONB(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
    op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])
    op.create_table(
        "watched_items",
        _id(),
        _org_id(),
        sa.Column("user_id", UUID(), nullable=False),
        sa.Column("item_id", UUID(), nullable=False),
        sa.Column("item_type", sa.Text(), nullable=False),
        sa.Column("item_name", sa.Text(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("user_id", "item_id", name="uq_watched_items_user_item"),
    )
    op.create_table(
        "email_logs",
        _id(),
        _org_id(),
        sa.Column("sender_id", UUID(), nullable=False),
        sa.Column("recipient", sa.Text(), nullable=False),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("content_hash", sa.Text(), nullable=False),
        sa.Column("is_invite", sa.Boolean(), server_default="false", nullable=False),
        sa.Column("provider_id", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_email_logs_sender_id", "email_logs", ["sender_id"])
    op.create_index("ix_email_logs_created_at", "email_logs", ["created_at"])
    op.create_table(
        "allocation_settings",
        _id(),
        _org_id(),
        sa.Column("weights", JSONB(), server_default="{}", nullable=False),
        sa.Column("updated_by", UUID(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("org_id", name="uq_allocation_settings_org"),
    )

    for table in ORG_SCOPED_TABLES:
        op.create_index(f"ix_{table}_org_id", table, ["org_id"])


def downgrade() -> None:
    for table in reversed(ORG_SCOPED_TABLES):
        op.drop_table(table)
    op.drop_table("profiles")
    op.drop_table("organizations")
