"""SQLAlchemy 2.0 ORM models for the Accord backend.

Import all models here so Alembic can discover them via::

    from app.models.db import Base  # noqa: F401

Every model must be imported at module level to register with the
``DeclarativeBase`` metadata.
"""

from app.models.db.base import Base, OrgScopedMixin, TimestampMixin  # noqa: F401

# Tenancy
from app.models.db.organization import (  # noqa: F401
    OrgInvite,
    OrgPermissionOverride,
    Organization,
    Profile,
    UserRole,
)

# People
from app.models.db.contact import Contact, TeamMember  # noqa: F401

# Portfolio hierarchy and work
from app.models.db.portfolio import (  # noqa: F401
    Portfolio,
    Program,
    Project,
    ProjectMember,
)
from app.models.db.task import Subtask, Task, TaskDependency  # noqa: F401
from app.models.db.milestone import Milestone, ScheduleBlock  # noqa: F401

# Masterbook
from app.models.db.masterbook import (  # noqa: F401
    ChangeRequest,
    DismissedInsight,
    PortfolioDecision,
    Risk,
    WeeklyPrompt,
)

# Notifications, audit and settings
from app.models.db.notification import Notification, NotificationSetting  # noqa: F401
from app.models.db.activity import ActivityLog, EmailLog, WatchedItem  # noqa: F401
from app.models.db.allocation import AllocationSetting  # noqa: F401

__all__ = [
    "Base",
    "TimestampMixin",
    "OrgScopedMixin",
    "Organization",
    "Profile",
    "UserRole",
    "OrgInvite",
    "OrgPermissionOverride",
    "Contact",
    "TeamMember",
    "Portfolio",
    "Program",
    "Project",
    "ProjectMember",
    "Task",
    "Subtask",
    "TaskDependency",
    "Milestone",
    "ScheduleBlock",
    "Risk",
    "ChangeRequest",
    "PortfolioDecision",
    "WeeklyPrompt",
    "DismissedInsight",
    "Notification",
    "NotificationSetting",
    "ActivityLog",
    "EmailLog",
    "WatchedItem",
    "AllocationSetting",
]
