"""In-app notifications and per-user notification settings.

Settings are stored one row per (org, user). Reads fall back to the
defaults below when no row exists, and stored JSON is always merged onto
the defaults so newly added preference ids appear for existing users.
"""

import copy
import logging
import re
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.helpers.db_utils import row_to_dict, to_uuid
from app.models.db.contact import TeamMember
from app.models.db.notification import Notification, NotificationSetting
from app.models.db.organization import Profile
from app.models.db.task import Task
from app.services.email_service import EMAIL_ERRORS, EmailService
from app.workflow import CLOSED_STATUSES

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

PREFERENCE_IDS = (
    "task-assigned",
    "task-updated",
    "project-updates",
    "team-mentions",
    "comments",
    "overdue-tasks",
)
_EMAIL_OFF_BY_DEFAULT = {"task-updated", "comments"}

REMINDER_TIMINGS = {
    "due-today": "morning",
    "due-tomorrow": "evening",
    "due-week": "monday",
    "overdue": "morning",
}

EMAIL_DIGEST_OPTIONS = ("none", "daily", "weekly")
NOTIFICATION_TYPES = ("info", "success", "warning", "error", "task", "reminder")

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def default_preferences() -> Dict[str, Dict[str, bool]]:
    return {
        pref_id: {
            "enabled": True,
            "email_enabled": pref_id not in _EMAIL_OFF_BY_DEFAULT,
            "in_app_enabled": True,
        }
        for pref_id in PREFERENCE_IDS
    }


def default_reminders() -> Dict[str, Dict[str, Any]]:
    return {
        reminder_id: {"enabled": True, "timing": timing}
        for reminder_id, timing in REMINDER_TIMINGS.items()
    }


def default_settings() -> Dict[str, Any]:
    return {
        "preferences": default_preferences(),
        "reminders": default_reminders(),
        "email_digest": "daily",
        "quiet_hours_enabled": False,
        "quiet_hours_start": "22:00",
        "quiet_hours_end": "08:00",
        "weekend_notifications": True,
    }


class NotificationSettingsError(ValueError):
    """Invalid notification settings payload."""


def merge_settings(base: Dict[str, Any], changes: Dict[str, Any]) -> Dict[str, Any]:
    """
    Overlay ``changes`` onto ``base`` and validate the result.

    Raises:
        NotificationSettingsError: unknown preference/reminder id, bad digest
            option or malformed HH:MM time.
    """
    merged = copy.deepcopy(base)

    for pref_id, values in (changes.get("preferences") or {}).items():
        if pref_id not in PREFERENCE_IDS:
            raise NotificationSettingsError(f"Unknown notification preference: {pref_id}")
        merged["preferences"].setdefault(pref_id, {}).update(
            {k: bool(v) for k, v in values.items() if k in ("enabled", "email_enabled", "in_app_enabled")}
        )

    for reminder_id, values in (changes.get("reminders") or {}).items():
        if reminder_id not in REMINDER_TIMINGS:
            raise NotificationSettingsError(f"Unknown reminder: {reminder_id}")
        target = merged["reminders"].setdefault(reminder_id, {})
        if "enabled" in values:
            target["enabled"] = bool(values["enabled"])
        if values.get("timing"):
            target["timing"] = str(values["timing"])

    for key in ("email_digest", "quiet_hours_enabled", "quiet_hours_start", "quiet_hours_end", "weekend_notifications"):
        if changes.get(key) is not None:
            merged[key] = changes[key]

    if merged["email_digest"] not in EMAIL_DIGEST_OPTIONS:
        raise NotificationSettingsError(
            f"email_digest must be one of: {', '.join(EMAIL_DIGEST_OPTIONS)}"
        )
    for key in ("quiet_hours_start", "quiet_hours_end"):
        if not _HHMM.match(str(merged[key])):
            raise NotificationSettingsError(f"{key} must be HH:MM")
    return merged


def _parse_hhmm(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def is_within_quiet_hours(settings: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    """True when ``now`` falls in the quiet window; windows may wrap midnight."""
    if not settings.get("quiet_hours_enabled"):
        return False
    now = now or datetime.now(timezone.utc)
    start = _parse_hhmm(settings.get("quiet_hours_start", "22:00"))
    end = _parse_hhmm(settings.get("quiet_hours_end", "08:00"))
    current = now.time().replace(second=0, microsecond=0, tzinfo=None)
    if start == end:
        return False
    if start < end:
        return start <= current < end
    return current >= start or current < end


def should_send_email(settings: Dict[str, Any], preference: str, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    pref = settings["preferences"].get(preference, {})
    if not pref.get("enabled", True) or not pref.get("email_enabled", True):
        return False
    if not settings.get("weekend_notifications", True) and now.weekday() >= 5:
        return False
    return not is_within_quiet_hours(settings, now)


def _settings_from_row(row: Optional[NotificationSetting]) -> Dict[str, Any]:
    base = default_settings()
    if row is None:
        return base
    stored = {
        "preferences": row.preferences or {},
        "reminders": row.reminders or {},
        "email_digest": row.email_digest,
        "quiet_hours_enabled": row.quiet_hours_enabled,
        "quiet_hours_start": row.quiet_hours_start,
        "quiet_hours_end": row.quiet_hours_end,
        "weekend_notifications": row.weekend_notifications,
    }
    # Drop ids that are no longer known instead of failing on old rows
    stored["preferences"] = {k: v for k, v in stored["preferences"].items() if k in PREFERENCE_IDS}
    stored["reminders"] = {k: v for k, v in stored["reminders"].items() if k in REMINDER_TIMINGS}
    try:
        return merge_settings(base, stored)
    except NotificationSettingsError as e:
        logger.warning("Ignoring invalid stored notification settings: %s", e)
        return base


class NotificationService:
    """Notification rows and notification settings."""

    # -- settings -----------------------------------------------------------

    @staticmethod
    async def _get_settings_row(db: AsyncSession, org_id, user_id) -> Optional[NotificationSetting]:
        result = await db.execute(
            select(NotificationSetting).where(
                NotificationSetting.org_id == to_uuid(org_id),
                NotificationSetting.user_id == to_uuid(user_id),
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_settings(db: AsyncSession, org_id, user_id) -> Dict[str, Any]:
        row = await NotificationService._get_settings_row(db, org_id, user_id)
        return _settings_from_row(row)

    @staticmethod
    async def get_or_create_settings(db: AsyncSession, org_id, user_id) -> Dict[str, Any]:
        row = await NotificationService._get_settings_row(db, org_id, user_id)
        if row is None:
            defaults = default_settings()
            row = NotificationSetting(org_id=to_uuid(org_id), user_id=to_uuid(user_id), **defaults)
            db.add(row)
            await db.flush()
        return _settings_from_row(row)

    @staticmethod
    async def save_settings(db: AsyncSession, org_id, user_id, settings: Dict[str, Any]) -> Dict[str, Any]:
        row = await NotificationService._get_settings_row(db, org_id, user_id)
        if row is None:
            row = NotificationSetting(org_id=to_uuid(org_id), user_id=to_uuid(user_id), **settings)
            db.add(row)
        else:
            for key, value in settings.items():
                setattr(row, key, value)
        await db.flush()
        return _settings_from_row(row)

    @staticmethod
    async def update_settings(db: AsyncSession, org_id, user_id, changes: Dict[str, Any]) -> Dict[str, Any]:
        current = await NotificationService.get_settings(db, org_id, user_id)
        merged = merge_settings(current, changes)
        return await NotificationService.save_settings(db, org_id, user_id, merged)

    @staticmethod
    async def reset_settings(db: AsyncSession, org_id, user_id) -> Dict[str, Any]:
        return await NotificationService.save_settings(db, org_id, user_id, default_settings())

    # -- notifications ------------------------------------------------------

    @staticmethod
    async def _send_notification_email(db: AsyncSession, user_id, title: str, message: str) -> bool:
        """Mail a notification to the recipient's profile address; failures are only logged."""
        result = await db.execute(select(Profile.email).where(Profile.id == to_uuid(user_id)))
        address = result.scalar_one_or_none()
        if not address:
            return False
        try:
            await EmailService.post_to_resend(address, title, message)
        except EMAIL_ERRORS as e:
            logger.warning("Notification email to user %s failed: %s", user_id, e)
            return False
        return True

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        org_id,
        user_id,
        title: str,
        message: str,
        type: str = "info",
        project_id=None,
        task_id=None,
        preference: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Notification]:
        """
        Create an in-app notification unless the recipient opted out, and
        email it when the recipient's settings allow.

        ``preference`` names the settings entry that governs this kind of
        notification. When it is disabled nothing happens; when only its
        in-app channel is off no row is created and None is returned. Email
        goes out only for a named preference that passes
        ``should_send_email`` (email channel on, outside quiet hours, weekend
        rule).
        """
        in_app = True
        if preference:
            settings = await NotificationService.get_settings(db, org_id, user_id)
            pref = settings["preferences"].get(preference, {})
            if not pref.get("enabled", True):
                logger.debug("Notification %r suppressed for user %s by settings", title, user_id)
                return None
            in_app = pref.get("in_app_enabled", True)
            if should_send_email(settings, preference, now):
                await NotificationService._send_notification_email(db, user_id, title, message)

        if not in_app:
            return None
        notification = Notification(
            org_id=to_uuid(org_id),
            user_id=to_uuid(user_id),
            title=title,
            message=message,
            type=type if type in NOTIFICATION_TYPES else "info",
            project_id=to_uuid(project_id) if project_id else None,
            task_id=to_uuid(task_id) if task_id else None,
        )
        db.add(notification)
        await db.flush()
        return notification

    @staticmethod
    async def notify_team_member(
        db: AsyncSession,
        org_id,
        member_id,
        title: str,
        message: str,
        preference: str,
        type: str = "task",
        project_id=None,
        task_id=None,
    ) -> Optional[Notification]:
        """Notify the auth user linked to a team member, if there is one."""
        result = await db.execute(
            select(TeamMember.user_id).where(
                TeamMember.id == to_uuid(member_id),
                TeamMember.org_id == to_uuid(org_id),
            )
        )
        user_id = result.scalar_one_or_none()
        if user_id is None:
            return None
        return await NotificationService.create_notification(
            db,
            org_id,
            user_id,
            title,
            message,
            type=type,
            project_id=project_id,
            task_id=task_id,
            preference=preference,
        )

    @staticmethod
    async def list_notifications(
        db: AsyncSession, org_id, user_id, unread_only: bool = False, limit: int = 50
    ) -> List[Dict[str, Any]]:
        query = select(Notification).where(
            Notification.org_id == to_uuid(org_id),
            Notification.user_id == to_uuid(user_id),
        )
        if unread_only:
            query = query.where(Notification.read.is_(False))
        result = await db.execute(query.order_by(Notification.created_at.desc()).limit(limit))
        return [row_to_dict(n) for n in result.scalars().all()]

    @staticmethod
    async def unread_count(db: AsyncSession, org_id, user_id) -> int:
        result = await db.execute(
            select(func.count(Notification.id)).where(
                Notification.org_id == to_uuid(org_id),
                Notification.user_id == to_uuid(user_id),
                Notification.read.is_(False),
            )
        )
        return int(result.scalar() or 0)

    @staticmethod
    async def mark_read(db: AsyncSession, org_id, user_id, notification_id: uuid.UUID) -> bool:
        result = await db.execute(
            update(Notification)
            .where(
                Notification.id == notification_id,
                Notification.org_id == to_uuid(org_id),
                Notification.user_id == to_uuid(user_id),
            )
            .values(read=True)
        )
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, org_id, user_id) -> int:
        result = await db.execute(
            update(Notification)
            .where(
                Notification.org_id == to_uuid(org_id),
                Notification.user_id == to_uuid(user_id),
                Notification.read.is_(False),
            )
            .values(read=True)
        )
        return result.rowcount

    @staticmethod
    async def delete_notification(db: AsyncSession, org_id, user_id, notification_id: uuid.UUID) -> bool:
        result = await db.execute(
            delete(Notification).where(
                Notification.id == notification_id,
                Notification.org_id == to_uuid(org_id),
                Notification.user_id == to_uuid(user_id),
            )
        )
        return result.rowcount > 0

    @staticmethod
    async def clear_all(db: AsyncSession, org_id, user_id) -> int:
        result = await db.execute(
            delete(Notification).where(
                Notification.org_id == to_uuid(org_id),
                Notification.user_id == to_uuid(user_id),
            )
        )
        return result.rowcount

    # -- reminders ----------------------------------------------------------

    @staticmethod
    async def send_overdue_reminders(db: AsyncSession, today: Optional[date] = None) -> int:
        """
        Create one ``reminder`` notification per overdue, unfinished task.

        Assignees without a linked user, or with the ``overdue`` reminder
        disabled, are skipped; a task is reminded at most once per day.
        """
        today = today or datetime.now(timezone.utc).date()
        day_start = datetime.combine(today, time.min, tzinfo=timezone.utc)

        result = await db.execute(
            select(Task, TeamMember.user_id)
            .join(TeamMember, TeamMember.id == Task.assignee_id)
            .where(
                Task.due_date < today,
                Task.status.notin_(CLOSED_STATUSES),
                Task.archived_at.is_(None),
                TeamMember.user_id.is_not(None),
            )
        )
        created = 0
        for task, user_id in result.all():
            settings = await NotificationService.get_settings(db, task.org_id, user_id)
            if not settings["reminders"].get("overdue", {}).get("enabled", True):
                continue

            already = await db.execute(
                select(Notification.id)
                .where(
                    Notification.task_id == task.id,
                    Notification.user_id == user_id,
                    Notification.type == "reminder",
                    Notification.created_at >= day_start,
                )
                .limit(1)
            )
            if already.scalar_one_or_none() is not None:
                continue

            days_overdue = (today - task.due_date).days
            notification = await NotificationService.create_notification(
                db,
                task.org_id,
                user_id,
                title="Task overdue",
                message=f'"{task.title}" is {days_overdue} day{"s" if days_overdue != 1 else ""} overdue',
                type="reminder",
                project_id=task.project_id,
                task_id=task.id,
                preference="overdue-tasks",
            )
            if notification is not None:
                created += 1
        return created
