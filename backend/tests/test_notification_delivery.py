"""
Unit Tests for Notification Delivery

Tests:
- create_notification emails the recipient when their settings allow
- email suppressed for email-off preferences and during quiet hours
- in-app channel off: no row, email still sent
- provider failures are logged, the in-app row is still created
- send_overdue_reminders: once per task per day, disabled reminder skipped

Usage:
    cd backend && pytest tests/test_notification_delivery.py -v
"""

import asyncio
import sys
import os
import uuid
from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.models.db.notification import Notification
from app.services import notification_service
from app.services.email_service import EmailConfigError
from app.services.notification_service import NotificationService, default_settings

# Wednesday
WEEKDAY_NOON = datetime(2026, 3, 11, 12, 0, tzinfo=timezone.utc)
WEEKDAY_NIGHT = datetime(2026, 3, 11, 23, 0, tzinfo=timezone.utc)

ORG_ID = str(uuid.uuid4())
USER_ID = str(uuid.uuid4())


# ============================================================================
# FIXTURES AND TEST DATA FACTORIES
# ============================================================================

def make_settings(**overrides):
    settings = default_settings()
    settings.update(overrides)
    return settings


def make_result(value=None, rows=None):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.all.return_value = rows or []
    return result


def make_mock_db(results=()):
    db = MagicMock()
    db.add = MagicMock()
    db.flush = AsyncMock()
    db.execute = AsyncMock(side_effect=list(results))
    return db


def notify(db, settings, preference="task-assigned", now=WEEKDAY_NOON, send=None):
    """Run create_notification with stored settings and the Resend call mocked."""
    send = send or AsyncMock(return_value={"id": "email-1"})
    with patch.object(
        NotificationService, "get_settings", AsyncMock(return_value=settings)
    ), patch.object(notification_service.EmailService, "post_to_resend", send):
        notification = asyncio.run(
            NotificationService.create_notification(
                db, ORG_ID, USER_ID, "Task assigned", "You have been assigned: Build",
                type="task", preference=preference, now=now,
            )
        )
    return notification, send


# ============================================================================
# EMAIL DELIVERY
# ============================================================================

class TestNotificationEmail:
    def test_emails_assignment(self):
        db = make_mock_db(results=[make_result("ana@example.com")])

        notification, send = notify(db, make_settings())

        send.assert_awaited_once_with("ana@example.com", "Task assigned", "You have been assigned: Build")
        assert isinstance(notification, Notification)
        assert notification.type == "task"
        db.add.assert_called_once_with(notification)

    def test_comments_are_in_app_only(self):
        db = make_mock_db()

        notification, send = notify(db, make_settings(), preference="comments")

        send.assert_not_awaited()
        db.execute.assert_not_awaited()
        assert notification is not None

    def test_quiet_hours_hold_email(self):
        db = make_mock_db()
        settings = make_settings(quiet_hours_enabled=True)

        notification, send = notify(db, settings, now=WEEKDAY_NIGHT)

        send.assert_not_awaited()
        assert notification is not None

    def test_in_app_off_still_emails(self):
        settings = make_settings()
        settings["preferences"]["task-assigned"]["in_app_enabled"] = False
        db = make_mock_db(results=[make_result("ana@example.com")])

        notification, send = notify(db, settings)

        assert notification is None
        send.assert_awaited_once()
        db.add.assert_not_called()

    def test_disabled_preference_sends_nothing(self):
        settings = make_settings()
        settings["preferences"]["task-assigned"]["enabled"] = False
        db = make_mock_db()

        notification, send = notify(db, settings)

        assert notification is None
        send.assert_not_awaited()
        db.add.assert_not_called()

    def test_profile_without_email(self):
        db = make_mock_db(results=[make_result(None)])

        notification, send = notify(db, make_settings())

        send.assert_not_awaited()
        assert notification is not None

    def test_provider_error_keeps_in_app_row(self):
        db = make_mock_db(results=[make_result("ana@example.com")])
        failing = AsyncMock(side_effect=EmailConfigError("Email service not configured"))

        with patch.object(notification_service.logger, "warning") as warning:
            notification, _ = notify(db, make_settings(), send=failing)

        assert notification is not None
        warning.assert_called_once()

    def test_no_preference_skips_settings(self):
        db = make_mock_db()
        with patch.object(NotificationService, "get_settings", AsyncMock()) as get_settings:
            notification = asyncio.run(
                NotificationService.create_notification(db, ORG_ID, USER_ID, "Hello", "World", type="bogus")
            )
        get_settings.assert_not_awaited()
        assert notification.type == "info"


# ============================================================================
# OVERDUE REMINDERS
# ============================================================================

def make_overdue_task(**overrides):
    values = {
        "id": uuid.uuid4(),
        "org_id": uuid.UUID(ORG_ID),
        "project_id": uuid.uuid4(),
        "title": "Ship release",
        "due_date": date(2026, 3, 9),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestOverdueReminders:
    def _run(self, db, settings=None):
        create = AsyncMock(return_value=MagicMock())
        with patch.object(
            NotificationService, "get_settings", AsyncMock(return_value=settings or make_settings())
        ), patch.object(NotificationService, "create_notification", create):
            created = asyncio.run(NotificationService.send_overdue_reminders(db, today=date(2026, 3, 11)))
        return created, create

    def test_reminds_once(self):
        task = make_overdue_task()
        user_id = uuid.uuid4()
        db = make_mock_db(results=[make_result(rows=[(task, user_id)]), make_result(None)])

        created, create = self._run(db)

        assert created == 1
        kwargs = create.await_args.kwargs
        assert kwargs["type"] == "reminder"
        assert kwargs["preference"] == "overdue-tasks"
        assert kwargs["message"] == '"Ship release" is 2 days overdue'

    def test_already_reminded_today(self):
        task = make_overdue_task()
        db = make_mock_db(results=[make_result(rows=[(task, uuid.uuid4())]), make_result(uuid.uuid4())])

        created, create = self._run(db)

        assert created == 0
        create.assert_not_awaited()

    def test_disabled_reminder_skipped(self):
        settings = make_settings()
        settings["reminders"]["overdue"]["enabled"] = False
        db = make_mock_db(results=[make_result(rows=[(make_overdue_task(), uuid.uuid4())])])

        created, create = self._run(db, settings)

        assert created == 0
        create.assert_not_awaited()
        assert db.execute.await_count == 1

    def test_single_day_wording(self):
        task = make_overdue_task(due_date=date(2026, 3, 10))
        db = make_mock_db(results=[make_result(rows=[(task, uuid.uuid4())]), make_result(None)])

        _, create = self._run(db)

        assert create.await_args.kwargs["message"] == '"Ship release" is 1 day overdue'
