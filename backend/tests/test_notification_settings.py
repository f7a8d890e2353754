"""
Unit Tests for Notification Settings

Tests:
- default settings shape
- merge_settings overlay and validation errors
- quiet hours, including windows that wrap midnight
- should_send_email channel, weekend and quiet-hour gating
- reading stored rows with stale or invalid values

Usage:
    cd backend && pytest tests/test_notification_settings.py -v
"""

import sys
import os
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.services.notification_service import (
    PREFERENCE_IDS,
    REMINDER_TIMINGS,
    NotificationSettingsError,
    _settings_from_row,
    default_settings,
    is_within_quiet_hours,
    merge_settings,
    should_send_email,
)

# Wednesday
WEEKDAY = datetime(2026, 3, 11, 12, 0, tzinfo=timezone.utc)
SATURDAY = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# FIXTURES AND TEST DATA FACTORIES
# ============================================================================

def make_settings(**overrides):
    settings = default_settings()
    settings.update(overrides)
    return settings


def make_row(**overrides):
    """Mock NotificationSetting row."""
    row = MagicMock()
    row.preferences = {}
    row.reminders = {}
    row.email_digest = "daily"
    row.quiet_hours_enabled = False
    row.quiet_hours_start = "22:00"
    row.quiet_hours_end = "08:00"
    row.weekend_notifications = True
    for key, value in overrides.items():
        setattr(row, key, value)
    return row


def at(hour, minute=0):
    return datetime(2026, 3, 11, hour, minute, tzinfo=timezone.utc)


# ============================================================================
# DEFAULTS
# ============================================================================

class TestDefaults:
    def test_every_preference_present(self):
        settings = default_settings()
        assert set(settings["preferences"]) == set(PREFERENCE_IDS)
        assert set(settings["reminders"]) == set(REMINDER_TIMINGS)

    def test_email_off_for_noisy_preferences(self):
        prefs = default_settings()["preferences"]
        assert prefs["task-updated"]["email_enabled"] is False
        assert prefs["comments"]["email_enabled"] is False
        assert prefs["task-assigned"]["email_enabled"] is True
        assert all(p["in_app_enabled"] for p in prefs.values())

    def test_scalar_defaults(self):
        settings = default_settings()
        assert settings["email_digest"] == "daily"
        assert settings["quiet_hours_enabled"] is False
        assert (settings["quiet_hours_start"], settings["quiet_hours_end"]) == ("22:00", "08:00")
        assert settings["weekend_notifications"] is True

    def test_defaults_are_fresh_copies(self):
        first = default_settings()
        first["preferences"]["comments"]["enabled"] = False
        assert default_settings()["preferences"]["comments"]["enabled"] is True


# ============================================================================
# MERGE
# ============================================================================

class TestMergeSettings:
    def test_overlays_changes(self):
        base = default_settings()
        merged = merge_settings(
            base,
            {
                "preferences": {"comments": {"enabled": False, "bogus": True}},
                "reminders": {"due-week": {"timing": "friday"}},
                "email_digest": "weekly",
                "quiet_hours_enabled": True,
            },
        )
        assert merged["preferences"]["comments"] == {
            "enabled": False,
            "email_enabled": False,
            "in_app_enabled": True,
        }
        assert merged["reminders"]["due-week"] == {"enabled": True, "timing": "friday"}
        assert merged["email_digest"] == "weekly"
        assert merged["quiet_hours_enabled"] is True
        # base is untouched
        assert base["email_digest"] == "daily"
        assert base["preferences"]["comments"]["enabled"] is True

    def test_none_values_are_ignored(self):
        merged = merge_settings(default_settings(), {"email_digest": None, "quiet_hours_start": None})
        assert merged["email_digest"] == "daily"
        assert merged["quiet_hours_start"] == "22:00"

    @pytest.mark.parametrize(
        "changes,message",
        [
            ({"preferences": {"billing": {"enabled": True}}}, "Unknown notification preference"),
            ({"reminders": {"due-year": {"enabled": True}}}, "Unknown reminder"),
            ({"email_digest": "hourly"}, "email_digest"),
            ({"quiet_hours_start": "24:00"}, "quiet_hours_start"),
            ({"quiet_hours_end": "7:30"}, "quiet_hours_end"),
        ],
    )
    def test_rejects_invalid(self, changes, message):
        with pytest.raises(NotificationSettingsError, match=message):
            merge_settings(default_settings(), changes)


# ============================================================================
# QUIET HOURS AND EMAIL GATING
# ============================================================================

class TestQuietHours:
    def test_disabled(self):
        assert is_within_quiet_hours(make_settings(), at(23)) is False

    @pytest.mark.parametrize(
        "now,expected",
        [(at(23), True), (at(2), True), (at(7, 59), True), (at(8), False), (at(12), False), (at(22), True)],
    )
    def test_window_wraps_midnight(self, now, expected):
        assert is_within_quiet_hours(make_settings(quiet_hours_enabled=True), now) is expected

    def test_same_day_window(self):
        settings = make_settings(
            quiet_hours_enabled=True, quiet_hours_start="12:00", quiet_hours_end="13:00"
        )
        assert is_within_quiet_hours(settings, at(12, 30)) is True
        assert is_within_quiet_hours(settings, at(13)) is False
        assert is_within_quiet_hours(settings, at(23)) is False

    def test_empty_window(self):
        settings = make_settings(
            quiet_hours_enabled=True, quiet_hours_start="09:00", quiet_hours_end="09:00"
        )
        assert is_within_quiet_hours(settings, at(9)) is False


class TestShouldSendEmail:
    def test_default_preference(self):
        assert should_send_email(default_settings(), "task-assigned", WEEKDAY) is True

    def test_email_channel_off(self):
        assert should_send_email(default_settings(), "comments", WEEKDAY) is False

    def test_preference_disabled(self):
        settings = merge_settings(
            default_settings(), {"preferences": {"overdue-tasks": {"enabled": False}}}
        )
        assert should_send_email(settings, "overdue-tasks", WEEKDAY) is False

    def test_weekend(self):
        assert should_send_email(default_settings(), "task-assigned", SATURDAY) is True
        quiet_weekends = make_settings(weekend_notifications=False)
        assert should_send_email(quiet_weekends, "task-assigned", SATURDAY) is False
        assert should_send_email(quiet_weekends, "task-assigned", WEEKDAY) is True

    def test_quiet_hours(self):
        settings = make_settings(quiet_hours_enabled=True)
        assert should_send_email(settings, "task-assigned", at(23)) is False


# ============================================================================
# STORED ROWS
# ============================================================================

class TestSettingsFromRow:
    def test_missing_row(self):
        assert _settings_from_row(None) == default_settings()

    def test_unknown_ids_dropped(self):
        row = make_row(
            preferences={"legacy-pref": {"enabled": False}, "comments": {"in_app_enabled": False}},
            reminders={"due-month": {"enabled": False}},
            email_digest="weekly",
        )
        settings = _settings_from_row(row)
        assert "legacy-pref" not in settings["preferences"]
        assert "due-month" not in settings["reminders"]
        assert settings["preferences"]["comments"]["in_app_enabled"] is False
        assert settings["email_digest"] == "weekly"

    def test_invalid_row_falls_back_to_defaults(self):
        row = make_row(email_digest="monthly", weekend_notifications=False)
        assert _settings_from_row(row) == default_settings()
