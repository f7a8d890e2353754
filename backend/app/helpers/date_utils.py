"""Date parsing and formatting helpers shared by the scheduling modules.

Rows arrive either as ORM-backed dicts (``date``/``datetime`` values) or as
JSON payloads (ISO strings), so every helper here accepts both.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional


def parse_date(value: Any) -> Optional[date]:
    """Coerce a date, datetime or ISO string to a ``date``; None if unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            return None
    return None


def parse_datetime(value: Any) -> Optional[datetime]:
    """Coerce to a timezone-aware datetime (naive values are taken as UTC)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def start_of_week(day: date) -> date:
    """Monday of the week containing ``day``."""
    return day - timedelta(days=day.weekday())


def start_of_month(day: date) -> date:
    return day.replace(day=1)


def end_of_month(day: date) -> date:
    if day.month == 12:
        return date(day.year, 12, 31)
    return date(day.year, day.month + 1, 1) - timedelta(days=1)


def format_short_date(day: date) -> str:
    """``Mar 5, 2026``"""
    return f"{day.strftime('%b')} {day.day}, {day.year}"


def format_long_date(day: date) -> str:
    """``March 5, 2026``"""
    return f"{day.strftime('%B')} {day.day}, {day.year}"
