"""Canonical ``YYYY-MM-DD`` calendar-day strings.

Attendance keys and range queries only ever see the canonical string form.
It is fixed-width and zero-padded, so lexicographic comparison orders days
correctly.
"""
from __future__ import annotations

import calendar
import re
from datetime import date, datetime
from zoneinfo import ZoneInfo

from app.config import settings
from app.errors import ValidationError

_CANONICAL = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def canonical_date(value: date | datetime | str) -> str:
    """Reduce a date, datetime or date-like string to ``YYYY-MM-DD``.

    Datetimes keep their own calendar day (no timezone shifting). Strings may
    carry a time part (``2025-01-05T10:30:00``); it is dropped.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Invalid date format (YYYY-MM-DD)")

    text = value.strip()
    if _CANONICAL.match(text):
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError:
            raise ValidationError(f"Invalid date: {text}")
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        raise ValidationError(f"Invalid date format (YYYY-MM-DD): {text}")


def today(tz: str | None = None) -> str:
    """Today's canonical date in the configured local calendar."""
    return datetime.now(ZoneInfo(tz or settings.timezone)).date().isoformat()


def in_range(day: str, start: str | None, end: str | None) -> bool:
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


def date_range(start: date | str | None, end: date | str | None) -> tuple[str | None, str | None]:
    """Normalize an inclusive range; either bound may be open."""
    lo = canonical_date(start) if start else None
    hi = canonical_date(end) if end else None
    if lo and hi and lo > hi:
        raise ValidationError("Start date must not be after end date")
    return lo, hi


def month_bounds(year: int, month: int) -> tuple[str, str, int]:
    """First day, last day and number of days of a calendar month."""
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12")
    days = calendar.monthrange(year, month)[1]
    return date(year, month, 1).isoformat(), date(year, month, days).isoformat(), days


def day_of_month(day: str) -> int:
    return int(day[8:10])
