"""Week identifiers and boundaries for weekly aggregates.

Weeks run Monday 00:00:00.000 through Sunday 23:59:59.999 wall-clock time in
the configured timezone. The identifier is ``YYYY-W<NN>`` where ``YYYY`` is
the calendar year of the week's Monday and ``NN`` counts whole-or-partial
weeks from January 1st of that year:

    NN = ceil((weekStart - Jan 1) / 7 days)

This is not ISO 8601 numbering: a week starting on January 1st is ``W00``.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from rideon.config import get_settings

WEEK = timedelta(days=7)


def get_week_timezone() -> ZoneInfo:
    return ZoneInfo(get_settings().week_timezone)


def to_local(dt: datetime, tz: ZoneInfo | None = None) -> datetime:
    """Convert to naive wall-clock time in the week timezone (naive input is taken as-is)."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(tz or get_week_timezone()).replace(tzinfo=None)


def get_monday(dt: datetime | date) -> date:
    """Get the Monday of the week containing dt."""
    d = dt.date() if isinstance(dt, datetime) else dt
    return d - timedelta(days=d.weekday())


def get_week_id(dt: datetime, tz: ZoneInfo | None = None) -> str:
    """Week identifier for the instant ``dt``, e.g. '2026-W03'."""
    week_start = datetime.combine(get_monday(to_local(dt, tz)), time.min)
    year_start = datetime(week_start.year, 1, 1)
    week_number = math.ceil((week_start - year_start) / WEEK)
    return f"{week_start.year}-W{week_number:02d}"


def get_current_week_id(now: datetime | None = None) -> str:
    """Get the week identifier for the current week."""
    if now is None:
        now = datetime.now(timezone.utc)
    return get_week_id(now)

