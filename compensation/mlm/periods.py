# compensation/mlm/periods.py
from __future__ import annotations

from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo


def period_start(period: str, moment: datetime, tz: ZoneInfo) -> datetime:
    """
    Start of the capping window containing `moment`, cut on the tenant's
    local calendar: midnight / Monday midnight / 1st of month midnight.
    """
    local = moment.astimezone(tz)
    day = local.date()

    if period == "daily":
        start_day = day
    elif period == "weekly":
        start_day = day - timedelta(days=day.weekday())
    elif period == "monthly":
        start_day = day.replace(day=1)
    else:
        raise ValueError(f"unknown capping period {period!r}")

    return datetime.combine(start_day, time.min, tzinfo=tz)


def period_end(period: str, start: datetime) -> datetime:
    tz = start.tzinfo
    day = start.date()

    if period == "daily":
        end_day = day + timedelta(days=1)
    elif period == "weekly":
        end_day = day + timedelta(days=7)
    elif period == "monthly":
        end_day = (day.replace(day=28) + timedelta(days=4)).replace(day=1)
    else:
        raise ValueError(f"unknown capping period {period!r}")

    return datetime.combine(end_day, time.min, tzinfo=tz)


def current_window(period: str, moment: datetime, tz: ZoneInfo) -> tuple[datetime, datetime]:
    start = period_start(period, moment, tz)
    return start, period_end(period, start)


def previous_window(period: str, moment: datetime, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """The window that closed most recently before `moment`."""
    current_start = period_start(period, moment, tz)
    start = period_start(period, current_start - timedelta(seconds=1), tz)
    return start, current_start
