"""
Business clock helpers.

All timestamps are stored as naive UTC. The business runs on UTC+3 and its
working day starts at 06:00 local time, so 02:00 local on the 5th still
belongs to the business day of the 4th.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta

from app.umbra.constants import BUSINESS_DAY_START_HOUR, BUSINESS_UTC_OFFSET_HOURS

_OFFSET = timedelta(hours=BUSINESS_UTC_OFFSET_HOURS)


def utcnow() -> datetime:
    return datetime.utcnow()


def to_local(utc_dt: datetime) -> datetime:
    return utc_dt + _OFFSET


def to_utc(local_dt: datetime) -> datetime:
    return local_dt - _OFFSET


def business_date(utc_dt: datetime | None = None) -> date:
    local = to_local(utc_dt or utcnow())
    if local.hour < BUSINESS_DAY_START_HOUR:
        return local.date() - timedelta(days=1)
    return local.date()


def business_day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC [start, end) of the given business date."""
    start_local = datetime.combine(day, time(hour=BUSINESS_DAY_START_HOUR))
    start = to_utc(start_local)
    return start, start + timedelta(days=1)


def next_business_day_start(utc_dt: datetime | None = None) -> datetime:
    _, end = business_day_bounds(business_date(utc_dt))
    return end


def local_datetime(day: date, hour: int, minute: int) -> datetime:
    """UTC instant for a local wall-clock time on the given calendar date."""
    return to_utc(datetime.combine(day, time(hour=hour, minute=minute)))


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    """UTC [start, end) of a calendar month in business time."""
    start = to_utc(datetime(year, month, 1))
    if month == 12:
        end = to_utc(datetime(year + 1, 1, 1))
    else:
        end = to_utc(datetime(year, month + 1, 1))
    return start, end


def parse_date(s: str | None) -> date | None:
    """Parse YYYY-MM-DD (or a full ISO timestamp) into a date."""
    if not s:
        return None
    s = str(s).strip()
    if not s:
        return None
    if len(s) > 10:
        return parse_datetime(s).date()  # type: ignore[union-attr]
    return date.fromisoformat(s)


def parse_datetime(s: str | None) -> datetime | None:
    """Parse an ISO timestamp; aware values are converted to naive UTC."""
    if not s:
        return None
    s = str(s).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        dt = (dt - dt.utcoffset()).replace(tzinfo=None)  # type: ignore[operator]
    return dt


def isoformat(dt: datetime | date | None) -> str | None:
    return dt.isoformat() if dt else None
