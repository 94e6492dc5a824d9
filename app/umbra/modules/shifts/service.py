from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from app.umbra.audit import record_event
from app.umbra.constants import BUSINESS_DAY_START_HOUR, BUSINESS_TIMEZONE_LABEL
from app.umbra.timeutil import business_date, local_datetime, to_local, utcnow
from app.umbra.utils import clean_str

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.umbra.models import User
    from app.umbra.modules.shifts.models import ProcessorShift, ShiftSetting

logger = logging.getLogger(__name__)

SHIFT_TYPES = ("MORNING", "DAY", "NIGHT")
SHIFT_STATUSES = ("SCHEDULED", "ACTIVE", "COMPLETED", "MISSED")

# Planned shift length used for the countdown shown to processors
SHIFT_LENGTH = timedelta(hours=8)
# Grace period after scheduled_end before an ACTIVE shift is closed automatically
AUTO_CLOSE_GRACE = timedelta(minutes=30)
MAX_PAYABLE_HOURS = 24

DEFAULT_SHIFTS = (
    {"shift_type": "MORNING", "name": "Morning shift", "start_hour": 6, "end_hour": 14},
    {"shift_type": "DAY", "name": "Day shift", "start_hour": 14, "end_hour": 22},
    {"shift_type": "NIGHT", "name": "Night shift", "start_hour": 22, "end_hour": 6},
)


class ShiftActionError(ValueError):
    def __init__(self, message: str, status: int = 400) -> None:
        super().__init__(message)
        self.status = status


@dataclass(frozen=True)
class ShiftWindow:
    shift_type: str
    start_hour: int
    start_minute: int
    end_hour: int
    end_minute: int

    @classmethod
    def from_setting(cls, setting: "ShiftSetting") -> "ShiftWindow":
        return cls(
            shift_type=setting.shift_type,
            start_hour=setting.start_hour,
            start_minute=setting.start_minute,
            end_hour=setting.end_hour,
            end_minute=setting.end_minute,
        )

    @property
    def crosses_midnight(self) -> bool:
        return (self.end_hour, self.end_minute) < (self.start_hour, self.start_minute)


DEFAULT_WINDOWS = tuple(
    ShiftWindow(d["shift_type"], d["start_hour"], 0, d["end_hour"], 0) for d in DEFAULT_SHIFTS
)


def is_time_in_shift(hour: int, minute: int, window: ShiftWindow) -> bool:
    """
    True when local hh:mm falls inside the window. Start is inclusive, end exclusive;
    a window whose end is before its start runs across midnight.
    """
    t = hour * 60 + minute
    start = window.start_hour * 60 + window.start_minute
    end = window.end_hour * 60 + window.end_minute
    if window.crosses_midnight:
        return t >= start or t < end
    return start <= t < end


def detect_shift_type(windows: list[ShiftWindow] | tuple[ShiftWindow, ...], now: datetime | None = None) -> str:
    local = to_local(now or utcnow())
    for w in windows:
        if is_time_in_shift(local.hour, local.minute, w):
            return w.shift_type
    for w in DEFAULT_WINDOWS:
        if is_time_in_shift(local.hour, local.minute, w):
            return w.shift_type
    return "MORNING"


def schedule_window(window: ShiftWindow, shift_date: date) -> tuple[datetime, datetime]:
    """
    UTC (scheduled_start, scheduled_end) of a shift on a business date.
    Start times before the business-day rollover belong to the next calendar date.
    """
    start_day = shift_date
    if window.start_hour < BUSINESS_DAY_START_HOUR:
        start_day = shift_date + timedelta(days=1)
    start = local_datetime(start_day, window.start_hour, window.start_minute)
    end_day = start_day + timedelta(days=1) if window.crosses_midnight else start_day
    end = local_datetime(end_day, window.end_hour, window.end_minute)
    if end <= start:
        end += timedelta(days=1)
    return start, end


def validate_setting_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate shift setting create/update payload. Returns list of errors."""
    errors = []
    shift_type = clean_str(payload.get("shiftType")).upper()
    if not partial or "shiftType" in payload:
        if shift_type not in SHIFT_TYPES:
            errors.append(f"Invalid shift type. Must be one of: {', '.join(SHIFT_TYPES)}")
    if not partial and not clean_str(payload.get("name")):
        errors.append("Name is required.")

    for key, upper in (("startHour", 23), ("endHour", 23), ("startMinute", 59), ("endMinute", 59)):
        required = key.endswith("Hour") and not partial
        if key not in payload or payload.get(key) is None:
            if required:
                errors.append(f"{key} is required.")
            continue
        value = payload.get(key)
        if isinstance(value, bool) or not isinstance(value, int) and not str(value).strip().isdigit():
            errors.append(f"{key} must be an integer.")
            continue
        if not 0 <= int(value) <= upper:
            errors.append(f"{key} must be between 0 and {upper}.")
    return errors


def ensure_default_settings(s: "Session") -> list["ShiftSetting"]:
    """Return all settings, creating the built-in three when none exist."""
    from app.umbra.modules.shifts.models import ShiftSetting

    settings = s.query(ShiftSetting).order_by(ShiftSetting.start_hour.asc()).all()
    if settings:
        return settings

    now = utcnow()
    for d in DEFAULT_SHIFTS:
        s.add(
            ShiftSetting(
                shift_type=d["shift_type"],
                name=d["name"],
                start_hour=d["start_hour"],
                start_minute=0,
                end_hour=d["end_hour"],
                end_minute=0,
                timezone=BUSINESS_TIMEZONE_LABEL,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
        )
    s.flush()
    logger.info("Created default shift settings")
    return s.query(ShiftSetting).order_by(ShiftSetting.start_hour.asc()).all()


def active_windows(s: "Session") -> list[ShiftWindow]:
    from app.umbra.modules.shifts.models import ShiftSetting

    rows = s.query(ShiftSetting).filter(ShiftSetting.is_active.is_(True)).all()
    return [ShiftWindow.from_setting(r) for r in rows]


def find_shift(s: "Session", processor_id: int, shift_date: date) -> "ProcessorShift | None":
    from app.umbra.modules.shifts.models import ProcessorShift

    return (
        s.query(ProcessorShift)
        .filter(ProcessorShift.processor_id == processor_id)
        .filter(ProcessorShift.shift_date == shift_date)
        .one_or_none()
    )


def get_or_create_current_shift(
    s: "Session", processor: "User", now: datetime | None = None
) -> tuple["ProcessorShift", bool]:
    """Current business-day shift for the processor; created SCHEDULED when missing."""
    from app.umbra.modules.shifts.models import ProcessorShift

    now = now or utcnow()
    day = business_date(now)
    shift = find_shift(s, processor.id, day)
    if shift:
        return shift, False

    windows = active_windows(s)
    shift_type = detect_shift_type(windows, now)
    window = next((w for w in windows if w.shift_type == shift_type), None)
    if window is None:
        window = next(w for w in DEFAULT_WINDOWS if w.shift_type == shift_type)
    start, end = schedule_window(window, day)

    shift = ProcessorShift(
        processor_id=processor.id,
        shift_type=shift_type,
        shift_date=day,
        scheduled_start=start,
        scheduled_end=end,
        status="SCHEDULED",
        created_at=now,
        updated_at=now,
    )
    try:
        with s.begin_nested():  # SAVEPOINT: a parallel request may insert the same day first
            s.add(shift)
            s.flush()
    except IntegrityError:
        existing = find_shift(s, processor.id, day)
        if existing is None:
            raise
        logger.info("Shift for processor_id=%s on %s created concurrently; reusing it", processor.id, day)
        return existing, False
    return shift, True


def start_shift(s: "Session", processor: "User", now: datetime | None = None) -> "ProcessorShift":
    now = now or utcnow()
    shift = find_shift(s, processor.id, business_date(now))
    if not shift:
        raise ShiftActionError("Shift not found.", 404)
    if shift.status == "ACTIVE":
        raise ShiftActionError("Shift is already active.")
    if shift.status == "COMPLETED":
        raise ShiftActionError("Shift is already completed.")

    shift.actual_start = now
    shift.status = "ACTIVE"
    shift.updated_at = now
    record_event(
        s,
        actor=processor,
        action="shift.start",
        entity_type="ProcessorShift",
        entity_id=str(shift.id),
        metadata={"shift_type": shift.shift_type, "shift_date": shift.shift_date.isoformat()},
    )
    return shift


def end_shift(s: "Session", processor: "User", now: datetime | None = None) -> "ProcessorShift":
    now = now or utcnow()
    shift = find_shift(s, processor.id, business_date(now))
    if not shift or shift.status != "ACTIVE":
        raise ShiftActionError("Active shift not found.", 404)

    shift.actual_end = now
    shift.status = "COMPLETED"
    shift.updated_at = now
    record_event(
        s,
        actor=processor,
        action="shift.end",
        entity_type="ProcessorShift",
        entity_id=str(shift.id),
        metadata={"hours": round(worked_hours(shift), 2)},
    )
    return shift


def time_remaining_ms(shift: "ProcessorShift", now: datetime | None = None) -> int | None:
    if shift.status != "ACTIVE" or not shift.actual_start:
        return None
    remaining = shift.actual_start + SHIFT_LENGTH - (now or utcnow())
    return max(0, int(remaining.total_seconds() * 1000))


def worked_hours(shift: "ProcessorShift") -> float:
    if not shift.actual_start or not shift.actual_end:
        return 0.0
    hours = (shift.actual_end - shift.actual_start).total_seconds() / 3600
    if hours < 0 or hours > MAX_PAYABLE_HOURS:
        return 0.0
    return hours


def shift_pay(shift: "ProcessorShift", hourly_rate: float) -> float:
    return round(worked_hours(shift) * hourly_rate, 2)


def auto_close_overdue_shifts(
    s: "Session", now: datetime | None = None, *, actor: "User | None" = None
) -> list["ProcessorShift"]:
    """
    Close ACTIVE shifts whose scheduled end passed more than the grace period ago.
    actual_end is pinned to scheduled_end + grace, not to the time of the sweep.
    """
    from app.umbra.modules.shifts.models import ProcessorShift

    now = now or utcnow()
    overdue = (
        s.query(ProcessorShift)
        .filter(ProcessorShift.status == "ACTIVE")
        .filter(ProcessorShift.scheduled_end < now - AUTO_CLOSE_GRACE)
        .all()
    )
    for shift in overdue:
        closed_at = shift.scheduled_end + AUTO_CLOSE_GRACE
        shift.actual_end = closed_at
        shift.status = "COMPLETED"
        shift.updated_at = now
        note = f"Closed automatically at {closed_at.isoformat()} UTC (scheduled end + 30 min)."
        shift.notes = f"{shift.notes}\n{note}" if shift.notes else note
        record_event(
            s,
            actor=actor,
            action="shift.auto_close",
            entity_type="ProcessorShift",
            entity_id=str(shift.id),
            metadata={"processor_id": shift.processor_id, "scheduled_end": shift.scheduled_end.isoformat()},
        )
    if overdue:
        logger.info("Auto-closed %s overdue shift(s)", len(overdue))
    return overdue
