from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.umbra.audit import record_event
from app.umbra.modules.bonuses.service import not_burned
from app.umbra.timeutil import parse_datetime, utcnow
from app.umbra.utils import clean_str, money, parse_float

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.umbra.models import User
    from app.umbra.modules.salary.models import SalaryRequest, SalarySetting

DEFAULT_HOURLY_RATE = 2.0
REQUEST_STATUSES = ("PENDING", "APPROVED", "REJECTED", "PAID")
# Requests in these states block a new request for an overlapping period
BLOCKING_STATUSES = ("PENDING", "APPROVED", "PAID")

# action -> (required current status, resulting status)
REVIEW_TRANSITIONS = {
    "approve": ("PENDING", "APPROVED"),
    "reject": ("PENDING", "REJECTED"),
    "pay": ("APPROVED", "PAID"),
}


def active_salary_setting(s: "Session") -> "SalarySetting | None":
    from app.umbra.modules.salary.models import SalarySetting

    return (
        s.query(SalarySetting)
        .filter(SalarySetting.is_active.is_(True))
        .order_by(SalarySetting.created_at.desc(), SalarySetting.id.desc())
        .first()
    )


def current_hourly_rate(s: "Session") -> float:
    setting = active_salary_setting(s)
    return setting.hourly_rate if setting else DEFAULT_HOURLY_RATE


def default_setting_dict() -> dict:
    return {
        "id": None,
        "name": "Default salary settings",
        "description": "Base hourly rate",
        "hourlyRate": DEFAULT_HOURLY_RATE,
        "isActive": True,
    }


def replace_salary_setting(s: "Session", payload: dict, user: "User") -> "SalarySetting":
    """Deactivate the current settings and store a new active record."""
    from app.umbra.modules.salary.models import SalarySetting

    rate = parse_float(payload.get("hourlyRate"))
    if rate is None or rate < 0:
        raise ValueError("hourlyRate must be a non-negative number.")

    s.query(SalarySetting).filter(SalarySetting.is_active.is_(True)).update({"is_active": False})
    setting = SalarySetting(
        name=clean_str(payload.get("name")) or "Salary settings",
        description=clean_str(payload.get("description")) or None,
        hourly_rate=rate,
        is_active=True,
        created_at=utcnow(),
    )
    s.add(setting)
    s.flush()
    record_event(
        s,
        actor=user,
        action="salary_setting.replace",
        entity_type="SalarySetting",
        entity_id=str(setting.id),
        metadata={"hourly_rate": rate},
    )
    return setting


def earned_bonus_between(s: "Session", processor_id: int, start: datetime, end: datetime) -> float:
    """Sum of bonus on APPROVED deposits created in [start, end], leaving out burned bonuses."""
    from app.umbra.modules.deposits.models import Deposit

    total = (
        s.query(func.coalesce(func.sum(Deposit.bonus_amount), 0.0))
        .filter(Deposit.processor_id == processor_id)
        .filter(Deposit.status == "APPROVED")
        .filter(not_burned(Deposit))
        .filter(Deposit.created_at >= start)
        .filter(Deposit.created_at <= end)
        .scalar()
    )
    return money(float(total or 0.0))


def validate_salary_request(payload: dict, now: datetime | None = None) -> list[str]:
    """Validate a salary request payload. Returns list of errors."""
    now = now or utcnow()
    errors = []
    try:
        start = parse_datetime(payload.get("periodStart"))
        end = parse_datetime(payload.get("periodEnd"))
    except (TypeError, ValueError):
        return ["periodStart and periodEnd must be ISO dates."]
    if not start or not end:
        return ["periodStart and periodEnd are required."]
    if start >= end:
        errors.append("periodStart must be before periodEnd.")
    if end > now:
        errors.append("periodEnd cannot be in the future.")
    if payload.get("requestedAmount") not in (None, ""):
        amount = parse_float(payload.get("requestedAmount"))
        if amount is None or amount < 0:
            errors.append("requestedAmount must be a non-negative number.")
    return errors


def find_overlapping_request(
    s: "Session", processor_id: int, start: datetime, end: datetime
) -> "SalaryRequest | None":
    from app.umbra.modules.salary.models import SalaryRequest

    return (
        s.query(SalaryRequest)
        .filter(SalaryRequest.processor_id == processor_id)
        .filter(SalaryRequest.status.in_(BLOCKING_STATUSES))
        .filter(SalaryRequest.period_start <= end)
        .filter(SalaryRequest.period_end >= start)
        .first()
    )


def create_salary_request(s: "Session", payload: dict, user: "User") -> "SalaryRequest":
    """Create a PENDING request; caller validates the payload and checks overlaps first."""
    from app.umbra.modules.salary.models import SalaryRequest

    start = parse_datetime(payload["periodStart"])
    end = parse_datetime(payload["periodEnd"])
    calculated = earned_bonus_between(s, user.id, start, end)
    requested = parse_float(payload.get("requestedAmount"))
    now = utcnow()

    req = SalaryRequest(
        processor_id=user.id,
        period_start=start,
        period_end=end,
        calculated_amount=calculated,
        requested_amount=money(requested) if requested is not None else calculated,
        payment_details=clean_str(payload.get("paymentDetails")) or None,
        comment=clean_str(payload.get("comment")) or None,
        status="PENDING",
        created_at=now,
        updated_at=now,
    )
    s.add(req)
    s.flush()
    record_event(
        s,
        actor=user,
        action="salary_request.create",
        entity_type="SalaryRequest",
        entity_id=str(req.id),
        metadata={"requested": req.requested_amount, "calculated": calculated},
    )
    return req


def review_salary_request(
    s: "Session", req: "SalaryRequest", action: str, user: "User", comment: str | None = None
) -> "SalaryRequest":
    if action not in REVIEW_TRANSITIONS:
        raise ValueError(f"Invalid action. Must be one of: {', '.join(REVIEW_TRANSITIONS)}")
    required, target = REVIEW_TRANSITIONS[action]
    if req.status != required:
        raise ValueError(f"Cannot {action} a request in status {req.status}.")

    now = utcnow()
    old_status = req.status
    req.status = target
    req.reviewed_by_id = user.id
    req.reviewed_at = now
    req.updated_at = now
    if comment:
        req.admin_comment = comment
    if target == "PAID":
        req.paid_at = now

    record_event(
        s,
        actor=user,
        action=f"salary_request.{action}",
        entity_type="SalaryRequest",
        entity_id=str(req.id),
        reason=comment,
        metadata={"status": {"old": old_status, "new": target}, "processor_id": req.processor_id},
    )
    return req


def paid_total(s: "Session", processor_id: int) -> float:
    from app.umbra.modules.salary.models import SalaryRequest

    total = (
        s.query(func.coalesce(func.sum(SalaryRequest.requested_amount), 0.0))
        .filter(SalaryRequest.processor_id == processor_id)
        .filter(SalaryRequest.status == "PAID")
        .scalar()
    )
    return money(float(total or 0.0))
