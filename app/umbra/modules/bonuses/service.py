from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import exists, func

from app.umbra.audit import record_event
from app.umbra.constants import PROCESSOR_ROLES, STATUS_APPROVED
from app.umbra.timeutil import business_date, business_day_bounds, month_bounds, utcnow
from app.umbra.utils import clean_str, money, parse_bool, parse_float

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.umbra.models import User
    from app.umbra.modules.bonuses.models import BonusGrid, BonusPayment, MonthlyBonusPlan, PlatformCommission

logger = logging.getLogger(__name__)

DEFAULT_COMMISSION_PERCENT = 5.0
MAX_COMMISSION_PERCENT = 50.0
PAYMENT_STATUSES = ("HELD", "PENDING", "PAID", "CANCELLED", "BURNED")
FINAL_PAYMENT_STATUSES = ("PAID", "CANCELLED", "BURNED")

# (min_amount, max_amount, bonus_percentage); max is exclusive so tiers are contiguous
DEFAULT_GRID = (
    (0, 500, 0.0),
    (500, 1000, 0.5),
    (1000, 1500, 1.5),
    (1500, 2000, 2.0),
    (2000, 3000, 2.5),
    (3000, None, 3.0),
)


# ---------- Bonus grid ----------
def validate_tier_payload(payload: dict) -> list[str]:
    """Validate a bonus grid tier. Returns list of errors."""
    errors = []
    min_amount = parse_float(payload.get("minAmount"))
    if min_amount is None or min_amount < 0:
        errors.append("minAmount must be a non-negative number.")

    if payload.get("maxAmount") not in (None, ""):
        max_amount = parse_float(payload.get("maxAmount"))
        if max_amount is None or max_amount < 0:
            errors.append("maxAmount must be a non-negative number.")
        elif min_amount is not None and max_amount <= min_amount:
            errors.append("maxAmount must be greater than minAmount.")

    pct = parse_float(payload.get("bonusPercentage"))
    if pct is None or pct < 0:
        errors.append("bonusPercentage must be a non-negative number.")
    elif pct > 100:
        errors.append("bonusPercentage cannot exceed 100.")

    for key in ("fixedBonus", "fixedBonusMin"):
        if payload.get(key) not in (None, ""):
            value = parse_float(payload.get(key))
            if value is None or value < 0:
                errors.append(f"{key} must be a non-negative number.")
    return errors


def apply_tier_payload(tier: "BonusGrid", payload: dict) -> dict:
    """Copy payload values onto a tier; returns {field: {old, new}} for changed fields."""
    changes = {}
    values = {
        "min_amount": parse_float(payload.get("minAmount")),
        "max_amount": parse_float(payload.get("maxAmount")),
        "bonus_percentage": parse_float(payload.get("bonusPercentage")),
        "fixed_bonus": parse_float(payload.get("fixedBonus")),
        "fixed_bonus_min": parse_float(payload.get("fixedBonusMin")),
        "description": clean_str(payload.get("description")) or None,
    }
    if "isActive" in payload:
        values["is_active"] = parse_bool(payload.get("isActive"))
    for attr, new in values.items():
        old = getattr(tier, attr)
        if old != new:
            changes[attr] = {"old": old, "new": new}
            setattr(tier, attr, new)
    return changes


def select_tier(tiers: Iterable["BonusGrid"], amount: float) -> "BonusGrid | None":
    """
    Highest-percentage tier whose [min, max) range contains the amount.
    Ties go to the tier with the larger min_amount.
    """
    matching = [t for t in tiers if t.is_active and t.contains(amount)]
    if not matching:
        return None
    return max(matching, key=lambda t: (t.bonus_percentage, t.min_amount))


def find_tier(s: "Session", amount: float) -> "BonusGrid | None":
    from app.umbra.modules.bonuses.models import BonusGrid

    tiers = (
        s.query(BonusGrid)
        .filter(BonusGrid.is_active.is_(True))
        .filter(BonusGrid.min_amount <= amount)
        .order_by(BonusGrid.min_amount.asc())
        .all()
    )
    return select_tier(tiers, amount)


def bonus_percentage_for(s: "Session", amount: float) -> float:
    tier = find_tier(s, amount)
    return tier.bonus_percentage if tier else 0.0


def ensure_default_grid(s: "Session") -> int:
    """Seed the default grid when the table is empty. Returns the number of tiers added."""
    from app.umbra.modules.bonuses.models import BonusGrid

    if s.query(BonusGrid).count():
        return 0
    now = utcnow()
    for min_amount, max_amount, pct in DEFAULT_GRID:
        s.add(
            BonusGrid(
                min_amount=float(min_amount),
                max_amount=float(max_amount) if max_amount is not None else None,
                bonus_percentage=pct,
                description=f"{pct}% from ${min_amount}",
                is_active=True,
                created_at=now,
                updated_at=now,
            )
        )
    s.flush()
    return len(DEFAULT_GRID)


# ---------- Deposit bonus calculation ----------
@dataclass(frozen=True)
class DepositBonus:
    bonus_rate: float
    bonus_amount: float
    commission_percent: float
    commission_amount: float
    processor_earnings: float


def calculate_deposit_bonus(
    tier: "BonusGrid | None", amount: float, day_total: float, commission_percent: float
) -> DepositBonus:
    """
    Bonus for a single deposit. The tier is chosen on the processor's running day total
    (including this deposit) but the percentage applies to this deposit's amount only.
    """
    rate = tier.bonus_percentage if tier else 0.0
    bonus = amount * rate / 100
    if tier and tier.fixed_bonus and tier.fixed_bonus_min is not None and day_total >= tier.fixed_bonus_min:
        bonus += tier.fixed_bonus
    commission = amount * commission_percent / 100
    return DepositBonus(
        bonus_rate=rate,
        bonus_amount=money(bonus),
        commission_percent=commission_percent,
        commission_amount=money(commission),
        processor_earnings=money(amount - commission),
    )


# ---------- Platform commission ----------
def active_commission(s: "Session") -> "PlatformCommission | None":
    from app.umbra.modules.bonuses.models import PlatformCommission

    return (
        s.query(PlatformCommission)
        .filter(PlatformCommission.is_active.is_(True))
        .order_by(PlatformCommission.created_at.desc(), PlatformCommission.id.desc())
        .first()
    )


def current_commission_percent(s: "Session") -> float:
    commission = active_commission(s)
    return commission.commission_percent if commission else DEFAULT_COMMISSION_PERCENT


def default_commission_dict() -> dict:
    return {
        "id": None,
        "name": "Platform commission",
        "description": "Share of each deposit kept by the platform",
        "commissionPercent": DEFAULT_COMMISSION_PERCENT,
        "isActive": True,
    }


def validate_commission_payload(payload: dict) -> list[str]:
    errors = []
    if not clean_str(payload.get("name")):
        errors.append("Name is required.")
    pct = parse_float(payload.get("commissionPercent"))
    if pct is None or not 0 <= pct <= MAX_COMMISSION_PERCENT:
        errors.append(f"commissionPercent must be a number between 0 and {MAX_COMMISSION_PERCENT:g}.")
    return errors


def replace_platform_commission(s: "Session", payload: dict, user: "User") -> "PlatformCommission":
    from app.umbra.modules.bonuses.models import PlatformCommission

    s.query(PlatformCommission).filter(PlatformCommission.is_active.is_(True)).update({"is_active": False})
    commission = PlatformCommission(
        name=clean_str(payload["name"]),
        description=clean_str(payload.get("description")) or None,
        commission_percent=parse_float(payload.get("commissionPercent")),
        is_active=True,
        created_at=utcnow(),
    )
    s.add(commission)
    s.flush()
    record_event(
        s,
        actor=user,
        action="platform_commission.replace",
        entity_type="PlatformCommission",
        entity_id=str(commission.id),
        metadata={"commission_percent": commission.commission_percent},
    )
    return commission


# ---------- Monthly plans ----------
def validate_plan_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial or "name" in payload:
        if not clean_str(payload.get("name")):
            errors.append("Name is required.")
    if not partial or "minAmount" in payload:
        min_amount = parse_float(payload.get("minAmount"))
        if min_amount is None or min_amount < 0:
            errors.append("minAmount must be a non-negative number.")
    if not partial or "bonusPercent" in payload:
        pct = parse_float(payload.get("bonusPercent"))
        if pct is None or not 0 <= pct <= 100:
            errors.append("bonusPercent must be a number between 0 and 100.")
    return errors


def select_monthly_plan(plans: Iterable["MonthlyBonusPlan"], total: float) -> "MonthlyBonusPlan | None":
    """The plan with the highest threshold the total has reached."""
    reached = [p for p in plans if p.is_active and p.min_amount <= total]
    if not reached:
        return None
    return max(reached, key=lambda p: (p.min_amount, p.bonus_percent))


def calculate_monthly_bonuses(
    s: "Session", year: int, month: int, *, dry_run: bool = True, actor: "User | None" = None
) -> dict:
    """
    Monthly plan bonuses for every approved processor. With dry_run=False the
    results are stored as PENDING MONTHLY_PLAN_BONUS payments; processors that
    already have one for the period are skipped.
    """
    from app.umbra.models import User
    from app.umbra.modules.bonuses.models import BonusPayment, MonthlyBonusPlan
    from app.umbra.modules.deposits.models import Deposit

    start, end = month_bounds(year, month)
    plans = s.query(MonthlyBonusPlan).filter(MonthlyBonusPlan.is_active.is_(True)).all()
    processors = (
        s.query(User)
        .filter(User.role.in_(PROCESSOR_ROLES))
        .filter(User.status == STATUS_APPROVED)
        .filter(User.is_blocked.is_(False))
        .order_by(User.id.asc())
        .all()
    )

    results = []
    created = 0
    skipped = 0
    total_bonus = 0.0
    for processor in processors:
        total = (
            s.query(func.coalesce(func.sum(Deposit.amount), 0.0))
            .filter(Deposit.processor_id == processor.id)
            .filter(Deposit.status != "REJECTED")
            .filter(Deposit.created_at >= start)
            .filter(Deposit.created_at < end)
            .scalar()
        )
        total = money(float(total or 0.0))
        plan = select_monthly_plan(plans, total)
        bonus = money(total * plan.bonus_percent / 100) if plan else 0.0
        entry = {
            "processorId": processor.id,
            "processorName": processor.name,
            "totalDeposits": total,
            "plan": plan.to_dict() if plan else None,
            "bonusAmount": bonus,
            "created": False,
        }
        if plan and bonus > 0:
            total_bonus += bonus
            if not dry_run:
                existing = (
                    s.query(BonusPayment)
                    .filter(BonusPayment.processor_id == processor.id)
                    .filter(BonusPayment.type == "MONTHLY_PLAN_BONUS")
                    .filter(BonusPayment.period_start == start)
                    .first()
                )
                if existing:
                    skipped += 1
                    entry["skipped"] = "already calculated"
                else:
                    now = utcnow()
                    s.add(
                        BonusPayment(
                            processor_id=processor.id,
                            type="MONTHLY_PLAN_BONUS",
                            amount=bonus,
                            status="PENDING",
                            description=f"{plan.name}: {plan.bonus_percent}% of {total} for {year}-{month:02d}",
                            period_start=start,
                            period_end=end,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                    created += 1
                    entry["created"] = True
        results.append(entry)

    if not dry_run:
        record_event(
            s,
            actor=actor,
            action="monthly_bonus.calculate",
            entity_type="BonusPayment",
            metadata={"year": year, "month": month, "created": created, "skipped": skipped},
        )
        logger.info("Monthly bonuses %s-%02d: created=%s skipped=%s", year, month, created, skipped)

    return {
        "statistics": {
            "period": f"{year}-{month:02d}",
            "dryRun": dry_run,
            "processors": len(processors),
            "eligible": sum(1 for r in results if r["bonusAmount"] > 0),
            "totalBonus": money(total_bonus),
            "created": created,
            "skipped": skipped,
        },
        "results": results,
    }


# ---------- Bonus payments ----------
def create_held_deposit_bonus(
    s: "Session",
    processor_id: int,
    deposit_id: int,
    amount: float,
    held_until: datetime,
    description: str,
    now: datetime | None = None,
) -> "BonusPayment":
    from app.umbra.modules.bonuses.models import BonusPayment

    now = now or utcnow()
    payment = BonusPayment(
        processor_id=processor_id,
        deposit_id=deposit_id,
        type="DEPOSIT_BONUS",
        amount=amount,
        status="HELD",
        description=description,
        held_until=held_until,
        created_at=now,
        updated_at=now,
    )
    s.add(payment)
    return payment


def burn_reason_for_day(s: "Session", processor_id: int, day: date) -> str | None:
    """
    Why the processor's held bonuses for business day `day` burn, or None when they are kept.
    They burn when the day's total fell below half of the previous day's total.
    """
    from app.umbra.modules.deposits.service import day_total

    total = day_total(s, processor_id, business_day_bounds(day)[0])
    previous = day_total(s, processor_id, business_day_bounds(day - timedelta(days=1))[0])
    if previous > 0 and total < previous / 2:
        return f"Day total {money(total)} on {day.isoformat()} fell below half of the previous day's {money(previous)}"
    return None


def process_held_payments(s: "Session", now: datetime | None = None, *, actor: "User | None" = None) -> dict:
    """
    Settle HELD payments whose hold expired: deposit bonuses of a collapsed day are
    BURNED, everything else becomes PENDING. Returns {"released": n, "burned": n}.
    """
    from app.umbra.modules.bonuses.models import BonusPayment

    now = now or utcnow()
    due = (
        s.query(BonusPayment)
        .filter(BonusPayment.status == "HELD")
        .filter(BonusPayment.held_until <= now)
        .order_by(BonusPayment.id.asc())
        .all()
    )
    verdicts: dict[tuple[int, date], str | None] = {}
    released: list[int] = []
    burned: list[int] = []
    for payment in due:
        reason = None
        if payment.type == "DEPOSIT_BONUS":
            # held_until is the start of the business day after the one the bonus was earned on
            day = business_date(payment.held_until) - timedelta(days=1)
            key = (payment.processor_id, day)
            if key not in verdicts:
                verdicts[key] = burn_reason_for_day(s, payment.processor_id, day)
            reason = verdicts[key]
        payment.updated_at = now
        if reason:
            payment.status = "BURNED"
            payment.burn_reason = reason
            payment.burned_at = now
            burned.append(payment.id)
        else:
            payment.status = "PENDING"
            released.append(payment.id)

    if due:
        record_event(
            s,
            actor=actor,
            action="bonus_payment.process_held",
            entity_type="BonusPayment",
            metadata={"released": released, "burned": burned},
        )
        logger.info("Held bonus payments: released=%s burned=%s", len(released), len(burned))
    return {"released": len(released), "burned": len(burned)}


def not_burned(deposit_cls):
    """Filter clause for Deposit queries that drops deposits whose bonus was burned."""
    from app.umbra.modules.bonuses.models import BonusPayment

    return ~exists().where(BonusPayment.deposit_id == deposit_cls.id).where(BonusPayment.status == "BURNED")


def set_payment_status(s: "Session", payment: "BonusPayment", status: str, user: "User") -> "BonusPayment":
    if status not in ("PAID", "CANCELLED"):
        raise ValueError("status must be PAID or CANCELLED.")
    if payment.status in FINAL_PAYMENT_STATUSES:
        raise ValueError(f"Payment is already {payment.status}.")
    old = payment.status
    now = utcnow()
    payment.status = status
    payment.updated_at = now
    if status == "PAID":
        payment.paid_at = now
    record_event(
        s,
        actor=user,
        action=f"bonus_payment.{status.lower()}",
        entity_type="BonusPayment",
        entity_id=str(payment.id),
        metadata={"status": {"old": old, "new": status}, "amount": payment.amount},
    )
    return payment
