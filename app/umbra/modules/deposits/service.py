from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.umbra.audit import record_event
from app.umbra.constants import CRYPTO_CURRENCIES, ROLE_PROCESSOR
from app.umbra.modules.bonuses.service import (
    calculate_deposit_bonus,
    create_held_deposit_bonus,
    current_commission_percent,
    find_tier,
    not_burned,
)
from app.umbra.timeutil import business_date, business_day_bounds, next_business_day_start, utcnow
from app.umbra.utils import clean_str, is_valid_email, money, parse_float

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.umbra.models import User
    from app.umbra.modules.bonuses.models import BonusPayment
    from app.umbra.modules.deposits.models import Deposit

DEPOSIT_STATUSES = ("PENDING", "APPROVED", "REJECTED", "PROCESSING")
DUPLICATE_WINDOW = timedelta(hours=1)


def currency_type_for(currency: str) -> str:
    return "CRYPTO" if currency.upper() in CRYPTO_CURRENCIES else "FIAT"


def validate_deposit_payload(payload: dict) -> list[str]:
    """Validate a processor deposit payload. Returns list of errors."""
    amount_raw = payload.get("amount")
    currency = clean_str(payload.get("currency"))
    email = clean_str(payload.get("playerEmail"))
    if amount_raw in (None, "") or not currency or not email:
        return ["amount, currency and playerEmail are required."]
    errors = []
    if not is_valid_email(email):
        errors.append("Invalid player email.")
    amount = parse_float(amount_raw)
    if amount is None or amount <= 0:
        errors.append("amount must be greater than 0.")
    if len(currency) > 16:
        errors.append("currency is too long.")
    return errors


def find_recent_duplicate(
    s: "Session", processor_id: int, email: str, amount: float, currency: str, now: datetime | None = None
) -> "Deposit | None":
    from app.umbra.modules.deposits.models import Deposit

    now = now or utcnow()
    return (
        s.query(Deposit)
        .filter(Deposit.processor_id == processor_id)
        .filter(Deposit.player_email == email.strip().lower())
        .filter(Deposit.amount == amount)
        .filter(Deposit.currency == currency.strip().upper())
        .filter(Deposit.created_at >= now - DUPLICATE_WINDOW)
        .first()
    )


def day_total(s: "Session", processor_id: int, at: datetime, *, exclude_id: int | None = None) -> float:
    """Sum of the processor's non-rejected deposits in the business day containing `at`."""
    from app.umbra.modules.deposits.models import Deposit

    start, end = business_day_bounds(business_date(at))
    q = (
        s.query(func.coalesce(func.sum(Deposit.amount), 0.0))
        .filter(Deposit.processor_id == processor_id)
        .filter(Deposit.status != "REJECTED")
        .filter(Deposit.created_at >= start)
        .filter(Deposit.created_at < end)
    )
    if exclude_id is not None:
        q = q.filter(Deposit.id != exclude_id)
    return float(q.scalar() or 0.0)


def _apply_bonus(s: "Session", deposit: "Deposit", at: datetime) -> float:
    total = day_total(s, deposit.processor_id, at, exclude_id=deposit.id) + deposit.amount
    tier = find_tier(s, total)
    calc = calculate_deposit_bonus(tier, deposit.amount, total, current_commission_percent(s))
    deposit.bonus_rate = calc.bonus_rate
    deposit.bonus_amount = calc.bonus_amount
    deposit.platform_commission_percent = calc.commission_percent
    deposit.platform_commission_amount = calc.commission_amount
    deposit.processor_earnings = calc.processor_earnings
    return total


def create_deposit(
    s: "Session", payload: dict, user: "User", now: datetime | None = None
) -> tuple["Deposit", "BonusPayment | None"]:
    """
    Create a PENDING deposit with its bonus and platform commission.
    A positive bonus is parked as a HELD payment until the next business day.
    """
    from app.umbra.modules.deposits.models import Deposit

    now = now or utcnow()
    currency = clean_str(payload["currency"]).upper()
    deposit = Deposit(
        processor_id=user.id,
        player_id=clean_str(payload.get("playerId")) or f"deposit_{int(now.timestamp() * 1000)}",
        player_nick=clean_str(payload.get("playerNick")) or None,
        player_email=clean_str(payload["playerEmail"]).lower(),
        amount=money(parse_float(payload["amount"])),
        currency=currency,
        currency_type=currency_type_for(currency),
        payment_method=clean_str(payload.get("paymentMethod")) or None,
        notes=clean_str(payload.get("notes")) or None,
        status="PENDING",
        created_at=now,
        updated_at=now,
    )
    total = _apply_bonus(s, deposit, now)
    s.add(deposit)
    s.flush()

    payment = None
    if deposit.bonus_amount > 0:
        payment = create_held_deposit_bonus(
            s,
            processor_id=user.id,
            deposit_id=deposit.id,
            amount=deposit.bonus_amount,
            held_until=next_business_day_start(now),
            description=f"{deposit.bonus_rate}% bonus on deposit #{deposit.id} (day total {money(total)})",
            now=now,
        )

    record_event(
        s,
        actor=user,
        action="deposit.create",
        entity_type="Deposit",
        entity_id=str(deposit.id),
        metadata={
            "amount": deposit.amount,
            "currency": deposit.currency,
            "bonus_rate": deposit.bonus_rate,
            "bonus_amount": deposit.bonus_amount,
            "day_total": money(total),
        },
    )
    return deposit, payment


def sync_bonus_payment(s: "Session", deposit: "Deposit") -> dict | None:
    """
    Keep the deposit's unpaid bonus payment in line with the deposit after an edit.
    Rejected deposits and zero bonuses cancel it; a new positive bonus gets a HELD payment.
    Settled payments (PAID, BURNED) are left alone. Returns a change record or None.
    """
    from app.umbra.modules.bonuses.models import BonusPayment

    payments = s.query(BonusPayment).filter(BonusPayment.deposit_id == deposit.id).all()
    live = next((p for p in payments if p.status in ("HELD", "PENDING")), None)
    settled = any(p.status in ("PAID", "BURNED") for p in payments)
    now = utcnow()

    if deposit.status == "REJECTED" or deposit.bonus_amount <= 0:
        if live is None:
            return None
        old_status = live.status
        live.status = "CANCELLED"
        live.updated_at = now
        return {"id": live.id, "status": {"old": old_status, "new": "CANCELLED"}}

    if live is not None:
        if live.amount == deposit.bonus_amount:
            return None
        old = live.amount
        live.amount = deposit.bonus_amount
        live.updated_at = now
        return {"id": live.id, "amount": {"old": old, "new": deposit.bonus_amount}}

    if settled:
        return None
    payment = create_held_deposit_bonus(
        s,
        processor_id=deposit.processor_id,
        deposit_id=deposit.id,
        amount=deposit.bonus_amount,
        held_until=next_business_day_start(deposit.created_at),
        description=f"{deposit.bonus_rate}% bonus on deposit #{deposit.id}",
        now=now,
    )
    s.flush()
    return {"id": payment.id, "created": deposit.bonus_amount}


def update_deposit(s: "Session", deposit: "Deposit", payload: dict, user: "User") -> dict:
    """Admin edit. Amount changes recompute bonus and commission. Returns the change set."""
    changes = {}

    status = clean_str(payload.get("status")).upper()
    if status:
        if status not in DEPOSIT_STATUSES:
            raise ValueError(f"Invalid status. Must be one of: {', '.join(DEPOSIT_STATUSES)}")
        if status != deposit.status:
            changes["status"] = {"old": deposit.status, "new": status}
            deposit.status = status

    currency = clean_str(payload.get("currency")).upper()
    if currency and currency != deposit.currency:
        changes["currency"] = {"old": deposit.currency, "new": currency}
        deposit.currency = currency
        deposit.currency_type = currency_type_for(currency)

    if "notes" in payload:
        new_notes = clean_str(payload.get("notes")) or None
        if new_notes != deposit.notes:
            changes["notes"] = {"old": deposit.notes, "new": new_notes}
            deposit.notes = new_notes

    if payload.get("amount") not in (None, ""):
        amount = parse_float(payload.get("amount"))
        if amount is None or amount <= 0:
            raise ValueError("amount must be greater than 0.")
        amount = money(amount)
        if amount != deposit.amount:
            changes["amount"] = {"old": deposit.amount, "new": amount}
            deposit.amount = amount
            _apply_bonus(s, deposit, deposit.created_at)
            changes["bonus_amount"] = deposit.bonus_amount

    if "status" in changes or "amount" in changes:
        payment_change = sync_bonus_payment(s, deposit)
        if payment_change:
            changes["bonus_payment"] = payment_change

    deposit.updated_at = utcnow()
    record_event(
        s,
        actor=user,
        action="deposit.edit",
        entity_type="Deposit",
        entity_id=str(deposit.id),
        metadata={"changes": changes},
    )
    return changes


def reassign_deposit(s: "Session", deposit: "Deposit", new_processor: "User", user: "User") -> None:
    if new_processor.role != ROLE_PROCESSOR:
        raise ValueError("Deposits can only be reassigned to a processor.")
    old_id = deposit.processor_id
    deposit.processor_id = new_processor.id
    deposit.processor = new_processor
    deposit.updated_at = utcnow()

    from app.umbra.modules.bonuses.models import BonusPayment

    s.query(BonusPayment).filter(BonusPayment.deposit_id == deposit.id).update(
        {"processor_id": new_processor.id}, synchronize_session="fetch"
    )
    record_event(
        s,
        actor=user,
        action="deposit.reassign",
        entity_type="Deposit",
        entity_id=str(deposit.id),
        metadata={"processor_id": {"old": old_id, "new": new_processor.id}},
    )


def delete_deposit(s: "Session", deposit: "Deposit", user: "User") -> None:
    from app.umbra.modules.bonuses.models import BonusPayment

    # Unpaid bonuses for the deposit go with it
    s.query(BonusPayment).filter(BonusPayment.deposit_id == deposit.id).filter(
        BonusPayment.status.in_(("HELD", "PENDING"))
    ).update({"status": "CANCELLED"}, synchronize_session="fetch")
    record_event(
        s,
        actor=user,
        action="deposit.delete",
        entity_type="Deposit",
        entity_id=str(deposit.id),
        metadata={"amount": deposit.amount, "currency": deposit.currency, "processor_id": deposit.processor_id},
    )
    s.delete(deposit)


def _period_summary(s: "Session", processor_id: int, start: datetime, end: datetime) -> dict:
    from app.umbra.modules.deposits.models import Deposit

    count, total, bonus = (
        s.query(
            func.count(Deposit.id),
            func.coalesce(func.sum(Deposit.amount), 0.0),
            func.coalesce(func.sum(Deposit.bonus_amount), 0.0),
        )
        .filter(Deposit.processor_id == processor_id)
        .filter(Deposit.status != "REJECTED")
        .filter(Deposit.created_at >= start)
        .filter(Deposit.created_at < end)
        .one()
    )
    return {"count": int(count or 0), "amount": money(float(total or 0)), "bonus": money(float(bonus or 0))}


def processor_stats(s: "Session", user: "User", now: datetime | None = None) -> dict:
    from app.umbra.modules.deposits.models import Deposit
    from app.umbra.modules.salary.service import paid_total

    now = now or utcnow()
    today = business_date(now)
    day_start, day_end = business_day_bounds(today)
    week_start, _ = business_day_bounds(today - timedelta(days=today.weekday()))
    month_start, _ = business_day_bounds(today.replace(day=1))

    earned = (
        s.query(func.coalesce(func.sum(Deposit.bonus_amount), 0.0))
        .filter(Deposit.processor_id == user.id)
        .filter(Deposit.status == "APPROVED")
        .filter(not_burned(Deposit))
        .scalar()
    )
    earned = money(float(earned or 0))
    paid = paid_total(s, user.id)

    return {
        "today": _period_summary(s, user.id, day_start, day_end),
        "week": _period_summary(s, user.id, week_start, day_end),
        "month": _period_summary(s, user.id, month_start, day_end),
        "balance": {"earned": earned, "paid": paid, "available": money(earned - paid)},
        "businessDate": today.isoformat(),
    }
