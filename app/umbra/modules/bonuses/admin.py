from __future__ import annotations

from datetime import datetime

from flask import Blueprint, abort, jsonify, request

from app.umbra.audit import record_event
from app.umbra.db import db_session
from app.umbra.modules.bonuses.models import BonusGrid, BonusPayment, MonthlyBonusPlan
from app.umbra.modules.bonuses.service import (
    PAYMENT_STATUSES,
    active_commission,
    apply_tier_payload,
    calculate_monthly_bonuses,
    default_commission_dict,
    find_tier,
    process_held_payments,
    replace_platform_commission,
    set_payment_status,
    validate_commission_payload,
    validate_plan_payload,
    validate_tier_payload,
)
from app.umbra.rbac import require_admin
from app.umbra.utils import (
    clean_str,
    current_user,
    get_payload,
    json_error,
    parse_bool,
    parse_float,
    parse_int,
    validation_error,
)

bp = Blueprint("bonuses_admin", __name__)


def _get_or_404(model, obj_id: int):
    obj = db_session().get(model, obj_id)
    if not obj:
        abort(404)
    return obj


# ---------- Bonus grid ----------
@bp.get("/bonus-grid")
@require_admin
def grid_list():
    s = db_session()
    tiers = s.query(BonusGrid).order_by(BonusGrid.min_amount.asc(), BonusGrid.id.asc()).all()
    return jsonify({"tiers": [t.to_dict() for t in tiers]})


@bp.get("/bonus-grid/lookup")
@require_admin
def grid_lookup():
    amount = parse_float(request.args.get("amount"))
    if amount is None or amount < 0:
        return json_error("amount must be a non-negative number.", 400)
    tier = find_tier(db_session(), amount)
    return jsonify(
        {
            "amount": amount,
            "percentage": tier.bonus_percentage if tier else 0.0,
            "tier": tier.to_dict() if tier else None,
        }
    )


@bp.post("/bonus-grid")
@require_admin
def grid_create():
    s = db_session()
    payload = get_payload()
    errors = validate_tier_payload(payload)
    if errors:
        return validation_error(errors)

    now = datetime.utcnow()
    tier = BonusGrid(is_active=True, created_at=now, updated_at=now)
    apply_tier_payload(tier, payload)
    s.add(tier)
    s.flush()
    record_event(
        s,
        actor=current_user(),
        action="bonus_grid.create",
        entity_type="BonusGrid",
        entity_id=str(tier.id),
        metadata=tier.to_dict(),
    )
    s.commit()
    return jsonify({"tier": tier.to_dict()}), 201


@bp.put("/bonus-grid/<int:tier_id>")
@require_admin
def grid_update(tier_id: int):
    s = db_session()
    tier = _get_or_404(BonusGrid, tier_id)
    payload = get_payload()
    errors = validate_tier_payload(payload)
    if errors:
        return validation_error(errors)

    changes = apply_tier_payload(tier, payload)
    tier.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=current_user(),
        action="bonus_grid.edit",
        entity_type="BonusGrid",
        entity_id=str(tier.id),
        metadata={"changes": changes},
    )
    s.commit()
    return jsonify({"tier": tier.to_dict()})


@bp.delete("/bonus-grid/<int:tier_id>")
@require_admin
def grid_delete(tier_id: int):
    s = db_session()
    tier = _get_or_404(BonusGrid, tier_id)
    record_event(
        s,
        actor=current_user(),
        action="bonus_grid.delete",
        entity_type="BonusGrid",
        entity_id=str(tier.id),
        metadata=tier.to_dict(),
    )
    s.delete(tier)
    s.commit()
    return jsonify({"success": True})


# ---------- Platform commission ----------
@bp.get("/platform-commission")
@require_admin
def commission_get():
    commission = active_commission(db_session())
    return jsonify({"commission": commission.to_dict() if commission else default_commission_dict()})


@bp.post("/platform-commission")
@require_admin
def commission_replace():
    s = db_session()
    payload = get_payload()
    errors = validate_commission_payload(payload)
    if errors:
        return validation_error(errors)
    commission = replace_platform_commission(s, payload, current_user())
    s.commit()
    return jsonify({"commission": commission.to_dict()}), 201


# ---------- Monthly plans ----------
@bp.get("/monthly-bonus")
@require_admin
def plans_list():
    s = db_session()
    q = s.query(MonthlyBonusPlan)
    if not parse_bool(request.args.get("include_inactive")):
        q = q.filter(MonthlyBonusPlan.is_active.is_(True))
    plans = q.order_by(MonthlyBonusPlan.min_amount.asc()).all()
    return jsonify({"plans": [p.to_dict() for p in plans]})


@bp.post("/monthly-bonus")
@require_admin
def plans_create():
    s = db_session()
    payload = get_payload()
    errors = validate_plan_payload(payload)
    if errors:
        return validation_error(errors)

    now = datetime.utcnow()
    plan = MonthlyBonusPlan(
        name=clean_str(payload["name"]),
        description=clean_str(payload.get("description")) or None,
        min_amount=parse_float(payload.get("minAmount")),
        bonus_percent=parse_float(payload.get("bonusPercent")),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    s.add(plan)
    s.flush()
    record_event(
        s,
        actor=current_user(),
        action="monthly_bonus_plan.create",
        entity_type="MonthlyBonusPlan",
        entity_id=str(plan.id),
        metadata=plan.to_dict(),
    )
    s.commit()
    return jsonify({"plan": plan.to_dict()}), 201


@bp.put("/monthly-bonus/<int:plan_id>")
@require_admin
def plans_update(plan_id: int):
    s = db_session()
    plan = _get_or_404(MonthlyBonusPlan, plan_id)
    payload = get_payload()
    errors = validate_plan_payload(payload, partial=True)
    if errors:
        return validation_error(errors)

    changes = {}
    if "name" in payload:
        changes["name"] = {"old": plan.name, "new": clean_str(payload["name"])}
        plan.name = clean_str(payload["name"])
    if "description" in payload:
        plan.description = clean_str(payload.get("description")) or None
    if "minAmount" in payload:
        new_min = parse_float(payload["minAmount"])
        changes["min_amount"] = {"old": plan.min_amount, "new": new_min}
        plan.min_amount = new_min
    if "bonusPercent" in payload:
        new_pct = parse_float(payload["bonusPercent"])
        changes["bonus_percent"] = {"old": plan.bonus_percent, "new": new_pct}
        plan.bonus_percent = new_pct
    if "isActive" in payload:
        plan.is_active = parse_bool(payload["isActive"])
    plan.updated_at = datetime.utcnow()

    record_event(
        s,
        actor=current_user(),
        action="monthly_bonus_plan.edit",
        entity_type="MonthlyBonusPlan",
        entity_id=str(plan.id),
        metadata={"changes": changes},
    )
    s.commit()
    return jsonify({"plan": plan.to_dict()})


@bp.delete("/monthly-bonus/<int:plan_id>")
@require_admin
def plans_delete(plan_id: int):
    """Soft delete: the plan stays for history but no longer applies."""
    s = db_session()
    plan = _get_or_404(MonthlyBonusPlan, plan_id)
    plan.is_active = False
    plan.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=current_user(),
        action="monthly_bonus_plan.delete",
        entity_type="MonthlyBonusPlan",
        entity_id=str(plan.id),
    )
    s.commit()
    return jsonify({"success": True})


@bp.post("/monthly-bonus/calculate")
@require_admin
def plans_calculate():
    s = db_session()
    payload = get_payload()
    now = datetime.utcnow()
    month = parse_int(payload.get("month"), now.month)
    year = parse_int(payload.get("year"), now.year)
    if not 1 <= month <= 12 or not 2000 <= year <= 2100:
        return json_error("month must be 1-12 and year a four-digit year.", 400)
    dry_run = parse_bool(payload.get("dryRun"), default=True)

    summary = calculate_monthly_bonuses(s, year, month, dry_run=dry_run, actor=current_user())
    if not dry_run:
        s.commit()
    return jsonify(summary)


# ---------- Bonus payments ----------
@bp.get("/bonus-payments")
@require_admin
def payments_list():
    s = db_session()
    q = s.query(BonusPayment)
    status = (request.args.get("status") or "").strip().upper()
    if status in PAYMENT_STATUSES:
        q = q.filter(BonusPayment.status == status)
    processor_id = parse_int(request.args.get("processor_id"))
    if processor_id:
        q = q.filter(BonusPayment.processor_id == processor_id)
    payments = q.order_by(BonusPayment.created_at.desc(), BonusPayment.id.desc()).limit(500).all()
    return jsonify({"payments": [p.to_dict() for p in payments]})


@bp.post("/bonus-payments/release")
@require_admin
def payments_release():
    s = db_session()
    result = process_held_payments(s, actor=current_user())
    s.commit()
    return jsonify(result)


@bp.put("/bonus-payments/<int:payment_id>")
@require_admin
def payments_update(payment_id: int):
    s = db_session()
    payment = _get_or_404(BonusPayment, payment_id)
    status = clean_str(get_payload().get("status")).upper()
    try:
        set_payment_status(s, payment, status, current_user())
    except ValueError as e:
        return json_error(str(e), 400)
    s.commit()
    return jsonify({"payment": payment.to_dict()})
