from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.umbra.db import db_session
from app.umbra.modules.deposits.models import Deposit
from app.umbra.modules.deposits.service import (
    DEPOSIT_STATUSES,
    create_deposit,
    find_recent_duplicate,
    processor_stats,
    validate_deposit_payload,
)
from app.umbra.modules.salary.service import current_hourly_rate
from app.umbra.modules.shifts.service import find_shift
from app.umbra.rbac import require_processor
from app.umbra.timeutil import business_date
from app.umbra.utils import current_user, get_payload, json_error, money, page_args, paginate, parse_float, validation_error

bp = Blueprint("deposits_processor", __name__)


@bp.get("/deposits")
@require_processor
def deposits_list():
    s = db_session()
    u = current_user()
    page, limit = page_args(default_limit=20)

    q = s.query(Deposit).filter(Deposit.processor_id == u.id)
    status = (request.args.get("status") or "").strip().upper()
    if status in DEPOSIT_STATUSES:
        q = q.filter(Deposit.status == status)

    deposits, pagination = paginate(q.order_by(Deposit.created_at.desc(), Deposit.id.desc()), page, limit)
    return jsonify({"deposits": [d.to_dict() for d in deposits], "pagination": pagination})


@bp.post("/deposits")
@require_processor
def deposits_create():
    s = db_session()
    u = current_user()
    payload = get_payload()

    errors = validate_deposit_payload(payload)
    if errors:
        return validation_error(errors)

    amount = money(parse_float(payload["amount"]))
    if find_recent_duplicate(s, u.id, payload["playerEmail"], amount, payload["currency"]):
        return json_error("An identical deposit was already submitted within the last hour.", 400)

    deposit, payment = create_deposit(s, payload, u)
    s.commit()
    return jsonify({"deposit": deposit.to_dict(), "bonusPayment": payment.to_dict() if payment else None}), 201


@bp.get("/stats")
@require_processor
def stats():
    s = db_session()
    u = current_user()
    body = processor_stats(s, u)
    shift = find_shift(s, u.id, business_date())
    body["currentShift"] = shift.to_dict() if shift else None
    body["hourlyRate"] = current_hourly_rate(s)
    return jsonify(body)
