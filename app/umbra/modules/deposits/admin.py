from __future__ import annotations

from flask import Blueprint, abort, jsonify, request

from app.umbra.db import db_session
from app.umbra.models import User
from app.umbra.modules.deposits.models import Deposit
from app.umbra.modules.deposits.service import DEPOSIT_STATUSES, delete_deposit, reassign_deposit, update_deposit
from app.umbra.rbac import require_admin
from app.umbra.utils import current_user, get_payload, json_error, page_args, paginate, parse_int

bp = Blueprint("deposits_admin", __name__)


def _get_deposit_or_404(deposit_id: int) -> Deposit:
    deposit = db_session().get(Deposit, deposit_id)
    if not deposit:
        abort(404)
    return deposit


@bp.get("/deposits")
@require_admin
def deposits_list():
    s = db_session()
    page, limit = page_args(default_limit=50, max_limit=200)

    q = s.query(Deposit)
    status = (request.args.get("status") or "").strip().upper()
    if status in DEPOSIT_STATUSES:
        q = q.filter(Deposit.status == status)
    processor_id = parse_int(request.args.get("processor_id"))
    if processor_id:
        q = q.filter(Deposit.processor_id == processor_id)
    search = (request.args.get("q") or "").strip().lower()
    if search:
        q = q.filter(Deposit.player_email.like(f"%{search}%"))

    deposits, pagination = paginate(q.order_by(Deposit.created_at.desc(), Deposit.id.desc()), page, limit)
    return jsonify({"deposits": [d.to_dict() for d in deposits], "pagination": pagination})


@bp.put("/deposits/<int:deposit_id>")
@require_admin
def deposits_update(deposit_id: int):
    s = db_session()
    deposit = _get_deposit_or_404(deposit_id)
    try:
        update_deposit(s, deposit, get_payload(), current_user())
    except ValueError as e:
        return json_error(str(e), 400)
    s.commit()
    return jsonify({"deposit": deposit.to_dict()})


@bp.patch("/deposits/<int:deposit_id>")
@require_admin
def deposits_reassign(deposit_id: int):
    s = db_session()
    deposit = _get_deposit_or_404(deposit_id)
    processor_id = parse_int(get_payload().get("processorId"))
    if not processor_id:
        return json_error("processorId is required.", 400)
    target = s.get(User, processor_id)
    if not target:
        return json_error("Processor not found.", 404)
    try:
        reassign_deposit(s, deposit, target, current_user())
    except ValueError as e:
        return json_error(str(e), 400)
    s.commit()
    return jsonify({"deposit": deposit.to_dict()})


@bp.delete("/deposits/<int:deposit_id>")
@require_admin
def deposits_delete(deposit_id: int):
    s = db_session()
    deposit = _get_deposit_or_404(deposit_id)
    delete_deposit(s, deposit, current_user())
    s.commit()
    return jsonify({"success": True})
