from __future__ import annotations

from flask import Blueprint, abort, jsonify, request

from app.umbra.db import db_session
from app.umbra.modules.salary.models import SalaryRequest
from app.umbra.modules.salary.service import (
    active_salary_setting,
    default_setting_dict,
    replace_salary_setting,
    review_salary_request,
)
from app.umbra.rbac import require_admin
from app.umbra.utils import clean_str, current_user, get_payload, json_error, parse_int

bp = Blueprint("salary_admin", __name__)


@bp.get("/salary-settings")
@require_admin
def settings_get():
    setting = active_salary_setting(db_session())
    return jsonify({"salarySettings": setting.to_dict() if setting else default_setting_dict()})


@bp.post("/salary-settings")
@require_admin
def settings_replace():
    s = db_session()
    try:
        setting = replace_salary_setting(s, get_payload(), current_user())
    except ValueError as e:
        return json_error(str(e), 400)
    s.commit()
    return jsonify({"salarySettings": setting.to_dict()}), 201


@bp.get("/salary-requests")
@require_admin
def requests_list():
    s = db_session()
    q = s.query(SalaryRequest)
    status = (request.args.get("status") or "").strip().upper()
    if status and status != "ALL":
        q = q.filter(SalaryRequest.status == status)
    processor_id = parse_int(request.args.get("processor_id"))
    if processor_id:
        q = q.filter(SalaryRequest.processor_id == processor_id)
    reqs = q.order_by(SalaryRequest.created_at.desc(), SalaryRequest.id.desc()).all()
    return jsonify({"requests": [r.to_dict() for r in reqs]})


@bp.put("/salary-requests/<int:request_id>")
@require_admin
def requests_review(request_id: int):
    s = db_session()
    req = s.get(SalaryRequest, request_id)
    if not req:
        abort(404)
    payload = get_payload()
    action = clean_str(payload.get("action")).lower()
    comment = clean_str(payload.get("comment")) or None
    try:
        review_salary_request(s, req, action, current_user(), comment)
    except ValueError as e:
        return json_error(str(e), 400)
    s.commit()
    return jsonify({"request": req.to_dict()})
