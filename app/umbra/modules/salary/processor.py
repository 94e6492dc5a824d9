from __future__ import annotations

from flask import Blueprint, jsonify

from app.umbra.db import db_session
from app.umbra.modules.salary.models import SalaryRequest
from app.umbra.modules.salary.service import (
    create_salary_request,
    find_overlapping_request,
    validate_salary_request,
)
from app.umbra.rbac import require_processor
from app.umbra.timeutil import parse_datetime
from app.umbra.utils import current_user, get_payload, json_error, validation_error

bp = Blueprint("salary_processor", __name__)


@bp.get("/salary-requests")
@require_processor
def requests_list():
    s = db_session()
    u = current_user()
    reqs = (
        s.query(SalaryRequest)
        .filter(SalaryRequest.processor_id == u.id)
        .order_by(SalaryRequest.created_at.desc(), SalaryRequest.id.desc())
        .all()
    )
    return jsonify({"requests": [r.to_dict() for r in reqs]})


@bp.post("/salary-requests")
@require_processor
def requests_create():
    s = db_session()
    u = current_user()
    payload = get_payload()

    errors = validate_salary_request(payload)
    if errors:
        return validation_error(errors)

    start = parse_datetime(payload["periodStart"])
    end = parse_datetime(payload["periodEnd"])
    if find_overlapping_request(s, u.id, start, end):
        return json_error("A salary request for an overlapping period already exists.", 400)

    req = create_salary_request(s, payload, u)
    s.commit()
    return jsonify({"request": req.to_dict()}), 201
