from __future__ import annotations

from flask import Blueprint, jsonify

from app.umbra.db import db_session
from app.umbra.modules.salary.service import current_hourly_rate
from app.umbra.modules.shifts.models import ProcessorShift
from app.umbra.modules.shifts.service import (
    ShiftActionError,
    end_shift,
    get_or_create_current_shift,
    shift_pay,
    start_shift,
    time_remaining_ms,
    worked_hours,
)
from app.umbra.rbac import require_processor
from app.umbra.utils import clean_str, current_user, get_payload, json_error, page_args, paginate

bp = Blueprint("shifts_processor", __name__)


@bp.get("/shifts")
@require_processor
def current_shift():
    s = db_session()
    u = current_user()
    shift, _created = get_or_create_current_shift(s, u)
    s.commit()
    return jsonify(
        {
            "shift": shift.to_dict(),
            "isActive": shift.status == "ACTIVE",
            "timeRemaining": time_remaining_ms(shift),
        }
    )


@bp.post("/shifts")
@require_processor
def shift_action():
    s = db_session()
    u = current_user()
    action = clean_str(get_payload().get("action")).lower()

    try:
        if action == "start":
            shift = start_shift(s, u)
            message = "Shift started."
        elif action == "end":
            shift = end_shift(s, u)
            message = "Shift ended."
        else:
            return json_error("Invalid action. Use 'start' or 'end'.", 400)
    except ShiftActionError as e:
        return json_error(str(e), e.status)

    s.commit()
    return jsonify(
        {
            "shift": shift.to_dict(),
            "isActive": shift.status == "ACTIVE",
            "timeRemaining": time_remaining_ms(shift),
            "message": message,
        }
    )


@bp.get("/shifts/history")
@require_processor
def shift_history():
    s = db_session()
    u = current_user()
    page, limit = page_args(default_limit=20)
    rate = current_hourly_rate(s)

    q = (
        s.query(ProcessorShift)
        .filter(ProcessorShift.processor_id == u.id)
        .order_by(ProcessorShift.shift_date.desc(), ProcessorShift.id.desc())
    )
    shifts, pagination = paginate(q, page, limit)
    items = []
    for shift in shifts:
        d = shift.to_dict()
        d["hoursWorked"] = round(worked_hours(shift), 2)
        d["pay"] = shift_pay(shift, rate)
        items.append(d)
    return jsonify({"shifts": items, "pagination": pagination, "hourlyRate": rate})
