from __future__ import annotations

from datetime import datetime

from flask import Blueprint, abort, jsonify, request

from app.umbra.audit import record_event
from app.umbra.db import db_session
from app.umbra.modules.shifts.models import ProcessorShift, ShiftSetting
from app.umbra.modules.shifts.service import (
    auto_close_overdue_shifts,
    ensure_default_settings,
    validate_setting_payload,
    worked_hours,
)
from app.umbra.rbac import require_admin
from app.umbra.timeutil import parse_date
from app.umbra.utils import (
    clean_str,
    current_user,
    get_payload,
    json_error,
    page_args,
    paginate,
    parse_bool,
    parse_int,
    validation_error,
)

bp = Blueprint("shifts_admin", __name__)

_SETTING_FIELDS = {
    "startHour": "start_hour",
    "startMinute": "start_minute",
    "endHour": "end_hour",
    "endMinute": "end_minute",
}


def _get_setting_or_404(setting_id: int) -> ShiftSetting:
    setting = db_session().get(ShiftSetting, setting_id)
    if not setting:
        abort(404)
    return setting


# ---------- Shift settings ----------
@bp.get("/shift-settings")
@require_admin
def settings_list():
    s = db_session()
    settings = ensure_default_settings(s)
    s.commit()
    return jsonify({"settings": [x.to_dict() for x in settings]})


@bp.post("/shift-settings")
@require_admin
def settings_create():
    s = db_session()
    u = current_user()
    payload = get_payload()

    errors = validate_setting_payload(payload)
    if errors:
        return validation_error(errors)

    shift_type = clean_str(payload["shiftType"]).upper()
    if s.query(ShiftSetting).filter(ShiftSetting.shift_type == shift_type).one_or_none():
        return json_error(f"Settings for shift type {shift_type} already exist.", 400)

    now = datetime.utcnow()
    setting = ShiftSetting(
        shift_type=shift_type,
        name=clean_str(payload["name"]),
        description=clean_str(payload.get("description")) or None,
        start_hour=int(payload["startHour"]),
        start_minute=int(payload.get("startMinute") or 0),
        end_hour=int(payload["endHour"]),
        end_minute=int(payload.get("endMinute") or 0),
        timezone=clean_str(payload.get("timezone")) or "+3",
        is_active=parse_bool(payload.get("isActive"), default=True),
        created_at=now,
        updated_at=now,
    )
    s.add(setting)
    s.flush()
    record_event(
        s,
        actor=u,
        action="shift_setting.create",
        entity_type="ShiftSetting",
        entity_id=str(setting.id),
        metadata=setting.to_dict(),
    )
    s.commit()
    return jsonify({"setting": setting.to_dict()}), 201


@bp.put("/shift-settings/<int:setting_id>")
@require_admin
def settings_update(setting_id: int):
    s = db_session()
    u = current_user()
    setting = _get_setting_or_404(setting_id)
    payload = get_payload()

    errors = validate_setting_payload(payload, partial=True)
    if errors:
        return validation_error(errors)

    changes = {}
    if "shiftType" in payload:
        new_type = clean_str(payload["shiftType"]).upper()
        if new_type != setting.shift_type:
            clash = (
                s.query(ShiftSetting)
                .filter(ShiftSetting.shift_type == new_type, ShiftSetting.id != setting.id)
                .one_or_none()
            )
            if clash:
                return json_error(f"Settings for shift type {new_type} already exist.", 400)
            changes["shift_type"] = {"old": setting.shift_type, "new": new_type}
            setting.shift_type = new_type

    for key, attr in _SETTING_FIELDS.items():
        if payload.get(key) is None:
            continue
        new_value = int(payload[key])
        if new_value != getattr(setting, attr):
            changes[attr] = {"old": getattr(setting, attr), "new": new_value}
            setattr(setting, attr, new_value)

    new_name = clean_str(payload.get("name"))
    if new_name and new_name != setting.name:
        changes["name"] = {"old": setting.name, "new": new_name}
        setting.name = new_name
    if "description" in payload:
        setting.description = clean_str(payload.get("description")) or None
    if "isActive" in payload:
        new_active = parse_bool(payload.get("isActive"))
        if new_active != setting.is_active:
            changes["is_active"] = {"old": setting.is_active, "new": new_active}
            setting.is_active = new_active

    setting.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=u,
        action="shift_setting.edit",
        entity_type="ShiftSetting",
        entity_id=str(setting.id),
        metadata={"changes": changes},
    )
    s.commit()
    return jsonify({"setting": setting.to_dict()})


@bp.delete("/shift-settings/<int:setting_id>")
@require_admin
def settings_delete(setting_id: int):
    s = db_session()
    setting = _get_setting_or_404(setting_id)
    record_event(
        s,
        actor=current_user(),
        action="shift_setting.delete",
        entity_type="ShiftSetting",
        entity_id=str(setting.id),
        metadata={"shift_type": setting.shift_type},
    )
    s.delete(setting)
    s.commit()
    return jsonify({"success": True})


# ---------- Processor shifts ----------
@bp.get("/shifts")
@require_admin
def shifts_list():
    s = db_session()
    page, limit = page_args(default_limit=50, max_limit=200)

    q = s.query(ProcessorShift)
    day = request.args.get("date")
    if day:
        try:
            q = q.filter(ProcessorShift.shift_date == parse_date(day))
        except ValueError:
            return json_error("date must be YYYY-MM-DD", 400)
    status = (request.args.get("status") or "").strip().upper()
    if status and status != "ALL":
        q = q.filter(ProcessorShift.status == status)
    processor_id = parse_int(request.args.get("processor_id"))
    if processor_id:
        q = q.filter(ProcessorShift.processor_id == processor_id)

    shifts, pagination = paginate(
        q.order_by(ProcessorShift.shift_date.desc(), ProcessorShift.id.desc()), page, limit
    )
    items = []
    for shift in shifts:
        d = shift.to_dict()
        d["hoursWorked"] = round(worked_hours(shift), 2)
        items.append(d)
    return jsonify({"shifts": items, "pagination": pagination})


@bp.post("/shifts/auto-close")
@require_admin
def shifts_auto_close():
    s = db_session()
    closed = auto_close_overdue_shifts(s, actor=current_user())
    s.commit()
    return jsonify({"closed": len(closed), "shifts": [x.to_dict() for x in closed]})
