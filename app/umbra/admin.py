from __future__ import annotations

from datetime import datetime

from flask import Blueprint, abort, jsonify, request
from werkzeug.security import generate_password_hash

from app.umbra.audit import recent_events, record_event
from app.umbra.auth import password_field, validate_password, validate_registration
from app.umbra.constants import (
    ROLE_ADMIN,
    STATUS_APPROVED,
    STATUS_REJECTED,
    VALID_ROLES,
    VALID_USER_STATUSES,
)
from app.umbra.db import db_session
from app.umbra.models import User
from app.umbra.rbac import require_admin
from app.umbra.utils import clean_str, current_user, get_payload, is_valid_email, json_error, parse_int, validation_error

bp = Blueprint("admin", __name__)

USER_ACTIONS = ("approve", "reject", "block", "unblock", "update")


def _get_user_or_404(user_id: int) -> User:
    user = db_session().get(User, user_id)
    if not user:
        abort(404)
    return user


@bp.get("/users")
@require_admin
def users_list():
    s = db_session()
    status = (request.args.get("status") or STATUS_APPROVED).strip().upper()
    role = (request.args.get("role") or "").strip().upper()

    q = s.query(User)
    if status != "ALL":
        q = q.filter(User.status == status)
    if role and role != "ALL":
        q = q.filter(User.role == role)
    users = q.order_by(User.created_at.desc(), User.id.desc()).all()
    return jsonify({"users": [u.to_dict() for u in users], "total": len(users)})


@bp.post("/users")
@require_admin
def users_create():
    s = db_session()
    u = current_user()
    payload = get_payload()

    errors = validate_registration(payload)
    role = (clean_str(payload.get("role")) or "USER").upper()
    status = (clean_str(payload.get("status")) or STATUS_APPROVED).upper()
    if role not in VALID_ROLES:
        errors.append(f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}")
    if status not in VALID_USER_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(VALID_USER_STATUSES)}")
    if errors:
        return validation_error(errors)

    email = clean_str(payload["email"]).lower()
    if s.query(User).filter(User.email == email).one_or_none():
        return json_error("A user with this email already exists.", 409)

    now = datetime.utcnow()
    new_user = User(
        email=email,
        name=clean_str(payload["name"]),
        password_hash=generate_password_hash(payload["password"]),
        telegram=clean_str(payload.get("telegram")) or None,
        role=role,
        status=status,
        is_blocked=False,
        created_at=now,
        updated_at=now,
    )
    s.add(new_user)
    s.flush()
    record_event(
        s,
        actor=u,
        action="user.create",
        entity_type="User",
        entity_id=str(new_user.id),
        metadata={"email": email, "role": role, "status": status},
    )
    s.commit()
    return jsonify({"user": new_user.to_dict()}), 201


@bp.put("/users/<int:user_id>")
@require_admin
def users_update(user_id: int):
    s = db_session()
    u = current_user()
    user = _get_user_or_404(user_id)
    payload = get_payload()
    action = clean_str(payload.get("action")).lower()

    if action not in USER_ACTIONS:
        return json_error(f"Invalid action. Must be one of: {', '.join(USER_ACTIONS)}", 400)
    if user.role == ROLE_ADMIN:
        return json_error("Administrator accounts cannot be modified.", 403)

    changes: dict = {}
    if action == "approve":
        changes["status"] = {"old": user.status, "new": STATUS_APPROVED}
        user.status = STATUS_APPROVED
    elif action == "reject":
        changes["status"] = {"old": user.status, "new": STATUS_REJECTED}
        user.status = STATUS_REJECTED
    elif action in ("block", "unblock"):
        blocked = action == "block"
        changes["is_blocked"] = {"old": user.is_blocked, "new": blocked}
        user.is_blocked = blocked
    else:
        errors = []
        new_name = clean_str(payload.get("name"))
        if new_name and len(new_name) < 2:
            errors.append("Name must be at least 2 characters.")
        new_email = clean_str(payload.get("email")).lower()
        if new_email and new_email != user.email:
            if not is_valid_email(new_email):
                errors.append("Invalid email address.")
            elif s.query(User).filter(User.email == new_email, User.id != user.id).one_or_none():
                return json_error("A user with this email already exists.", 409)
        new_role = clean_str(payload.get("role")).upper()
        if new_role and new_role not in VALID_ROLES:
            errors.append(f"Invalid role. Must be one of: {', '.join(VALID_ROLES)}")
        new_password = password_field(payload)
        if new_password:
            errors.extend(validate_password(new_password))
        if errors:
            return validation_error(errors)

        if new_name and new_name != user.name:
            changes["name"] = {"old": user.name, "new": new_name}
            user.name = new_name
        if new_email and new_email != user.email:
            changes["email"] = {"old": user.email, "new": new_email}
            user.email = new_email
        if new_role and new_role != user.role:
            changes["role"] = {"old": user.role, "new": new_role}
            user.role = new_role
        if new_password:
            changes["password"] = "reset"
            user.password_hash = generate_password_hash(new_password)

    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=u,
        action=f"user.{action}",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email, "changes": changes},
    )
    s.commit()
    return jsonify({"user": user.to_dict()})


@bp.delete("/users/<int:user_id>")
@require_admin
def users_delete(user_id: int):
    s = db_session()
    u = current_user()
    user = _get_user_or_404(user_id)
    if user.role == ROLE_ADMIN:
        return json_error("Administrator accounts cannot be deleted.", 403)

    record_event(
        s,
        actor=u,
        action="user.delete",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email, "role": user.role},
    )
    s.delete(user)
    s.commit()
    return jsonify({"success": True})


@bp.post("/users/<int:user_id>/toggle-status")
@require_admin
def users_toggle_status(user_id: int):
    s = db_session()
    u = current_user()
    user = _get_user_or_404(user_id)
    if user.role == ROLE_ADMIN:
        return json_error("Administrator accounts cannot be blocked.", 403)

    user.is_blocked = not user.is_blocked
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=u,
        action="user.block" if user.is_blocked else "user.unblock",
        entity_type="User",
        entity_id=str(user.id),
    )
    s.commit()
    return jsonify({"user": user.to_dict()})


@bp.get("/audit")
@require_admin
def audit_list():
    """
    Audit trail. Filters: action (contains), entity_type, actor_user_id, limit (default 100).
    """
    events = recent_events(
        db_session(),
        action=(request.args.get("action") or "").strip() or None,
        entity_type=(request.args.get("entity_type") or "").strip() or None,
        actor_user_id=parse_int(request.args.get("actor_user_id")),
        limit=parse_int(request.args.get("limit"), 100) or 100,
    )
    return jsonify({"events": [e.to_dict() for e in events]})
