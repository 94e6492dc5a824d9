from __future__ import annotations

import re
import uuid
from datetime import datetime

from flask import Blueprint, current_app, g, jsonify, request
from werkzeug.security import check_password_hash, generate_password_hash

from app.umbra.audit import record_event
from app.umbra.constants import ROLE_USER, STATUS_APPROVED, STATUS_PENDING, STATUS_REJECTED
from app.umbra.db import db_session
from app.umbra.models import User
from app.umbra.rbac import require_login
from app.umbra.security import (
    TokenError,
    clear_auth_cookie,
    decode_token,
    issue_token,
    no_store,
    rate_limiter,
    set_auth_cookie,
    token_from_request,
)
from app.umbra.utils import clean_str, current_user, get_payload, is_valid_email, json_error, validation_error

bp = Blueprint("auth", __name__)

_HAS_LETTER = re.compile(r"[^\W\d_]")
_HAS_DIGIT = re.compile(r"\d")


def password_field(payload: dict, key: str = "password") -> str:
    """Passwords are taken verbatim (no stripping); non-string values read as missing."""
    value = payload.get(key)
    return value if isinstance(value, str) else ""


def validate_password(password: str) -> list[str]:
    errors = []
    if len(password) < 6:
        errors.append("Password must be at least 6 characters.")
    if not (_HAS_LETTER.search(password) and _HAS_DIGIT.search(password)):
        errors.append("Password must contain letters and digits.")
    return errors


def validate_registration(payload: dict) -> list[str]:
    """Validate a new account payload (self-registration and admin-created)."""
    name = clean_str(payload.get("name"))
    email = clean_str(payload.get("email")).lower()
    password = password_field(payload)
    if not name or not email or not password:
        return ["Name, email and password are required."]
    errors = []
    if len(name) < 2:
        errors.append("Name must be at least 2 characters.")
    if not is_valid_email(email):
        errors.append("Invalid email address.")
    errors.extend(validate_password(password))
    return errors


def _client_ip() -> str:
    return request.remote_addr or "unknown"


def load_current_user() -> None:
    """
    Loads g.current_user from the auth token (cookie or bearer header).
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    g.auth_failure = None

    token = token_from_request(request)
    if not token:
        g.auth_failure = "Not authenticated"
        return

    try:
        claims = decode_token(token)
    except TokenError as e:
        g.auth_failure = str(e)
        return

    try:
        user_id = int(claims.get("sub") or 0)
    except (TypeError, ValueError):
        g.auth_failure = "Invalid token"
        return

    s = db_session()
    user = s.get(User, user_id)
    if not user:
        current_app.logger.warning("Token for missing user_id=%s (request_id=%s)", user_id, g.request_id)
        g.auth_failure = "User not found"
        return
    g.current_user = user


@bp.post("/login")
def login():
    payload = get_payload()
    email = clean_str(payload.get("email")).lower()
    password = password_field(payload)
    ip = _client_ip()

    if not email or not password:
        return json_error("Email and password are required.", 400)

    limiter = rate_limiter("login")
    if limiter.is_limited(ip):
        return json_error("Too many login attempts. Try again in 15 minutes.", 429)
    limiter.hit(ip)

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="auth.login_failed",
            entity_type="User",
            entity_id=email,
            reason="Invalid credentials",
            metadata={"email": email},
        )
        s.commit()
        return json_error("Invalid email or password.", 401)

    if user.status == STATUS_PENDING:
        return json_error("Account is pending approval.", 403)
    if user.status == STATUS_REJECTED:
        return json_error("Account was rejected.", 403)
    if user.is_blocked:
        return json_error("Account is blocked.", 403)

    user.last_login_at = datetime.utcnow()
    limiter.reset(ip)
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
    s.commit()

    resp = jsonify({"success": True, "user": user.to_dict()})
    set_auth_cookie(resp, issue_token(user))
    return no_store(resp)


@bp.post("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    resp = jsonify({"success": True})
    clear_auth_cookie(resp)
    return no_store(resp)


@bp.post("/register")
def register():
    payload = get_payload()
    ip = _client_ip()

    limiter = rate_limiter("register")
    if limiter.is_limited(ip):
        return json_error("Too many registrations from this address. Try again later.", 429)

    errors = validate_registration(payload)
    if errors:
        return validation_error(errors)

    s = db_session()
    email = clean_str(payload["email"]).lower()
    if s.query(User).filter(User.email == email).one_or_none():
        return json_error("A user with this email already exists.", 409)

    limiter.hit(ip)
    now = datetime.utcnow()
    user = User(
        email=email,
        name=clean_str(payload["name"]),
        password_hash=generate_password_hash(payload["password"]),
        telegram=clean_str(payload.get("telegram")) or None,
        role=ROLE_USER,
        status=STATUS_PENDING,
        is_blocked=False,
        created_at=now,
        updated_at=now,
    )
    s.add(user)
    s.flush()
    record_event(s, actor=user, action="user.register", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"success": True, "message": "Registration submitted for approval.", "user": user.to_dict()}), 201


@bp.get("/me")
def me():
    user: User | None = getattr(g, "current_user", None)
    if user is None:
        resp, status = json_error(g.auth_failure or "Not authenticated", 401)
        clear_auth_cookie(resp)
        return resp, status
    if user.is_blocked:
        return json_error("Account is blocked.", 403)
    if user.status != STATUS_APPROVED:
        return json_error("Account is not approved.", 403)
    return no_store(jsonify({"user": user.to_dict()}))


@bp.post("/change-password")
@require_login
def change_password():
    payload = get_payload()
    current = password_field(payload, "currentPassword")
    new = password_field(payload, "newPassword")
    confirm = password_field(payload, "confirmPassword")

    if not current or not new or not confirm:
        return json_error("All password fields are required.", 400)
    if new != confirm:
        return json_error("New passwords do not match.", 400)
    if len(new) < 6:
        return json_error("Password must be at least 6 characters.", 400)

    s = db_session()
    user = s.get(User, current_user().id)
    if not check_password_hash(user.password_hash, current):
        return json_error("Current password is incorrect.", 400)

    user.password_hash = generate_password_hash(new)
    user.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="user.password_change", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify({"success": True})
