from __future__ import annotations

import math
import re
from typing import Any

from flask import g, jsonify, request
from sqlalchemy.orm import Query

from app.umbra.models import User

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email or ""))


def json_error(message: str, status: int = 400, *, errors: list[str] | None = None):
    body: dict[str, Any] = {"error": message}
    if errors:
        body["errors"] = errors
    return jsonify(body), status


def validation_error(errors: list[str]):
    return json_error(errors[0], 400, errors=errors)


def get_payload() -> dict:
    """JSON body as a dict; form data is accepted for multipart/urlencoded callers."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    if request.form:
        return request.form.to_dict()
    return {}


def current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def clean_str(value: Any) -> str:
    """
    Stripped text of a payload field. Numbers are stringified; anything else that
    is not a string (null, bool, list, object) reads as blank.
    """
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def parse_float(value: Any) -> float | None:
    """Lenient number parsing for payload fields. Returns None for blanks and garbage."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value):
            return None
        return float(value)
    raw = str(value).strip().replace(",", ".")
    if not raw:
        return None
    try:
        result = float(raw)
    except ValueError:
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def parse_int(value: Any, default: int | None = None) -> int | None:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def money(value: float | None) -> float:
    return round(value or 0.0, 2)


def page_args(default_limit: int = 20, max_limit: int = 100) -> tuple[int, int]:
    page = max(parse_int(request.args.get("page"), 1) or 1, 1)
    limit = parse_int(request.args.get("limit"), default_limit) or default_limit
    limit = min(max(limit, 1), max_limit)
    return page, limit


def paginate(q: Query, page: int, limit: int) -> tuple[list, dict]:
    total = q.count()
    items = q.offset((page - 1) * limit).limit(limit).all()
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if total else 0,
    }
    return items, pagination
