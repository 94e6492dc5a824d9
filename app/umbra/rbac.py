from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g

from app.umbra.constants import PROCESSOR_ROLES, ROLE_ADMIN, STATUS_PENDING, STATUS_REJECTED
from app.umbra.models import User
from app.umbra.utils import json_error


def access_denial(user: User | None, roles: tuple[str, ...]) -> tuple[int, str] | None:
    """
    Returns (status, message) when the current request may not proceed, else None.
    """
    if user is None:
        return 401, getattr(g, "auth_failure", None) or "Not authenticated"
    if user.is_blocked:
        return 403, "Account is blocked"
    if user.status == STATUS_PENDING:
        return 403, "Account is pending approval"
    if user.status == STATUS_REJECTED:
        return 403, "Account was rejected"
    if roles and user.role not in roles:
        return 403, "Insufficient permissions"
    return None


def require_roles(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            denial = access_denial(user, roles)
            if denial:
                status, message = denial
                return json_error(message, status)
            return fn(*args, **kwargs)

        return wrapped

    return decorator


require_login = require_roles()
require_admin = require_roles(ROLE_ADMIN)
require_processor = require_roles(*PROCESSOR_ROLES)
