from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Flask, Request, Response, current_app
from jose import ExpiredSignatureError, JWTError, jwt

from app.umbra.models import User

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


class TokenError(Exception):
    pass


def issue_token(user: User, *, now: datetime | None = None) -> str:
    """Signed session token for the user (sub/email/role)."""
    now = now or datetime.utcnow()
    days = int(current_app.config.get("JWT_EXPIRES_DAYS") or 7)
    claims = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(days=days),
    }
    return jwt.encode(claims, current_app.config["JWT_SECRET"], algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError as e:
        logger.warning("JWT expired")
        raise TokenError("Token expired") from e
    except JWTError as e:
        logger.warning("JWT validation failed: %s", e)
        raise TokenError("Invalid token") from e


def token_from_request(req: Request) -> str | None:
    """Cookie first, then an `Authorization: Bearer` header."""
    token = req.cookies.get(current_app.config["AUTH_COOKIE_NAME"])
    if token:
        return token
    header = req.headers.get("Authorization") or ""
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def set_auth_cookie(resp: Response, token: str) -> None:
    days = int(current_app.config.get("JWT_EXPIRES_DAYS") or 7)
    resp.set_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        token,
        max_age=days * 24 * 60 * 60,
        httponly=True,
        secure=bool(current_app.config.get("AUTH_COOKIE_SECURE")),
        samesite="Lax",
        path="/",
    )


def clear_auth_cookie(resp: Response) -> None:
    resp.delete_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        path="/",
        httponly=True,
        secure=bool(current_app.config.get("AUTH_COOKIE_SECURE")),
        samesite="Lax",
    )


def no_store(resp: Response) -> Response:
    resp.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"
    resp.headers["Pragma"] = "no-cache"
    return resp


class RateLimiter:
    """
    In-memory sliding window keyed by client IP.
    Per-process only; good enough for a couple of gunicorn workers.
    """

    def __init__(self, limit: int, window_seconds: int) -> None:
        self.limit = limit
        self.window = timedelta(seconds=window_seconds)
        self._attempts: dict[str, list[datetime]] = defaultdict(list)

    def is_limited(self, key: str) -> bool:
        cutoff = datetime.utcnow() - self.window
        self._attempts[key] = [t for t in self._attempts[key] if t > cutoff]
        return len(self._attempts[key]) >= self.limit

    def hit(self, key: str) -> None:
        self._attempts[key].append(datetime.utcnow())

    def reset(self, key: str) -> None:
        self._attempts.pop(key, None)


def init_rate_limits(app: Flask) -> None:
    app.extensions["rate_limits"] = {
        "login": RateLimiter(limit=5, window_seconds=15 * 60),
        "register": RateLimiter(limit=3, window_seconds=60 * 60),
    }


def rate_limiter(name: str) -> RateLimiter:
    return current_app.extensions["rate_limits"][name]
