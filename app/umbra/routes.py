from datetime import datetime

from flask import Blueprint, current_app, jsonify, request

from app.umbra.db import database_ok
from app.umbra.utils import parse_bool

bp = Blueprint("routes", __name__)


@bp.get("/api/health")
def health():
    """Health check including a database round trip. `?quick=1` skips the environment details."""
    db_ok = database_ok()
    body = {
        "status": "healthy" if db_ok else "unhealthy",
        "database": "connected" if db_ok else "disconnected",
        "timestamp": datetime.utcnow().isoformat() + "Z",
    }
    if not parse_bool(request.args.get("quick")):
        started = current_app.config.get("_started_at")
        body["environment"] = current_app.config.get("ENV")
        body["uptimeSeconds"] = int((datetime.utcnow() - started).total_seconds()) if started else None
    return jsonify(body), 200 if db_ok else 503


@bp.get("/healthz")
def healthz():
    """
    Fast liveness check. No DB access, minimal overhead.
    """
    return "ok", 200
