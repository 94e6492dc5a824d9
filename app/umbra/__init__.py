import logging
from datetime import datetime

from flask import Flask, g, jsonify, request
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

from app.umbra.config import load_config
from app.umbra.db import init_db, teardown_db_session
from app.umbra.security import init_rate_limits
from app.umbra.storage import StorageError, storage_from_config
from app.umbra.routes import bp as routes_bp
from app.umbra.uploads import bp as uploads_bp
from app.umbra.auth import bp as auth_bp, load_current_user
from app.umbra.admin import bp as admin_bp
from app.umbra.modules.shifts.admin import bp as shifts_admin_bp
from app.umbra.modules.shifts.processor import bp as shifts_processor_bp
from app.umbra.modules.bonuses.admin import bp as bonuses_admin_bp
from app.umbra.modules.deposits.admin import bp as deposits_admin_bp
from app.umbra.modules.deposits.processor import bp as deposits_processor_bp
from app.umbra.modules.salary.admin import bp as salary_admin_bp
from app.umbra.modules.salary.processor import bp as salary_processor_bp
from app.umbra.modules.documentation.admin import bp as documentation_admin_bp
from app.umbra.modules.documentation.public import bp as documentation_public_bp
from app.umbra.modules.finance.admin import bp as finance_bp

_ERROR_MESSAGES = {
    400: "Bad request",
    401: "Not authenticated",
    403: "Insufficient permissions",
    404: "Not found",
    405: "Method not allowed",
    413: "File too large",
}


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["_started_at"] = datetime.utcnow()
    app.json.sort_keys = False

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")
        if str(app.config.get("JWT_SECRET") or "") in ("", "change-me"):
            raise RuntimeError("JWT_SECRET must be set to a strong value in production (not default).")

    init_db(app)
    init_rate_limits(app)

    def _dispose_engine_on_fork() -> None:
        import os
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage health check (uploads fail at request time otherwise; log loudly now)
    try:
        where = storage_from_config(app.config).check()
        app.logger.info("Upload storage ready (%s)", where)
    except StorageError as e:
        app.logger.error("STORAGE CONFIG ERROR: %s", e)

    app.register_blueprint(routes_bp)
    app.register_blueprint(uploads_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")
    app.register_blueprint(shifts_admin_bp, url_prefix="/api/admin")
    app.register_blueprint(bonuses_admin_bp, url_prefix="/api/admin")
    app.register_blueprint(deposits_admin_bp, url_prefix="/api/admin")
    app.register_blueprint(salary_admin_bp, url_prefix="/api/admin")
    app.register_blueprint(documentation_admin_bp, url_prefix="/api/admin")
    app.register_blueprint(finance_bp, url_prefix="/api/admin/finance")
    app.register_blueprint(shifts_processor_bp, url_prefix="/api/processor")
    app.register_blueprint(deposits_processor_bp, url_prefix="/api/processor")
    app.register_blueprint(salary_processor_bp, url_prefix="/api/processor")
    app.register_blueprint(documentation_public_bp, url_prefix="/api")

    def _load_user_wrapper():
        if request.path.startswith(("/healthz", "/uploads/")):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        status = e.code or 500
        if status == 403:
            app.logger.warning("Forbidden: path=%s request_id=%s", request.path, getattr(g, "request_id", None))
        return jsonify({"error": _ERROR_MESSAGES.get(status, e.name)}), status

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure stack trace shows in the logs.
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return jsonify({"error": "Internal server error", "requestId": rid}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
