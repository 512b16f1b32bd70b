import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, render_template, request, session
from sqlalchemy.exc import IntegrityError

from app.foro.config import load_config

# Register every mapped class before any blueprint touches the ORM.
from app.foro import models  # noqa: F401

from app.foro.api import BadRequest, json_error
from app.foro.db import init_db, teardown_db_session
from app.foro.routes import bp as routes_bp
from app.foro.auth import bp as auth_bp, load_current_user
from app.foro.admin import api_bp as audit_api_bp, bp as admin_bp
from app.foro.modules.users.api import bp as users_api_bp
from app.foro.modules.users.admin import bp as users_admin_bp
from app.foro.modules.users.views import bp as profile_bp
from app.foro.modules.posts.api import bp as posts_api_bp
from app.foro.modules.posts.admin import bp as posts_admin_bp
from app.foro.modules.posts.views import bp as posts_bp
from app.foro.modules.comments.api import bp as comments_api_bp
from app.foro.modules.comments.admin import bp as comments_admin_bp
from app.foro.modules.comments.views import bp as comments_bp
from app.foro.modules.likes.api import bp as likes_api_bp

logger = logging.getLogger(__name__)


def _is_api_request() -> bool:
    return request.path.startswith("/api/")


def create_app(overrides: dict | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    if overrides:
        app.config.update(overrides)
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    # CSRF protection (session token, checked on every unsafe method)
    from app.foro.security import ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_permissions() -> dict:
        from app.foro.rbac import user_has_permission

        def has_perm(key: str) -> bool:
            return user_has_permission(getattr(g, "current_user", None), key)

        return {"has_perm": has_perm, "current_user": getattr(g, "current_user", None)}

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Login/logout/register issue the token themselves.
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                if _is_api_request():
                    return json_error(400, "CSRF token missing or invalid.")
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400
        return None

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    if hasattr(os, "register_at_fork"):
        def _after_fork_child():
            engine = app.extensions.get("sqlalchemy_engine")
            if engine:
                engine.dispose()
                app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

        os.register_at_fork(after_in_child=_after_fork_child)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(profile_bp)
    app.register_blueprint(posts_bp)
    app.register_blueprint(comments_bp)
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(users_admin_bp, url_prefix="/admin")
    app.register_blueprint(posts_admin_bp, url_prefix="/admin")
    app.register_blueprint(comments_admin_bp, url_prefix="/admin")
    app.register_blueprint(users_api_bp, url_prefix="/api/users")
    app.register_blueprint(posts_api_bp, url_prefix="/api/posts")
    app.register_blueprint(comments_api_bp, url_prefix="/api/comments")
    app.register_blueprint(likes_api_bp, url_prefix="/api/likes")
    app.register_blueprint(audit_api_bp, url_prefix="/api/audit")

    # load_current_user runs after the CSRF guard but before any view.
    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(BadRequest)
    def _err_bad_request(e: BadRequest):
        if _is_api_request():
            return json_error(400, e.message, e.details)
        return render_template("errors/400.html", message="; ".join(e.details) or e.message), 400

    @app.errorhandler(400)
    def _err_400(e):  # type: ignore[no-redef]
        if _is_api_request():
            return json_error(400, "Invalid data")
        return render_template("errors/400.html", message=None), 400

    @app.errorhandler(401)
    def _err_401(e):  # type: ignore[no-redef]
        if _is_api_request():
            return json_error(401, "Not authenticated")
        return render_template("errors/403.html", missing_permission=None), 401

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        if _is_api_request():
            return json_error(403, "Forbidden")
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        if _is_api_request():
            return json_error(404, "Not found")
        return render_template("errors/404.html"), 404

    @app.errorhandler(405)
    def _err_405(e):  # type: ignore[no-redef]
        if _is_api_request():
            return json_error(405, "Method not allowed")
        return render_template("errors/404.html"), 405

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        if _is_api_request():
            return json_error(413, "Request too large")
        return render_template("errors/400.html", message="Request too large."), 413

    @app.errorhandler(IntegrityError)
    def _err_integrity(e: IntegrityError):
        s = getattr(g, "db_session", None)
        if s is not None:
            s.rollback()
        app.logger.warning("Integrity error (request_id=%s): %s", getattr(g, "request_id", None), e.orig)
        if _is_api_request():
            return json_error(400, "Invalid data", ["Conflicting or missing related record."])
        return render_template("errors/400.html", message="Conflicting or missing related record."), 400

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        if _is_api_request():
            return json_error(500, "Internal server error")
        return render_template("errors/500.html", request_id=rid), 500

    logger.info("create_app() complete; app ready to serve")

    return app
