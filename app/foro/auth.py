from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, jsonify, redirect, render_template, request, session, url_for
from werkzeug.security import check_password_hash

from app.foro.audit import record_event
from app.foro.db import db_session
from app.foro.models import User
from app.foro.modules.users.service import create_user, normalize_email, serialize_user, validate_new_user
from app.foro.security import ensure_csrf_token

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def reset_login_attempts() -> None:
    _login_attempts.clear()


def _safe_next(nxt: str) -> str | None:
    # Only allow local paths to avoid open redirects.
    if nxt.startswith("/") and not nxt.startswith("//"):
        return nxt
    return None


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
        if not user or not user.is_active:
            session.pop("user_id", None)
            g.current_user = None
            return
        g.current_user = user
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None


@bp.get("/csrf")
def csrf():
    """CSRF token for API clients; send it back in the X-CSRF-Token header."""
    return jsonify({"csrf_token": ensure_csrf_token()})


@bp.get("/login")
def login_get():
    nxt = (request.args.get("next") or "").strip()
    return render_template("auth/login.html", next=nxt)


@bp.post("/login")
def login_post():
    wants_json = request.is_json
    data = (request.get_json(silent=True) or {}) if wants_json else request.form
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""
    nxt = (data.get("next") or "").strip() if isinstance(data.get("next"), str) else ""
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        if wants_json:
            return jsonify({"error": "Too many login attempts. Please wait 5 minutes."}), 429
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))

    _record_attempt(ip)

    try:
        s = db_session()
        user = s.query(User).filter(User.email == email).one_or_none()
        if not user or not user.is_active or not isinstance(password, str) or not check_password_hash(user.password_hash, password):
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
            if wants_json:
                return jsonify({"error": "Invalid credentials"}), 401
            flash("Invalid credentials.", "danger")
            return redirect(url_for("auth.login_get", next=nxt or None))

        session["user_id"] = user.id
        session.permanent = True
        _login_attempts[ip].clear()
        record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=user.id)
        s.commit()
        if wants_json:
            return jsonify({"user": serialize_user(user, user), "csrf_token": ensure_csrf_token()})
        return redirect(_safe_next(nxt) or url_for("routes.index"))
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.route("/logout", methods=["GET", "POST"])
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=user.id)
        s.commit()
    session.pop("user_id", None)
    if request.is_json:
        return jsonify({"message": "Logged out"})
    return redirect(url_for("routes.index"))


@bp.get("/register")
def register_get():
    if getattr(g, "current_user", None):
        return redirect(url_for("routes.index"))
    return render_template("auth/register.html", form={})


@bp.post("/register")
def register_post():
    s = db_session()
    payload = {
        "name": (request.form.get("name") or "").strip() or None,
        "email": request.form.get("email"),
        "password": request.form.get("password"),
    }
    errors = validate_new_user(s, payload)
    if request.form.get("password") != request.form.get("password_confirm"):
        errors.append("Passwords do not match.")
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("auth/register.html", form={"name": payload["name"], "email": payload["email"]}), 400

    user = create_user(s, payload, actor=None)
    s.commit()
    session["user_id"] = user.id
    session.permanent = True
    flash("Welcome! Your account has been created.", "success")
    return redirect(url_for("routes.index"))
