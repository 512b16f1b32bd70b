from __future__ import annotations

from flask import Blueprint, flash, redirect, render_template, request, url_for

from app.foro.db import db_session
from app.foro.modules.users.service import content_counts, update_user, validate_user_update
from app.foro.rbac import current_user, require_login

bp = Blueprint("profile", __name__)


@bp.get("/profile")
@require_login
def profile_get():
    s = db_session()
    user = current_user()
    counts = content_counts(s, [user.id])[user.id]
    return render_template("profile.html", user=user, counts=counts)


@bp.post("/profile")
@require_login
def profile_post():
    s = db_session()
    user = current_user()
    payload: dict = {}
    name = (request.form.get("name") or "").strip()
    if name:
        payload["name"] = name
    password = request.form.get("password") or ""
    if password:
        if password != (request.form.get("password_confirm") or ""):
            flash("Passwords do not match.", "danger")
            return redirect(url_for("profile.profile_get"))
        payload["password"] = password

    errors = validate_user_update(s, user, payload, manager=False)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("profile.profile_get"))

    update_user(s, user, payload, user)
    s.commit()
    flash("Profile updated.", "success")
    return redirect(url_for("profile.profile_get"))
