from __future__ import annotations

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for

from app.foro.db import db_session
from app.foro.models import User
from app.foro.modules.users.service import (
    VALID_ROLES,
    content_counts,
    create_user,
    delete_user,
    list_users,
    update_user,
    validate_new_user,
    validate_user_update,
)
from app.foro.rbac import PERM_USERS_MANAGE, current_user, require_permission

bp = Blueprint("users_admin", __name__)

PER_PAGE = 50


# ---------- List ----------
@bp.get("/users")
@require_permission(PERM_USERS_MANAGE)
def users_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    try:
        page = max(int(request.args.get("page") or "1"), 1)
    except ValueError:
        page = 1

    users, total = list_users(s, search=search, page=page, limit=PER_PAGE)
    counts = content_counts(s, [u.id for u in users])
    return render_template(
        "admin/users/list.html",
        users=users,
        counts=counts,
        search=search,
        page=page,
        total=total,
        has_prev=page > 1,
        has_next=page * PER_PAGE < total,
    )


# ---------- New ----------
@bp.get("/users/new")
@require_permission(PERM_USERS_MANAGE)
def users_new_get():
    return render_template("admin/users/form.html", user=None, form={}, roles=VALID_ROLES)


@bp.post("/users/new")
@require_permission(PERM_USERS_MANAGE)
def users_new_post():
    s = db_session()
    payload = {
        "name": (request.form.get("name") or "").strip() or None,
        "email": request.form.get("email"),
        "password": request.form.get("password"),
        "role": request.form.get("role") or None,
    }
    errors = validate_new_user(s, payload, allow_role=True)
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("admin/users/form.html", user=None, form=request.form, roles=VALID_ROLES), 400

    create_user(s, payload, actor=current_user())
    s.commit()
    flash("User created.", "success")
    return redirect(url_for("users_admin.users_list"))


# ---------- Edit ----------
@bp.get("/users/<int:user_id>/edit")
@require_permission(PERM_USERS_MANAGE)
def users_edit_get(user_id: int):
    s = db_session()
    user = s.get(User, user_id)
    if not user:
        abort(404)
    form = {"name": user.name or "", "email": user.email, "role": user.role}
    return render_template("admin/users/form.html", user=user, form=form, roles=VALID_ROLES)


@bp.post("/users/<int:user_id>/edit")
@require_permission(PERM_USERS_MANAGE)
def users_edit_post(user_id: int):
    s = db_session()
    actor = current_user()
    user = s.get(User, user_id)
    if not user:
        abort(404)

    payload: dict = {
        "email": request.form.get("email"),
        "role": request.form.get("role") or None,
        "is_active": request.form.get("is_active") == "on",
    }
    name = (request.form.get("name") or "").strip()
    if name:
        payload["name"] = name
    if request.form.get("password"):
        payload["password"] = request.form.get("password")

    errors = validate_user_update(s, user, payload, manager=True)
    if user.id == actor.id:
        if not payload["is_active"]:
            errors.append("You cannot deactivate your own account.")
        if payload["role"] and payload["role"] != user.role:
            errors.append("You cannot change your own role.")
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("admin/users/form.html", user=user, form=request.form, roles=VALID_ROLES), 400

    update_user(s, user, payload, actor)
    s.commit()
    flash("User updated.", "success")
    return redirect(url_for("users_admin.users_list"))


@bp.post("/users/<int:user_id>/active")
@require_permission(PERM_USERS_MANAGE)
def users_toggle_active(user_id: int):
    s = db_session()
    actor = current_user()
    user = s.get(User, user_id)
    if not user:
        abort(404)
    if user.id == actor.id:
        flash("You cannot deactivate your own account.", "danger")
        return redirect(url_for("users_admin.users_list"))
    update_user(s, user, {"is_active": not user.is_active}, actor)
    s.commit()
    flash("User activated." if user.is_active else "User deactivated.", "success")
    return redirect(url_for("users_admin.users_list"))


@bp.post("/users/<int:user_id>/delete")
@require_permission(PERM_USERS_MANAGE)
def users_delete(user_id: int):
    s = db_session()
    actor = current_user()
    user = s.get(User, user_id)
    if not user:
        abort(404)
    if user.id == actor.id:
        flash("You cannot delete your own account.", "danger")
        return redirect(url_for("users_admin.users_list"))
    delete_user(s, user, actor)
    s.commit()
    flash("User deleted.", "success")
    return redirect(url_for("users_admin.users_list"))
