from __future__ import annotations

from flask import Blueprint, abort, jsonify, request

from app.foro.api import BadRequest, json_body, json_error, pagination_block, parse_bool, parse_pagination
from app.foro.db import db_session
from app.foro.models import User
from app.foro.modules.users.service import (
    content_counts,
    create_user,
    delete_user,
    list_users,
    serialize_user,
    update_user,
    validate_new_user,
    validate_user_update,
)
from app.foro.rbac import PERM_USERS_MANAGE, current_user, require_login, require_permission, user_has_permission

bp = Blueprint("users_api", __name__)


@bp.get("")
@require_permission(PERM_USERS_MANAGE)
def users_list():
    s = db_session()
    viewer = current_user()
    page, limit = parse_pagination()
    search = (request.args.get("search") or "").strip()

    users, total = list_users(s, search=search, page=page, limit=limit)
    counts = content_counts(s, [u.id for u in users])
    return jsonify(
        {
            "users": [serialize_user(u, viewer, counts[u.id]) for u in users],
            "pagination": pagination_block(page, limit, total),
        }
    )


@bp.post("")
def users_create():
    """Public registration with ?register=true, otherwise admin account creation."""
    s = db_session()
    payload = json_body()
    viewer = current_user()

    if parse_bool(request.args.get("register")):
        errors = validate_new_user(s, payload, allow_role=False)
        if errors:
            raise BadRequest(errors)
        user = create_user(s, payload, actor=None)
        s.commit()
        return jsonify(serialize_user(user, user)), 201

    if viewer is None:
        abort(401)
    if not user_has_permission(viewer, PERM_USERS_MANAGE):
        abort(403)
    errors = validate_new_user(s, payload, allow_role=True)
    if errors:
        raise BadRequest(errors)
    user = create_user(s, payload, actor=viewer)
    s.commit()
    return jsonify(serialize_user(user, viewer)), 201


@bp.get("/<int:user_id>")
@require_login
def users_get(user_id: int):
    s = db_session()
    viewer = current_user()
    if viewer.id != user_id and not user_has_permission(viewer, PERM_USERS_MANAGE):
        abort(403)
    user = s.get(User, user_id)
    if not user:
        return json_error(404, "User not found")
    counts = content_counts(s, [user.id])[user.id]
    return jsonify(serialize_user(user, viewer, counts))


@bp.patch("/<int:user_id>")
@require_login
def users_update(user_id: int):
    s = db_session()
    viewer = current_user()
    user = s.get(User, user_id)
    if not user:
        return json_error(404, "User not found")
    manager = user_has_permission(viewer, PERM_USERS_MANAGE)
    if viewer.id != user.id and not manager:
        abort(403)

    payload = json_body()
    errors = validate_user_update(s, user, payload, manager=manager)
    if errors:
        raise BadRequest(errors)
    update_user(s, user, payload, viewer)
    s.commit()
    return jsonify(serialize_user(user, viewer))


@bp.delete("/<int:user_id>")
@require_permission(PERM_USERS_MANAGE)
def users_delete(user_id: int):
    s = db_session()
    viewer = current_user()
    user = s.get(User, user_id)
    if not user:
        return json_error(404, "User not found")
    if user.id == viewer.id:
        return json_error(400, "You cannot delete your own account")
    delete_user(s, user, viewer)
    s.commit()
    return jsonify({"message": "User deleted"})
