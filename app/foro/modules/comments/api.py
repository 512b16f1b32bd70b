from __future__ import annotations

from flask import Blueprint, abort, jsonify, request

from app.foro.api import BadRequest, json_body, json_error, pagination_block, parse_bool, parse_pagination
from app.foro.db import db_session
from app.foro.modules.comments.models import Comment
from app.foro.modules.comments.service import (
    can_manage_comment,
    create_comment,
    delete_comment,
    list_comments,
    serialize_comment,
    update_comment,
    validate_comment_payload,
    validate_comment_update,
)
from app.foro.modules.posts.models import Post
from app.foro.rbac import PERM_COMMENTS_MODERATE, current_user, require_login, require_permission

bp = Blueprint("comments_api", __name__)


@bp.get("")
@require_permission(PERM_COMMENTS_MODERATE)
def comments_list():
    s = db_session()
    viewer = current_user()
    page, limit = parse_pagination()
    comments, total = list_comments(
        s,
        search=(request.args.get("search") or "").strip(),
        visible=parse_bool(request.args.get("visible")),
        page=page,
        limit=limit,
    )
    return jsonify(
        {
            "comments": [serialize_comment(c, viewer, include_post=True) for c in comments],
            "pagination": pagination_block(page, limit, total),
        }
    )


@bp.post("")
@require_login
def comments_create():
    s = db_session()
    viewer = current_user()
    payload = json_body()
    errors = validate_comment_payload(payload)
    if errors:
        raise BadRequest(errors)

    post = s.get(Post, payload["post_id"])
    if not post or not post.is_public:
        return json_error(404, "Post not found")

    comment = create_comment(s, post, payload["content"], viewer)
    s.commit()
    return jsonify(serialize_comment(comment, viewer)), 201


@bp.patch("/<int:comment_id>")
@require_login
def comments_update(comment_id: int):
    s = db_session()
    viewer = current_user()
    comment = s.get(Comment, comment_id)
    if not comment:
        return json_error(404, "Comment not found")
    if not can_manage_comment(viewer, comment):
        abort(403)

    payload = json_body()
    errors = validate_comment_update(payload)
    if errors:
        raise BadRequest(errors)
    update_comment(s, comment, payload, viewer)
    s.commit()
    return jsonify(serialize_comment(comment, viewer))


@bp.delete("/<int:comment_id>")
@require_login
def comments_delete(comment_id: int):
    s = db_session()
    viewer = current_user()
    comment = s.get(Comment, comment_id)
    if not comment:
        return json_error(404, "Comment not found")
    if not can_manage_comment(viewer, comment):
        abort(403)
    delete_comment(s, comment, viewer)
    s.commit()
    return jsonify({"message": "Comment deleted"})
