from __future__ import annotations

from flask import Blueprint, abort, jsonify, request

from app.foro.api import BadRequest, json_body, json_error, pagination_block, parse_bool, parse_pagination
from app.foro.db import db_session
from app.foro.modules.posts.models import VALID_STATUSES, Post
from app.foro.modules.posts.service import (
    SCOPE_ALL,
    SCOPE_MINE,
    SCOPE_PUBLIC,
    can_manage_post,
    can_view_post,
    create_post,
    delete_post,
    list_posts,
    post_stats,
    serialize_post,
    update_post,
    validate_post_payload,
    visible_comments,
)
from app.foro.rbac import PERM_POSTS_MODERATE, current_user, require_login, user_has_permission

bp = Blueprint("posts_api", __name__)


@bp.get("")
def posts_list():
    """
    Public feed by default. `admin=true` lists every post for moderators and
    `mine=true` lists the caller's own posts in any state.
    """
    s = db_session()
    viewer = current_user()
    page, limit = parse_pagination()
    search = (request.args.get("search") or "").strip()
    tag = (request.args.get("tag") or "").strip()

    scope = SCOPE_PUBLIC
    status = None
    visible = None
    if parse_bool(request.args.get("mine")) and viewer is not None:
        scope = SCOPE_MINE
    elif parse_bool(request.args.get("admin")) and user_has_permission(viewer, PERM_POSTS_MODERATE):
        scope = SCOPE_ALL
    if scope != SCOPE_PUBLIC:
        status = (request.args.get("status") or "").strip() or None
        if status and status not in VALID_STATUSES:
            raise BadRequest(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")
        visible = parse_bool(request.args.get("visible"))

    posts, total = list_posts(
        s,
        viewer=viewer,
        scope=scope,
        search=search,
        tag=tag,
        status=status,
        visible=visible,
        page=page,
        limit=limit,
    )
    stats = post_stats(s, [p.id for p in posts], viewer)
    return jsonify(
        {
            "posts": [serialize_post(p, viewer, stats[p.id]) for p in posts],
            "pagination": pagination_block(page, limit, total),
        }
    )


@bp.post("")
@require_login
def posts_create():
    s = db_session()
    viewer = current_user()
    payload = json_body()
    errors = validate_post_payload(payload)
    if errors:
        raise BadRequest(errors)
    post = create_post(s, payload, viewer)
    s.commit()
    stats = post_stats(s, [post.id], viewer)
    return jsonify(serialize_post(post, viewer, stats[post.id])), 201


@bp.get("/<int:post_id>")
def posts_get(post_id: int):
    s = db_session()
    viewer = current_user()
    post = s.get(Post, post_id)
    # Hidden and draft posts look missing to everyone but the author and moderators.
    if not post or not can_view_post(viewer, post):
        return json_error(404, "Post not found")
    stats = post_stats(s, [post.id], viewer)
    return jsonify(serialize_post(post, viewer, stats[post.id], comments=visible_comments(s, post)))


@bp.patch("/<int:post_id>")
@require_login
def posts_update(post_id: int):
    s = db_session()
    viewer = current_user()
    post = s.get(Post, post_id)
    if not post:
        return json_error(404, "Post not found")
    if not can_manage_post(viewer, post):
        abort(403)

    payload = json_body()
    errors = validate_post_payload(payload, partial=True)
    if errors:
        raise BadRequest(errors)
    update_post(s, post, payload, viewer)
    s.commit()
    stats = post_stats(s, [post.id], viewer)
    return jsonify(serialize_post(post, viewer, stats[post.id]))


@bp.delete("/<int:post_id>")
@require_login
def posts_delete(post_id: int):
    s = db_session()
    viewer = current_user()
    post = s.get(Post, post_id)
    if not post:
        return json_error(404, "Post not found")
    if not can_manage_post(viewer, post):
        abort(403)
    delete_post(s, post, viewer)
    s.commit()
    return jsonify({"message": "Post deleted"})
