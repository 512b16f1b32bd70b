from __future__ import annotations

from flask import Blueprint, jsonify

from app.foro.api import BadRequest, json_body, json_error
from app.foro.db import db_session
from app.foro.modules.likes.service import toggle_like
from app.foro.modules.posts.models import Post
from app.foro.rbac import current_user, require_login

bp = Blueprint("likes_api", __name__)


@bp.post("")
@require_login
def likes_toggle():
    s = db_session()
    viewer = current_user()
    payload = json_body()
    post_id = payload.get("post_id")
    if isinstance(post_id, bool) or not isinstance(post_id, int):
        raise BadRequest("post_id must be an integer.")

    post = s.get(Post, post_id)
    if not post or not post.is_public:
        return json_error(404, "Post not found")

    result = toggle_like(s, post, viewer)
    return jsonify(result.to_dict())
