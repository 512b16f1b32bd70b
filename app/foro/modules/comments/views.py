from __future__ import annotations

from flask import Blueprint, abort, flash, redirect, request, url_for

from app.foro.db import db_session
from app.foro.modules.comments.models import Comment
from app.foro.modules.comments.service import (
    can_manage_comment,
    create_comment,
    delete_comment,
    validate_comment_payload,
)
from app.foro.modules.posts.models import Post
from app.foro.rbac import current_user, require_login

bp = Blueprint("comments", __name__)


@bp.post("/posts/<slug>/comments")
@require_login
def comment_create(slug: str):
    s = db_session()
    post = s.query(Post).filter(Post.slug == slug).one_or_none()
    if not post or not post.is_public:
        abort(404)

    content = request.form.get("content") or ""
    errors = validate_comment_payload({"content": content, "post_id": post.id})
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("posts.post_detail", slug=slug))

    create_comment(s, post, content, current_user())
    s.commit()
    flash("Comment posted.", "success")
    return redirect(url_for("posts.post_detail", slug=slug) + "#comments")


@bp.post("/comments/<int:comment_id>/delete")
@require_login
def comment_delete(comment_id: int):
    s = db_session()
    comment = s.get(Comment, comment_id)
    if not comment:
        abort(404)
    if not can_manage_comment(current_user(), comment):
        abort(403)
    slug = comment.post.slug
    delete_comment(s, comment, current_user())
    s.commit()
    flash("Comment deleted.", "success")
    return redirect(url_for("posts.post_detail", slug=slug))
