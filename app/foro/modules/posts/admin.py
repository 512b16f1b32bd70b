from __future__ import annotations

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for

from app.foro.api import parse_bool
from app.foro.db import db_session
from app.foro.modules.posts.models import VALID_STATUSES, Post
from app.foro.modules.posts.service import SCOPE_ALL, delete_post, list_posts, post_stats, update_post
from app.foro.rbac import PERM_POSTS_MODERATE, current_user, require_permission

bp = Blueprint("posts_admin", __name__)

PER_PAGE = 50


@bp.get("/posts")
@require_permission(PERM_POSTS_MODERATE)
def posts_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    status_filter = (request.args.get("status") or "").strip()
    if status_filter not in VALID_STATUSES:
        status_filter = ""
    visible_raw = (request.args.get("visible") or "").strip()
    try:
        page = max(int(request.args.get("page") or "1"), 1)
    except ValueError:
        page = 1

    posts, total = list_posts(
        s,
        viewer=current_user(),
        scope=SCOPE_ALL,
        search=search,
        status=status_filter or None,
        visible=parse_bool(visible_raw),
        page=page,
        limit=PER_PAGE,
    )
    stats = post_stats(s, [p.id for p in posts])
    return render_template(
        "admin/posts/list.html",
        posts=posts,
        stats=stats,
        search=search,
        status_filter=status_filter,
        visible_filter=visible_raw,
        statuses=VALID_STATUSES,
        page=page,
        total=total,
        has_prev=page > 1,
        has_next=page * PER_PAGE < total,
    )


@bp.post("/posts/<int:post_id>/visibility")
@require_permission(PERM_POSTS_MODERATE)
def post_toggle_visibility(post_id: int):
    s = db_session()
    post = s.get(Post, post_id)
    if not post:
        abort(404)
    update_post(s, post, {"visible": not post.visible}, current_user())
    s.commit()
    flash("Post shown." if post.visible else "Post hidden.", "success")
    return redirect(request.referrer or url_for("posts_admin.posts_list"))


@bp.post("/posts/<int:post_id>/delete")
@require_permission(PERM_POSTS_MODERATE)
def post_delete(post_id: int):
    s = db_session()
    post = s.get(Post, post_id)
    if not post:
        abort(404)
    reason = (request.form.get("reason") or "").strip() or None
    delete_post(s, post, current_user(), reason=reason)
    s.commit()
    flash("Post deleted.", "success")
    return redirect(url_for("posts_admin.posts_list"))
