from __future__ import annotations

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for

from app.foro.db import db_session
from app.foro.modules.likes.service import toggle_like
from app.foro.modules.posts.models import STATUS_DRAFT, STATUS_PUBLISHED, Post
from app.foro.modules.posts.service import (
    can_manage_post,
    can_view_post,
    create_post,
    delete_post,
    post_stats,
    update_post,
    validate_post_payload,
    visible_comments,
)
from app.foro.rbac import current_user, require_login

bp = Blueprint("posts", __name__)


def _post_by_slug_or_404(slug: str) -> Post:
    s = db_session()
    post = s.query(Post).filter(Post.slug == slug).one_or_none()
    if not post or not can_view_post(current_user(), post):
        abort(404)
    return post


def _own_post_or_abort(post_id: int) -> Post:
    s = db_session()
    post = s.get(Post, post_id)
    if not post:
        abort(404)
    if not can_manage_post(current_user(), post):
        abort(403)
    return post


def _form_payload() -> dict:
    raw_tags = request.form.get("tags") or ""
    return {
        "title": request.form.get("title"),
        "content": request.form.get("content"),
        "status": STATUS_PUBLISHED if request.form.get("status") == STATUS_PUBLISHED else STATUS_DRAFT,
        "tags": [t.strip() for t in raw_tags.split(",") if t.strip()],
    }


# ---------- Public detail ----------
@bp.get("/posts/<slug>")
def post_detail(slug: str):
    s = db_session()
    viewer = current_user()
    post = _post_by_slug_or_404(slug)
    stats = post_stats(s, [post.id], viewer)[post.id]
    return render_template(
        "posts/detail.html",
        post=post,
        stats=stats,
        comments=visible_comments(s, post),
        can_manage=can_manage_post(viewer, post),
    )


@bp.post("/posts/<slug>/like")
@require_login
def post_like(slug: str):
    s = db_session()
    post = _post_by_slug_or_404(slug)
    if not post.is_public:
        abort(404)
    toggle_like(s, post, current_user())
    return redirect(url_for("posts.post_detail", slug=slug))


# ---------- Dashboard (own posts) ----------
@bp.get("/dashboard/posts")
@require_login
def dashboard_posts():
    s = db_session()
    viewer = current_user()
    posts = (
        s.query(Post)
        .filter(Post.author_id == viewer.id)
        .order_by(Post.updated_at.desc(), Post.id.desc())
        .all()
    )
    stats = post_stats(s, [p.id for p in posts], viewer)
    return render_template("dashboard/posts.html", posts=posts, stats=stats)


@bp.get("/dashboard/posts/new")
@require_login
def post_new_get():
    return render_template("posts/form.html", post=None, form={})


@bp.post("/dashboard/posts/new")
@require_login
def post_new_post():
    s = db_session()
    payload = _form_payload()
    errors = validate_post_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("posts/form.html", post=None, form=request.form), 400

    post = create_post(s, payload, current_user())
    s.commit()
    flash("Post created.", "success")
    return redirect(url_for("posts.post_detail", slug=post.slug))


@bp.get("/dashboard/posts/<int:post_id>/edit")
@require_login
def post_edit_get(post_id: int):
    post = _own_post_or_abort(post_id)
    form = {
        "title": post.title,
        "content": post.content,
        "status": post.status,
        "tags": ", ".join(post.tag_names),
    }
    return render_template("posts/form.html", post=post, form=form)


@bp.post("/dashboard/posts/<int:post_id>/edit")
@require_login
def post_edit_post(post_id: int):
    s = db_session()
    post = _own_post_or_abort(post_id)
    payload = _form_payload()
    errors = validate_post_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return render_template("posts/form.html", post=post, form=request.form), 400

    update_post(s, post, payload, current_user())
    s.commit()
    flash("Post updated.", "success")
    return redirect(url_for("posts.post_detail", slug=post.slug))


@bp.post("/dashboard/posts/<int:post_id>/status")
@require_login
def post_toggle_status(post_id: int):
    s = db_session()
    post = _own_post_or_abort(post_id)
    new_status = STATUS_DRAFT if post.status == STATUS_PUBLISHED else STATUS_PUBLISHED
    update_post(s, post, {"status": new_status}, current_user())
    s.commit()
    flash("Post published." if new_status == STATUS_PUBLISHED else "Post moved to drafts.", "success")
    return redirect(url_for("posts.dashboard_posts"))


@bp.post("/dashboard/posts/<int:post_id>/delete")
@require_login
def post_delete(post_id: int):
    s = db_session()
    post = _own_post_or_abort(post_id)
    delete_post(s, post, current_user())
    s.commit()
    flash("Post deleted.", "success")
    return redirect(url_for("posts.dashboard_posts"))
