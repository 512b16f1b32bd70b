from __future__ import annotations

from flask import Blueprint, abort, flash, redirect, render_template, request, url_for

from app.foro.api import parse_bool
from app.foro.db import db_session
from app.foro.modules.comments.models import Comment
from app.foro.modules.comments.service import delete_comment, list_comments, update_comment
from app.foro.rbac import PERM_COMMENTS_MODERATE, current_user, require_permission

bp = Blueprint("comments_admin", __name__)

PER_PAGE = 50


@bp.get("/comments")
@require_permission(PERM_COMMENTS_MODERATE)
def comments_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    visible_raw = (request.args.get("visible") or "").strip()
    try:
        page = max(int(request.args.get("page") or "1"), 1)
    except ValueError:
        page = 1

    comments, total = list_comments(s, search=search, visible=parse_bool(visible_raw), page=page, limit=PER_PAGE)
    return render_template(
        "admin/comments/list.html",
        comments=comments,
        search=search,
        visible_filter=visible_raw,
        page=page,
        total=total,
        has_prev=page > 1,
        has_next=page * PER_PAGE < total,
    )


@bp.post("/comments/<int:comment_id>/visibility")
@require_permission(PERM_COMMENTS_MODERATE)
def comment_toggle_visibility(comment_id: int):
    s = db_session()
    comment = s.get(Comment, comment_id)
    if not comment:
        abort(404)
    update_comment(s, comment, {"visible": not comment.visible}, current_user())
    s.commit()
    flash("Comment shown." if comment.visible else "Comment hidden.", "success")
    return redirect(request.referrer or url_for("comments_admin.comments_list"))


@bp.post("/comments/<int:comment_id>/delete")
@require_permission(PERM_COMMENTS_MODERATE)
def comment_delete(comment_id: int):
    s = db_session()
    comment = s.get(Comment, comment_id)
    if not comment:
        abort(404)
    delete_comment(s, comment, current_user())
    s.commit()
    flash("Comment deleted.", "success")
    return redirect(url_for("comments_admin.comments_list"))
