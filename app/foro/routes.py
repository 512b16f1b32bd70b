from flask import Blueprint, current_app, render_template, request

from app.foro.db import db_session
from app.foro.modules.posts.models import Tag
from app.foro.modules.posts.service import list_posts, post_stats
from app.foro.rbac import current_user

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    """Public feed: published, visible posts with search, tag filter and paging."""
    s = db_session()
    viewer = current_user()
    search = (request.args.get("q") or "").strip()
    tag = (request.args.get("tag") or "").strip()
    try:
        page = max(int(request.args.get("page") or "1"), 1)
    except ValueError:
        page = 1
    per_page = int(current_app.config.get("PAGE_SIZE_DEFAULT", 10))

    posts, total = list_posts(s, viewer=viewer, search=search, tag=tag, page=page, limit=per_page)
    stats = post_stats(s, [p.id for p in posts], viewer)
    tags = [t.name for t in s.query(Tag).order_by(Tag.name.asc()).all()]

    return render_template(
        "public/index.html",
        posts=posts,
        stats=stats,
        tags=tags,
        search=search,
        tag=tag,
        page=page,
        total=total,
        has_prev=page > 1,
        has_next=page * per_page < total,
    )


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for load balancer probes. No DB access.
    """
    return "ok", 200
