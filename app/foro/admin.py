from __future__ import annotations

from datetime import date, datetime, time, timedelta

from flask import Blueprint, flash, jsonify, render_template, request
from sqlalchemy import func, text
from sqlalchemy.orm import Query, Session

from app.foro.api import BadRequest, isoformat, pagination_block, parse_pagination
from app.foro.audit import event_metadata
from app.foro.db import LIKE_ESCAPE, contains_pattern, db_session
from app.foro.models import AuditEvent, User
from app.foro.modules.comments.models import Comment
from app.foro.modules.posts.models import STATUS_PUBLISHED, Post
from app.foro.rbac import PERM_ADMIN_VIEW, PERM_AUDIT_VIEW, require_permission

bp = Blueprint("admin", __name__)
api_bp = Blueprint("audit_api", __name__)

AUDIT_PAGE_LIMIT = 200


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def _audit_filters() -> tuple[dict[str, str], list[str]]:
    raw = {
        "action": (request.args.get("action") or "").strip(),
        "actor_email": (request.args.get("actor_email") or "").strip(),
        "entity_type": (request.args.get("entity_type") or "").strip(),
        "date_from": (request.args.get("date_from") or "").strip(),
        "date_to": (request.args.get("date_to") or "").strip(),
    }
    errors: list[str] = []
    for key in ("date_from", "date_to"):
        if raw[key] and not _parse_date(raw[key]):
            errors.append(f"{key} must be YYYY-MM-DD")
    return raw, errors


def _audit_query(s: Session, filters: dict[str, str]) -> Query:
    q = s.query(AuditEvent)
    if filters["action"]:
        q = q.filter(AuditEvent.action.like(contains_pattern(filters["action"]), escape=LIKE_ESCAPE))
    if filters["actor_email"]:
        q = q.filter(AuditEvent.actor_user_email.like(contains_pattern(filters["actor_email"].lower()), escape=LIKE_ESCAPE))
    if filters["entity_type"]:
        q = q.filter(AuditEvent.entity_type == filters["entity_type"])
    date_from = _parse_date(filters["date_from"])
    date_to = _parse_date(filters["date_to"])
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        # inclusive end-date (treat as whole day)
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))
    return q


def serialize_event(ev: AuditEvent) -> dict:
    return {
        "id": ev.id,
        "created_at": isoformat(ev.created_at),
        "request_id": ev.request_id,
        "actor_user_id": ev.actor_user_id,
        "actor_user_email": ev.actor_user_email,
        "action": ev.action,
        "entity_type": ev.entity_type,
        "entity_id": ev.entity_id,
        "reason": ev.reason,
        "metadata": event_metadata(ev),
        "client_ip": ev.client_ip,
    }


@bp.get("/")
@require_permission(PERM_ADMIN_VIEW)
def index():
    s = db_session()
    db_connected = True
    try:
        s.execute(text("SELECT 1"))
    except Exception as e:
        from flask import current_app

        current_app.logger.error("Admin dashboard DB check failed: %s", e)
        db_connected = False

    counts = {
        "users": s.query(func.count(User.id)).scalar() or 0,
        "users_active": s.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar() or 0,
        "posts": s.query(func.count(Post.id)).scalar() or 0,
        "posts_public": (
            s.query(func.count(Post.id))
            .filter(Post.status == STATUS_PUBLISHED, Post.visible.is_(True))
            .scalar()
            or 0
        ),
        "comments": s.query(func.count(Comment.id)).scalar() or 0,
        "audit_events": s.query(func.count(AuditEvent.id)).scalar() or 0,
    }
    recent = s.query(AuditEvent).order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(10).all()
    return render_template("admin/index.html", counts=counts, recent=recent, db_connected=db_connected)


@bp.get("/audit")
@require_permission(PERM_AUDIT_VIEW)
def audit_list():
    """
    Audit trail UI (last 200 events) with simple filters:
    - action (contains)
    - actor_email (contains)
    - entity_type (exact)
    - date range (YYYY-MM-DD, inclusive)
    """
    s = db_session()
    filters, errors = _audit_filters()
    for e in errors:
        flash(e, "danger")

    events = (
        _audit_query(s, filters)
        .order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())
        .limit(AUDIT_PAGE_LIMIT)
        .all()
    )
    return render_template("admin/audit/list.html", events=events, **filters)


@api_bp.get("")
@require_permission(PERM_AUDIT_VIEW)
def audit_api_list():
    s = db_session()
    filters, errors = _audit_filters()
    if errors:
        raise BadRequest(errors)
    page, limit = parse_pagination()

    q = _audit_query(s, filters)
    total = q.count()
    events = (
        q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return jsonify({"events": [serialize_event(ev) for ev in events], "pagination": pagination_block(page, limit, total)})
