from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_

from app.foro.audit import record_event
from app.foro.db import LIKE_ESCAPE, contains_pattern
from app.foro.modules.posts.models import STATUS_DRAFT, STATUS_PUBLISHED, VALID_STATUSES, Post, PostTag, Tag
from app.foro.modules.posts.slugs import unique_slug
from app.foro.rbac import PERM_POSTS_MODERATE, is_owner_or, user_has_permission
from app.foro.sanitize import sanitize_html, sanitize_text

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.foro.models import User


MAX_TITLE_LENGTH = 200
MAX_TAG_LENGTH = 64

SCOPE_PUBLIC = "public"
SCOPE_ALL = "all"
SCOPE_MINE = "mine"


def validate_post_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """Validate post create/update payload. Returns list of errors."""
    errors = []

    title = payload.get("title")
    if title is not None or not partial:
        if not isinstance(title, str) or not title.strip():
            errors.append("Title is required.")
        elif len(title.strip()) > MAX_TITLE_LENGTH:
            errors.append(f"Title must be at most {MAX_TITLE_LENGTH} characters.")

    content = payload.get("content")
    if content is not None or not partial:
        if not isinstance(content, str) or not content.strip():
            errors.append("Content is required.")

    status = payload.get("status")
    if status is not None and status not in VALID_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(VALID_STATUSES)}")

    tags = payload.get("tags")
    if tags is not None and (not isinstance(tags, list) or not all(isinstance(t, str) for t in tags)):
        errors.append("Tags must be a list of strings.")

    visible = payload.get("visible")
    if visible is not None and not isinstance(visible, bool):
        errors.append("visible must be a boolean.")
    return errors


def clean_tag_names(raw: list[str] | None) -> list[str]:
    names: list[str] = []
    for item in raw or []:
        name = sanitize_text(item)[:MAX_TAG_LENGTH].strip()
        if name and name not in names:
            names.append(name)
    return names


def set_tags(s: "Session", post: Post, names: list[str]) -> None:
    """Replace the post's tag set, creating missing tags by exact name."""
    tags: list[Tag] = []
    for name in clean_tag_names(names):
        tag = s.query(Tag).filter(Tag.name == name).one_or_none()
        if tag is None:
            tag = Tag(name=name)
            s.add(tag)
            s.flush()
        tags.append(tag)

    # Keep links that survive so the same (post, tag) row is never deleted and re-inserted.
    wanted = {t.id for t in tags}
    existing = {link.tag_id: link for link in post.tag_links}
    for tag_id, link in existing.items():
        if tag_id not in wanted:
            post.tag_links.remove(link)
    for tag in tags:
        if tag.id not in existing:
            post.tag_links.append(PostTag(tag=tag))


def create_post(s: "Session", payload: dict, author: "User") -> Post:
    now = datetime.utcnow()
    title = sanitize_text(payload["title"])[:MAX_TITLE_LENGTH]
    post = Post(
        title=title,
        slug=unique_slug(s, title),
        content=sanitize_html(payload["content"]),
        status=payload.get("status") or STATUS_DRAFT,
        visible=True,
        author_id=author.id,
        created_at=now,
        updated_at=now,
    )
    s.add(post)
    s.flush()
    if payload.get("tags"):
        set_tags(s, post, payload["tags"])
        s.flush()

    record_event(
        s,
        actor=author,
        action="post.create",
        entity_type="Post",
        entity_id=post.id,
        metadata={"title": post.title, "slug": post.slug, "status": post.status},
    )
    return post


def update_post(s: "Session", post: Post, payload: dict, actor: "User") -> dict[str, Any]:
    """Apply an update; `visible` is only honoured for moderators. Returns the changes."""
    changes: dict[str, Any] = {}

    if payload.get("title"):
        new_title = sanitize_text(payload["title"])[:MAX_TITLE_LENGTH]
        if new_title != post.title:
            changes["title"] = {"old": post.title, "new": new_title}
            post.title = new_title

    if payload.get("content"):
        new_content = sanitize_html(payload["content"])
        if new_content != post.content:
            changes["content"] = True
            post.content = new_content

    new_status = payload.get("status")
    if new_status and new_status != post.status:
        changes["status"] = {"old": post.status, "new": new_status}
        post.status = new_status

    visible = payload.get("visible")
    if isinstance(visible, bool) and visible != post.visible and user_has_permission(actor, PERM_POSTS_MODERATE):
        changes["visible"] = {"old": post.visible, "new": visible}
        post.visible = visible

    if payload.get("tags") is not None:
        old_tags = post.tag_names
        set_tags(s, post, payload["tags"])
        s.flush()
        new_tags = post.tag_names
        if old_tags != new_tags:
            changes["tags"] = {"old": old_tags, "new": new_tags}

    post.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="post.update",
        entity_type="Post",
        entity_id=post.id,
        metadata={"slug": post.slug, "changes": changes},
    )
    return changes


def delete_post(s: "Session", post: Post, actor: "User", reason: str | None = None) -> None:
    record_event(
        s,
        actor=actor,
        action="post.delete",
        entity_type="Post",
        entity_id=post.id,
        reason=reason,
        metadata={"title": post.title, "slug": post.slug, "author_id": post.author_id},
    )
    s.delete(post)


def can_manage_post(user: "User | None", post: Post) -> bool:
    return is_owner_or(user, post.author_id, PERM_POSTS_MODERATE)


def can_view_post(user: "User | None", post: Post) -> bool:
    """Drafts and hidden posts are only visible to their author and moderators."""
    return post.is_public or can_manage_post(user, post)


def list_posts(
    s: "Session",
    *,
    viewer: "User | None" = None,
    scope: str = SCOPE_PUBLIC,
    search: str = "",
    tag: str = "",
    status: str | None = None,
    visible: bool | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Post], int]:
    q = s.query(Post)
    if scope == SCOPE_MINE and viewer is not None:
        q = q.filter(Post.author_id == viewer.id)
    elif scope != SCOPE_ALL:
        q = q.filter(Post.status == STATUS_PUBLISHED, Post.visible.is_(True))

    if status:
        q = q.filter(Post.status == status)
    if visible is not None:
        q = q.filter(Post.visible.is_(visible))
    if search:
        like = contains_pattern(search)
        q = q.filter(or_(Post.title.ilike(like, escape=LIKE_ESCAPE), Post.content.ilike(like, escape=LIKE_ESCAPE)))
    if tag:
        q = q.filter(Post.tag_links.any(PostTag.tag.has(func.lower(Tag.name) == tag.lower())))

    total = q.count()
    order = Post.updated_at.desc() if scope == SCOPE_MINE else Post.created_at.desc()
    posts = q.order_by(order, Post.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return posts, total


def post_stats(s: "Session", post_ids: list[int], viewer: "User | None" = None) -> dict[int, dict[str, Any]]:
    """Visible-comment and like counts per post, plus whether the viewer liked it."""
    from app.foro.modules.comments.models import Comment
    from app.foro.modules.likes.models import Like

    stats: dict[int, dict[str, Any]] = {pid: {"comments": 0, "likes": 0, "liked_by_me": False} for pid in post_ids}
    if not post_ids:
        return stats
    comment_rows = (
        s.query(Comment.post_id, func.count(Comment.id))
        .filter(Comment.post_id.in_(post_ids), Comment.visible.is_(True))
        .group_by(Comment.post_id)
    )
    for pid, n in comment_rows:
        stats[pid]["comments"] = n
    for pid, n in s.query(Like.post_id, func.count(Like.id)).filter(Like.post_id.in_(post_ids)).group_by(Like.post_id):
        stats[pid]["likes"] = n
    if viewer is not None:
        for (pid,) in s.query(Like.post_id).filter(Like.post_id.in_(post_ids), Like.user_id == viewer.id):
            stats[pid]["liked_by_me"] = True
    return stats


def visible_comments(s: "Session", post: Post) -> list:
    from app.foro.modules.comments.models import Comment

    return (
        s.query(Comment)
        .filter(Comment.post_id == post.id, Comment.visible.is_(True))
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .all()
    )


def serialize_post(
    post: Post,
    viewer: "User | None",
    stats: dict[str, Any] | None = None,
    comments: list | None = None,
) -> dict[str, Any]:
    from app.foro.modules.comments.service import serialize_comment
    from app.foro.modules.users.service import serialize_author

    data: dict[str, Any] = {
        "id": post.id,
        "title": post.title,
        "slug": post.slug,
        "content": post.content,
        "status": post.status,
        "visible": post.visible,
        "author": serialize_author(post.author, viewer),
        "tags": post.tag_names,
        "created_at": post.created_at.isoformat() if post.created_at else None,
        "updated_at": post.updated_at.isoformat() if post.updated_at else None,
    }
    if stats is not None:
        data["counts"] = {"comments": stats["comments"], "likes": stats["likes"]}
        data["liked_by_me"] = stats["liked_by_me"]
    if comments is not None:
        data["comments"] = [serialize_comment(c, viewer) for c in comments]
    return data
