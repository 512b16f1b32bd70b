from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import or_

from app.foro.audit import record_event
from app.foro.db import LIKE_ESCAPE, contains_pattern
from app.foro.modules.comments.models import MAX_COMMENT_LENGTH, Comment
from app.foro.modules.posts.models import Post
from app.foro.rbac import PERM_COMMENTS_MODERATE, is_owner_or, user_has_permission
from app.foro.sanitize import sanitize_html

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.foro.models import User


def _content_errors(content: Any, *, required: bool) -> list[str]:
    if content is None:
        return ["Content is required."] if required else []
    if not isinstance(content, str) or not content.strip():
        return ["Content is required."]
    if len(content) > MAX_COMMENT_LENGTH:
        return [f"Content must be at most {MAX_COMMENT_LENGTH} characters."]
    return []


def validate_comment_payload(payload: dict) -> list[str]:
    errors = _content_errors(payload.get("content"), required=True)
    post_id = payload.get("post_id")
    if isinstance(post_id, bool) or not isinstance(post_id, int):
        errors.append("post_id must be an integer.")
    return errors


def validate_comment_update(payload: dict) -> list[str]:
    errors = _content_errors(payload.get("content"), required=False)
    visible = payload.get("visible")
    if visible is not None and not isinstance(visible, bool):
        errors.append("visible must be a boolean.")
    return errors


def create_comment(s: "Session", post: Post, content: str, author: "User") -> Comment:
    now = datetime.utcnow()
    comment = Comment(
        content=sanitize_html(content),
        visible=True,
        author_id=author.id,
        post_id=post.id,
        created_at=now,
        updated_at=now,
    )
    s.add(comment)
    s.flush()

    record_event(
        s,
        actor=author,
        action="comment.create",
        entity_type="Comment",
        entity_id=comment.id,
        metadata={"post_id": post.id},
    )
    return comment


def update_comment(s: "Session", comment: Comment, payload: dict, actor: "User") -> dict[str, Any]:
    changes: dict[str, Any] = {}
    if payload.get("content"):
        new_content = sanitize_html(payload["content"])
        if new_content != comment.content:
            changes["content"] = True
            comment.content = new_content

    visible = payload.get("visible")
    if isinstance(visible, bool) and visible != comment.visible and user_has_permission(actor, PERM_COMMENTS_MODERATE):
        changes["visible"] = {"old": comment.visible, "new": visible}
        comment.visible = visible

    comment.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="comment.update",
        entity_type="Comment",
        entity_id=comment.id,
        metadata={"post_id": comment.post_id, "changes": changes},
    )
    return changes


def delete_comment(s: "Session", comment: Comment, actor: "User") -> None:
    record_event(
        s,
        actor=actor,
        action="comment.delete",
        entity_type="Comment",
        entity_id=comment.id,
        metadata={"post_id": comment.post_id, "author_id": comment.author_id},
    )
    s.delete(comment)


def can_manage_comment(user: "User | None", comment: Comment) -> bool:
    return is_owner_or(user, comment.author_id, PERM_COMMENTS_MODERATE)


def list_comments(
    s: "Session",
    *,
    search: str = "",
    visible: bool | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Comment], int]:
    """Moderation listing: every comment, newest first."""
    from app.foro.models import User

    q = s.query(Comment)
    if search:
        like = contains_pattern(search)
        q = q.filter(
            or_(
                Comment.content.ilike(like, escape=LIKE_ESCAPE),
                Comment.author.has(User.name.ilike(like, escape=LIKE_ESCAPE)),
            )
        )
    if visible is not None:
        q = q.filter(Comment.visible.is_(visible))
    total = q.count()
    comments = q.order_by(Comment.created_at.desc(), Comment.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return comments, total


def serialize_comment(comment: Comment, viewer: "User | None", *, include_post: bool = False) -> dict[str, Any]:
    from app.foro.modules.users.service import serialize_author

    data: dict[str, Any] = {
        "id": comment.id,
        "content": comment.content,
        "visible": comment.visible,
        "post_id": comment.post_id,
        "author": serialize_author(comment.author, viewer),
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
        "updated_at": comment.updated_at.isoformat() if comment.updated_at else None,
    }
    if include_post:
        data["post"] = {"id": comment.post.id, "title": comment.post.title, "slug": comment.post.slug}
    return data
