from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from app.foro.modules.likes.models import Like

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.foro.models import User
    from app.foro.modules.posts.models import Post

logger = logging.getLogger(__name__)

ACTION_LIKE = "like"
ACTION_UNLIKE = "unlike"


@dataclass(frozen=True)
class ToggleResult:
    action: str
    total_likes: int

    @property
    def liked(self) -> bool:
        return self.action == ACTION_LIKE

    def to_dict(self) -> dict:
        return {"action": self.action, "total_likes": self.total_likes, "liked": self.liked}


def count_likes(s: "Session", post_id: int) -> int:
    return s.query(func.count(Like.id)).filter(Like.post_id == post_id).scalar() or 0


def find_like(s: "Session", user_id: int, post_id: int) -> Like | None:
    return s.query(Like).filter(Like.user_id == user_id, Like.post_id == post_id).one_or_none()


def toggle_like(s: "Session", post: "Post", user: "User") -> ToggleResult:
    """
    Remove the user's like if present, otherwise add one. Commits.

    Two concurrent "like" requests can both miss the existence check; the
    unique constraint rejects the second insert and that request simply reports
    the post as liked.
    """
    existing = find_like(s, user.id, post.id)
    if existing is not None:
        s.delete(existing)
        s.commit()
        return ToggleResult(ACTION_UNLIKE, count_likes(s, post.id))

    s.add(Like(user_id=user.id, post_id=post.id, created_at=datetime.utcnow()))
    try:
        s.commit()
    except IntegrityError:
        s.rollback()
        logger.info("Concurrent like on post=%s by user=%s resolved by unique constraint", post.id, user.id)
    return ToggleResult(ACTION_LIKE, count_likes(s, post.id))
