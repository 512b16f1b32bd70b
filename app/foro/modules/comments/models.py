from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.foro.models import Base

if TYPE_CHECKING:
    from app.foro.models import User
    from app.foro.modules.posts.models import Post


MAX_COMMENT_LENGTH = 1000


class Comment(Base):
    __tablename__ = "comments"
    __table_args__ = (
        Index("idx_comments_post_id", "post_id"),
        Index("idx_comments_author_id", "author_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)  # sanitized HTML
    visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    author_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    post_id: Mapped[int] = mapped_column(ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    author: Mapped["User"] = relationship("User", back_populates="comments", lazy="selectin")
    post: Mapped["Post"] = relationship("Post", back_populates="comments", lazy="selectin")
