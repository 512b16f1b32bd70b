from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.foro.models import Base

if TYPE_CHECKING:
    from app.foro.models import User
    from app.foro.modules.comments.models import Comment
    from app.foro.modules.likes.models import Like


STATUS_DRAFT = "draft"
STATUS_PUBLISHED = "published"
VALID_STATUSES = (STATUS_DRAFT, STATUS_PUBLISHED)


class Post(Base):
    __tablename__ = "posts"
    __table_args__ = (
        Index("idx_posts_author_id", "author_id"),
        Index("idx_posts_status_visible", "status", "visible"),
        Index("idx_posts_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)  # sanitized HTML
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_DRAFT)  # draft, published
    visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)  # moderator switch

    author_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    author: Mapped["User"] = relationship("User", back_populates="posts", lazy="selectin")
    comments: Mapped[list["Comment"]] = relationship(
        "Comment",
        back_populates="post",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    likes: Mapped[list["Like"]] = relationship(
        "Like",
        back_populates="post",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    tag_links: Mapped[list["PostTag"]] = relationship(
        "PostTag",
        back_populates="post",
        cascade="all, delete-orphan",
        lazy="selectin",
        passive_deletes=True,
    )

    @property
    def is_public(self) -> bool:
        return self.status == STATUS_PUBLISHED and self.visible

    @property
    def tag_names(self) -> list[str]:
        return sorted(link.tag.name for link in self.tag_links)


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    post_links: Mapped[list["PostTag"]] = relationship(
        "PostTag",
        back_populates="tag",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class PostTag(Base):
    __tablename__ = "post_tags"

    post_id: Mapped[int] = mapped_column(ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True)
    tag_id: Mapped[int] = mapped_column(ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)

    post: Mapped[Post] = relationship("Post", back_populates="tag_links")
    tag: Mapped[Tag] = relationship("Tag", back_populates="post_links", lazy="selectin")
