from __future__ import annotations

import re
import unicodedata
from typing import TYPE_CHECKING

from app.foro.modules.posts.models import Post

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


FALLBACK_SLUG = "post"


def slugify(title: str) -> str:
    """
    URL slug for a post title. Accents are folded to ASCII ("Introducción" ->
    "introduccion"); anything else outside [a-z0-9 -] is dropped.
    """
    text = unicodedata.normalize("NFKD", title or "")
    text = text.encode("ascii", "ignore").decode("ascii").lower()
    text = re.sub(r"[^a-z0-9\s-]", "", text)
    text = re.sub(r"\s+", "-", text)
    text = re.sub(r"-+", "-", text)
    return text.strip("-") or FALLBACK_SLUG


def unique_slug(s: "Session", title: str) -> str:
    """First free slug among base, base-1, base-2, ..."""
    base = slugify(title)
    slug = base
    counter = 1
    while s.query(Post.id).filter(Post.slug == slug).first() is not None:
        slug = f"{base}-{counter}"
        counter += 1
    return slug
