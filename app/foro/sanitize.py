"""
Input sanitization for user-authored content.

Post bodies and comments are stored as a small HTML subset; titles, names and
tag names are plain text.
"""
from __future__ import annotations

import re

import bleach

ALLOWED_TAGS = frozenset(
    {
        "p", "br", "strong", "em", "u",
        "h1", "h2", "h3", "h4", "h5", "h6",
        "ul", "ol", "li", "blockquote", "a",
    }
)
ALLOWED_ATTRIBUTES = {"a": ["href", "target"]}
ALLOWED_PROTOCOLS = frozenset({"http", "https", "mailto"})

MAX_TEXT_LENGTH = 1000

# Elements whose body must not survive as text once the tag is stripped.
_DROP_WITH_CONTENT = re.compile(
    r"<(script|style|iframe|object)\b[^>]*>.*?</\1\s*>",
    re.IGNORECASE | re.DOTALL,
)
_EMBED = re.compile(r"<embed\b[^>]*>", re.IGNORECASE)


def sanitize_html(dirty: str | None) -> str:
    if not dirty:
        return ""
    # Repeat until stable: removing an inner element can splice a new one together.
    html, previous = dirty, None
    while html != previous:
        previous = html
        html = _EMBED.sub("", _DROP_WITH_CONTENT.sub("", html))
    cleaned = bleach.clean(
        html,
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
    )
    return cleaned.strip()


def sanitize_text(text: str | None) -> str:
    """Plain text: angle brackets removed, trimmed, capped at MAX_TEXT_LENGTH."""
    if not text:
        return ""
    return text.replace("<", "").replace(">", "").strip()[:MAX_TEXT_LENGTH]
