from __future__ import annotations

import re

from engage.core.config import settings
from engage.errors import InvalidContent

_CTRL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")
NOTIFICATION_SNIPPET_LENGTH = 200


def reply_prefix(author_name: str) -> str:
    return f"@{(author_name or '').strip()} "


def strip_reply_prefix(content: str, author_name: str) -> str:
    text = (content or "").strip()
    name = (author_name or "").strip()
    if not name:
        return text
    return re.sub(rf"^@{re.escape(name)}(?:\s+|$)", "", text, count=1).strip()


def clean_comment(content: str, *, max_length: int | None = None) -> str:
    text = _CTRL_RE.sub("", content or "").strip()
    if not text:
        raise InvalidContent("Please enter a comment")
    limit = max_length or settings.comment_max_length
    if len(text) > limit:
        raise InvalidContent(f"Comments are limited to {limit} characters")
    return text


def snippet(text: str, limit: int = NOTIFICATION_SNIPPET_LENGTH) -> str:
    clean = (text or "").strip()
    if len(clean) <= limit:
        return clean
    return clean[: limit - 1].rstrip() + "…"
