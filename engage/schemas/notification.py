from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class NotificationKind(str, Enum):
    LIKE = "like"
    COMMENT = "comment"
    COMMENT_REPLY = "comment_reply"
    COMMENT_LIKE = "comment_like"


class XpReason(str, Enum):
    RECEIVE_LIKE = "receive_like"
    RECEIVE_COMMENT_LIKE = "receive_comment_like"
    COMMENT_UNLIKE = "comment_unlike"


class NotificationIn(BaseModel):
    kind: NotificationKind
    to_user_id: str
    from_user_id: str
    message: str
    related_post_id: str | None = None
    related_comment_id: str | None = None
    comment_text: str | None = None


class XpChange(BaseModel):
    user_id: str
    amount: int
    reason: XpReason
