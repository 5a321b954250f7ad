from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class Comment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    post_id: str = Field(validation_alias=AliasChoices("post_id", "postId"))
    author_id: str = Field(validation_alias=AliasChoices("author_id", "userId"))
    author_name: str = Field(default="", validation_alias=AliasChoices("author_name", "userName"))
    content: str
    created_at: datetime | None = Field(default=None, validation_alias=AliasChoices("created_at", "createdAt"))
    edited_at: datetime | None = Field(default=None, validation_alias=AliasChoices("edited_at", "editedAt"))
    reply_to_comment_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("reply_to_comment_id", "replyToCommentId"),
    )
    reply_to_author_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("reply_to_author_id", "replyToUserId"),
    )
    reply_to_author_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("reply_to_author_name", "replyToUserName"),
    )
    like_count: int = Field(default=0, ge=0, validation_alias=AliasChoices("like_count", "likes"))
    liked_by_viewer: bool | None = Field(
        default=None,
        validation_alias=AliasChoices("liked_by_viewer", "likedByMe", "hasLiked"),
    )
    # Local-only marker for an optimistic placeholder that is not yet on the server.
    pending: bool = False

    @model_validator(mode="before")
    @classmethod
    def _flatten_populated_users(cls, data: Any) -> Any:
        # List endpoints return populated user refs: {"_id": ..., "name": ...}.
        if not isinstance(data, dict):
            return data
        out = dict(data)
        for ref_key, name_key in (("userId", "userName"), ("replyToUserId", "replyToUserName")):
            ref = out.get(ref_key)
            if isinstance(ref, dict):
                out[ref_key] = str(ref.get("_id") or ref.get("id") or "")
                if ref.get("name") and not out.get(name_key):
                    out[name_key] = ref["name"]
        return out

    @property
    def is_edited(self) -> bool:
        return self.edited_at is not None

    @property
    def is_reply(self) -> bool:
        return self.reply_to_comment_id is not None


class CommentLikeState(BaseModel):
    model_config = ConfigDict(frozen=True)

    liked: bool = False
    count: int = Field(default=0, ge=0)


class CommentLikePush(BaseModel):
    count: int = Field(ge=0)
    liked: bool | None = None
    version: int | None = None

    @classmethod
    def from_comment(cls, comment: Comment) -> "CommentLikePush":
        return cls(count=comment.like_count, liked=comment.liked_by_viewer)
