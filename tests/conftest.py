from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from engage.schemas.comment import Comment
from engage.schemas.common import Viewer
from engage.services.side_effects import SideEffectDispatcher

POST_ID = "p1"
OWNER_ID = "owner"


class FakeGateway:
    """In-memory collaborator API: primary calls can be held open or failed."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.effects: list[tuple] = []
        self.failures: dict[str, BaseException] = {}
        self.hold: asyncio.Event | None = None
        self.comments: list[Comment] = []
        self.names: dict[str, str] = {}
        self._next_id = 0

    def _maybe_fail(self, name: str) -> None:
        exc = self.failures.get(name)
        if exc is not None:
            raise exc

    async def _primary(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if self.hold is not None:
            await self.hold.wait()
        self._maybe_fail(name)

    def calls_named(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    def add_comment(self, author_id: str, content: str, **extra) -> Comment:
        self._next_id += 1
        comment = Comment(
            id=f"c{self._next_id}",
            post_id=POST_ID,
            author_id=author_id,
            author_name=self.names.get(author_id, author_id),
            content=content,
            created_at=datetime.now(timezone.utc),
            **extra,
        )
        self.comments.append(comment)
        return comment

    async def toggle_reaction(self, post_id: str, viewer_id: str, emoji: str) -> None:
        await self._primary("toggle_reaction", post_id, viewer_id, emoji)

    async def toggle_comment_like(self, comment_id: str, viewer_id: str) -> bool | None:
        await self._primary("toggle_comment_like", comment_id, viewer_id)
        return None

    async def create_comment(
        self,
        post_id: str,
        author_id: str,
        content: str,
        *,
        reply_to_comment_id: str | None = None,
        reply_to_author_name: str | None = None,
    ) -> Comment:
        await self._primary("create_comment", post_id, author_id, content, reply_to_comment_id, reply_to_author_name)
        return self.add_comment(
            author_id,
            content,
            reply_to_comment_id=reply_to_comment_id,
            reply_to_author_name=reply_to_author_name,
        )

    async def edit_comment(self, comment_id: str, content: str) -> Comment:
        await self._primary("edit_comment", comment_id, content)
        for index, comment in enumerate(self.comments):
            if comment.id == comment_id:
                updated = comment.model_copy(update={"content": content, "edited_at": datetime.now(timezone.utc)})
                self.comments[index] = updated
                return updated
        raise AssertionError(f"no comment {comment_id}")

    async def delete_comment(self, comment_id: str) -> None:
        await self._primary("delete_comment", comment_id)
        self.comments = [c for c in self.comments if c.id != comment_id]

    async def list_comments(self, post_id: str) -> list[Comment]:
        self.calls.append(("list_comments", post_id))
        self._maybe_fail("list_comments")
        return list(self.comments)

    async def award_xp(self, change) -> None:
        self.effects.append(("award_xp", change))
        self._maybe_fail("award_xp")

    async def deduct_xp(self, change) -> None:
        self.effects.append(("deduct_xp", change))
        self._maybe_fail("deduct_xp")

    async def create_notification(self, notification) -> None:
        self.effects.append(("create_notification", notification))
        self._maybe_fail("create_notification")

    def effects_named(self, name: str) -> list:
        return [payload for kind, payload in self.effects if kind == name]


@pytest.fixture
def viewer() -> Viewer:
    return Viewer(user_id="viewer", display_name="Vera")


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def dispatcher(gateway: FakeGateway) -> SideEffectDispatcher:
    return SideEffectDispatcher(gateway, xp_like=5, xp_comment_like=5)
