from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from engage.core.config import settings
from engage.errors import SideEffectFailure
from engage.schemas.comment import Comment
from engage.schemas.common import Viewer
from engage.schemas.notification import NotificationIn, NotificationKind, XpChange, XpReason
from engage.services.gateway import ApiGateway
from engage.services.text import snippet

logger = logging.getLogger(__name__)


class SideEffectDispatcher:
    """Fires XP and notification calls after a primary mutation is confirmed.

    Each call runs as its own task: a failure is logged and counted, never
    raised, never retried, and never affects the other call or the primary
    state. Callers only reach these methods from a confirmed success path.
    Skipping self-interactions (owner == actor) happens here.
    """

    def __init__(self, sink: ApiGateway, *, xp_like: int | None = None, xp_comment_like: int | None = None) -> None:
        self._sink = sink
        self._xp_like = settings.xp_receive_like if xp_like is None else xp_like
        self._xp_comment_like = settings.xp_receive_comment_like if xp_comment_like is None else xp_comment_like
        self._tasks: set[asyncio.Task] = set()
        self.failure_count = 0

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def _fire(self, effect: str, call: Callable[[], Awaitable[None]]) -> None:
        task = asyncio.create_task(self._run(effect, call), name=f"side-effect:{effect}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, effect: str, call: Callable[[], Awaitable[None]]) -> None:
        try:
            await call()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.failure_count += 1
            failure = SideEffectFailure(effect, exc)
            logger.exception("Side effect failed, primary action kept: %s", failure)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def reaction_added(self, *, post_id: str, post_owner_id: str, actor: Viewer) -> None:
        if post_owner_id == actor.user_id:
            return
        change = XpChange(user_id=post_owner_id, amount=self._xp_like, reason=XpReason.RECEIVE_LIKE)
        notification = NotificationIn(
            kind=NotificationKind.LIKE,
            to_user_id=post_owner_id,
            from_user_id=actor.user_id,
            message=f"{actor.display_name} reacted to your post",
            related_post_id=post_id,
        )
        self._fire("award-xp", lambda: self._sink.award_xp(change))
        self._fire("notify-like", lambda: self._sink.create_notification(notification))

    def comment_liked(self, *, post_id: str, comment_id: str, comment_author_id: str, actor: Viewer) -> None:
        if comment_author_id == actor.user_id:
            return
        change = XpChange(
            user_id=comment_author_id,
            amount=self._xp_comment_like,
            reason=XpReason.RECEIVE_COMMENT_LIKE,
        )
        notification = NotificationIn(
            kind=NotificationKind.COMMENT_LIKE,
            to_user_id=comment_author_id,
            from_user_id=actor.user_id,
            message=f"{actor.display_name} liked your comment",
            related_post_id=post_id,
            related_comment_id=comment_id,
        )
        self._fire("award-xp", lambda: self._sink.award_xp(change))
        self._fire("notify-comment-like", lambda: self._sink.create_notification(notification))

    def comment_unliked(self, *, comment_author_id: str, actor: Viewer) -> None:
        if comment_author_id == actor.user_id:
            return
        change = XpChange(
            user_id=comment_author_id,
            amount=self._xp_comment_like,
            reason=XpReason.COMMENT_UNLIKE,
        )
        self._fire("deduct-xp", lambda: self._sink.deduct_xp(change))

    def comment_created(
        self,
        *,
        post_id: str,
        post_owner_id: str,
        comment: Comment,
        actor: Viewer,
        reply_to: Comment | None = None,
    ) -> None:
        text = snippet(comment.content)
        if post_owner_id != actor.user_id:
            on_post = NotificationIn(
                kind=NotificationKind.COMMENT,
                to_user_id=post_owner_id,
                from_user_id=actor.user_id,
                message=f"{actor.display_name} commented on your post",
                related_post_id=post_id,
                related_comment_id=comment.id,
                comment_text=text,
            )
            self._fire("notify-comment", lambda: self._sink.create_notification(on_post))
        if reply_to is not None and reply_to.author_id != actor.user_id:
            on_reply = NotificationIn(
                kind=NotificationKind.COMMENT_REPLY,
                to_user_id=reply_to.author_id,
                from_user_id=actor.user_id,
                message=f"{actor.display_name} replied to your comment",
                related_post_id=post_id,
                related_comment_id=reply_to.id,
                comment_text=text,
            )
            self._fire("notify-reply", lambda: self._sink.create_notification(on_reply))
