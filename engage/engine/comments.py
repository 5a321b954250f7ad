from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone

from engage.engine.comment_likes import CommentLikeController
from engage.engine.pending import OperationKind, PendingRegistry
from engage.errors import AuthorizationFailure, InvalidContent, RejectedConcurrent, RemoteFailure
from engage.schemas.comment import Comment
from engage.schemas.common import ActionResult, ActionStatus, UserError, Viewer
from engage.services.gateway import ApiGateway
from engage.services.side_effects import SideEffectDispatcher
from engage.services.text import clean_comment, reply_prefix, strip_reply_prefix

logger = logging.getLogger(__name__)

ADD_FAILED_MESSAGE = "Failed to add comment. Please try again."
EDIT_FAILED_MESSAGE = "Failed to edit comment. Please try again."
DELETE_FAILED_MESSAGE = "Failed to delete comment. Please try again."
FORBIDDEN_MESSAGE = "You can only edit or delete your own comments."

CommentsObserver = Callable[[list[Comment]], None]


class CommentThread:
    """Comments under one post, as seen by one viewer.

    Create, edit and delete wait for the server and then refetch the canonical
    list; nothing is re-derived from the local copy. Likes on individual
    comments are handled by one ``CommentLikeController`` per comment.
    """

    def __init__(
        self,
        post_id: str,
        post_owner_id: str,
        viewer: Viewer,
        gateway: ApiGateway,
        dispatcher: SideEffectDispatcher,
        *,
        registry: PendingRegistry | None = None,
        comments: list[Comment] | None = None,
        on_change: CommentsObserver | None = None,
    ) -> None:
        self.post_id = post_id
        self.post_owner_id = post_owner_id
        self.viewer = viewer
        self._gateway = gateway
        self._dispatcher = dispatcher
        self._registry = registry if registry is not None else PendingRegistry()
        self._on_change = on_change
        self.comments: list[Comment] = []
        self._likes: dict[str, CommentLikeController] = {}
        self.draft = ""
        self.replying_to: Comment | None = None
        self._set_comments(list(comments or []))

    def _set_comments(self, comments: list[Comment]) -> None:
        self.comments = comments
        likes: dict[str, CommentLikeController] = {}
        for comment in comments:
            if comment.pending:
                continue
            controller = self._likes.get(comment.id)
            if controller is None:
                controller = CommentLikeController(
                    comment,
                    self.viewer,
                    self._gateway,
                    self._dispatcher,
                    registry=self._registry,
                )
            else:
                controller.sync(comment)
            likes[comment.id] = controller
        self._likes = likes
        if self._on_change is not None:
            try:
                self._on_change(list(self.comments))
            except Exception:
                logger.exception("Comment observer failed for post_id=%s", self.post_id)

    def find(self, comment_id: str) -> Comment | None:
        for comment in self.comments:
            if comment.id == comment_id:
                return comment
        return None

    def likes(self, comment_id: str) -> CommentLikeController:
        try:
            return self._likes[comment_id]
        except KeyError:
            raise KeyError(f"Unknown comment {comment_id}") from None

    async def refresh(self) -> list[Comment]:
        self._set_comments(await self._gateway.list_comments(self.post_id))
        return self.comments

    async def _refresh_or(self, fallback: Callable[[], list[Comment]]) -> None:
        try:
            await self.refresh()
        except RemoteFailure as exc:
            logger.warning("Comment refresh failed for post_id=%s: %s", self.post_id, exc.detail)
            self._set_comments(fallback())

    # Replies

    def start_reply(self, comment: Comment) -> str:
        self.replying_to = comment
        self.draft = reply_prefix(comment.author_name)
        return self.draft

    def cancel_reply(self) -> None:
        self.replying_to = None
        self.draft = ""

    # Create

    async def create(
        self,
        content: str | None = None,
        *,
        reply_to: Comment | None = None,
        placeholder: bool = False,
    ) -> ActionResult[list[Comment]]:
        raw = self.draft if content is None else content
        target = reply_to if reply_to is not None else self.replying_to
        text = strip_reply_prefix(raw, target.author_name) if target is not None else raw
        try:
            text = clean_comment(text)
        except InvalidContent as exc:
            return self._failed(str(exc), retryable=False)

        try:
            pending = self._registry.acquire(self.post_id, OperationKind.COMMENT_CREATE, list(self.comments))
        except RejectedConcurrent as exc:
            logger.debug("Ignoring intent: %s", exc)
            return ActionResult(status=ActionStatus.REJECTED, state=list(self.comments))

        # Keep what the user typed so a failure can be retried as-is.
        self.draft = raw
        local: Comment | None = None
        if placeholder:
            local = self._placeholder(text, target)
            self._set_comments([*self.comments, local])

        try:
            created = await self._gateway.create_comment(
                self.post_id,
                self.viewer.user_id,
                text,
                reply_to_comment_id=target.id if target is not None else None,
                reply_to_author_name=target.author_name if target is not None else None,
            )
        except RemoteFailure as exc:
            logger.warning("comment-create failed for post_id=%s: %s", self.post_id, exc.detail)
            if local is not None:
                self._set_comments([c for c in self.comments if c.id != local.id])
            return self._failed(ADD_FAILED_MESSAGE, retryable=exc.retryable)
        except BaseException:
            if local is not None:
                self._set_comments([c for c in self.comments if c.id != local.id])
            raise
        finally:
            self._registry.release(pending)

        self.draft = ""
        self.replying_to = None
        self._dispatcher.comment_created(
            post_id=self.post_id,
            post_owner_id=self.post_owner_id,
            comment=created,
            actor=self.viewer,
            reply_to=target,
        )

        def _fallback() -> list[Comment]:
            kept = [c for c in self.comments if local is None or c.id != local.id]
            return [*kept, created]

        await self._refresh_or(_fallback)
        return ActionResult(status=ActionStatus.APPLIED, state=list(self.comments))

    def _placeholder(self, text: str, target: Comment | None) -> Comment:
        return Comment(
            id=f"local-{uuid.uuid4().hex}",
            post_id=self.post_id,
            author_id=self.viewer.user_id,
            author_name=self.viewer.display_name,
            content=text,
            created_at=datetime.now(timezone.utc),
            reply_to_comment_id=target.id if target is not None else None,
            reply_to_author_id=target.author_id if target is not None else None,
            reply_to_author_name=target.author_name if target is not None else None,
            pending=True,
        )

    # Edit / delete

    async def edit(self, comment_id: str, new_content: str) -> ActionResult[list[Comment]]:
        try:
            text = clean_comment(new_content)
        except InvalidContent as exc:
            return self._failed(str(exc), retryable=False)

        async def _call() -> Comment:
            return await self._gateway.edit_comment(comment_id, text)

        def _fallback(updated: Comment) -> list[Comment]:
            return [updated if c.id == comment_id else c for c in self.comments]

        return await self._confirmed_write(comment_id, OperationKind.COMMENT_EDIT, _call, _fallback, EDIT_FAILED_MESSAGE)

    async def delete(self, comment_id: str) -> ActionResult[list[Comment]]:
        async def _call() -> None:
            await self._gateway.delete_comment(comment_id)

        def _fallback(_result: None) -> list[Comment]:
            return [c for c in self.comments if c.id != comment_id]

        return await self._confirmed_write(
            comment_id,
            OperationKind.COMMENT_DELETE,
            _call,
            _fallback,
            DELETE_FAILED_MESSAGE,
        )

    async def _confirmed_write(
        self,
        comment_id: str,
        kind: OperationKind,
        call: Callable[[], Awaitable],
        fallback: Callable,
        failure_message: str,
    ) -> ActionResult[list[Comment]]:
        try:
            pending = self._registry.acquire(comment_id, kind, list(self.comments))
        except RejectedConcurrent as exc:
            logger.debug("Ignoring intent: %s", exc)
            return ActionResult(status=ActionStatus.REJECTED, state=list(self.comments))

        try:
            result = await call()
        except AuthorizationFailure as exc:
            logger.warning("%s forbidden for comment_id=%s: %s", kind.value, comment_id, exc.detail)
            return self._failed(FORBIDDEN_MESSAGE, retryable=False)
        except RemoteFailure as exc:
            logger.warning("%s failed for comment_id=%s: %s", kind.value, comment_id, exc.detail)
            return self._failed(failure_message, retryable=exc.retryable)
        finally:
            self._registry.release(pending)

        await self._refresh_or(lambda: fallback(result))
        return ActionResult(status=ActionStatus.APPLIED, state=list(self.comments))

    def _failed(self, message: str, *, retryable: bool) -> ActionResult[list[Comment]]:
        return ActionResult(
            status=ActionStatus.FAILED,
            state=list(self.comments),
            error=UserError(message=message, retryable=retryable),
        )
