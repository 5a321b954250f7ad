from __future__ import annotations

from engage.engine.base import Observer, OptimisticController
from engage.engine.pending import OperationKind, PendingRegistry
from engage.schemas.comment import Comment, CommentLikePush, CommentLikeState
from engage.schemas.common import ActionResult, Viewer
from engage.services.gateway import ApiGateway
from engage.services.side_effects import SideEffectDispatcher

COMMENT_LIKE_FAILED_MESSAGE = "Failed to update comment like. Please try again."


def toggle_comment_like_state(state: CommentLikeState) -> CommentLikeState:
    if state.liked:
        return CommentLikeState(liked=False, count=max(0, state.count - 1))
    return CommentLikeState(liked=True, count=state.count + 1)


def merge_comment_like_push(
    state: CommentLikeState,
    push: CommentLikePush,
    *,
    settled: bool = False,
) -> CommentLikeState:
    liked = state.liked if push.liked is None else push.liked
    count = push.count
    if liked and count < 1:
        if not settled and push.liked is None:
            return CommentLikeState(liked=False, count=count)
        count = 1
    return CommentLikeState(liked=liked, count=count)


class CommentLikeController(OptimisticController[CommentLikeState, CommentLikePush]):
    kind = OperationKind.COMMENT_LIKE_TOGGLE

    def __init__(
        self,
        comment: Comment,
        viewer: Viewer,
        gateway: ApiGateway,
        dispatcher: SideEffectDispatcher,
        *,
        registry: PendingRegistry | None = None,
        on_change: Observer | None = None,
    ) -> None:
        initial = CommentLikeState(liked=bool(comment.liked_by_viewer), count=comment.like_count)
        super().__init__(comment.id, initial, registry=registry, on_change=on_change)
        self.post_id = comment.post_id
        self.comment_author_id = comment.author_id
        self.viewer = viewer
        self._gateway = gateway
        self._dispatcher = dispatcher

    def _merge_state(self, state: CommentLikeState, push: CommentLikePush, *, settled: bool) -> CommentLikeState:
        return merge_comment_like_push(state, push, settled=settled)

    def sync(self, comment: Comment) -> bool:
        return self.reconcile(CommentLikePush.from_comment(comment))

    async def toggle(self) -> ActionResult[CommentLikeState]:
        def _confirmed(prior: CommentLikeState, _applied: CommentLikeState) -> None:
            if prior.liked:
                self._dispatcher.comment_unliked(comment_author_id=self.comment_author_id, actor=self.viewer)
            else:
                self._dispatcher.comment_liked(
                    post_id=self.post_id,
                    comment_id=self.entity_id,
                    comment_author_id=self.comment_author_id,
                    actor=self.viewer,
                )

        return await self._run_toggle(
            toggle_comment_like_state,
            lambda: self._gateway.toggle_comment_like(self.entity_id, self.viewer.user_id),
            _confirmed,
            COMMENT_LIKE_FAILED_MESSAGE,
        )
