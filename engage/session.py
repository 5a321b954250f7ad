from __future__ import annotations

import logging

from engage.engine.comments import CommentThread
from engage.engine.pending import PendingRegistry
from engage.engine.reactions import ReactionController
from engage.engine.reconcile import ReconciliationListener
from engage.errors import RemoteFailure
from engage.schemas.common import Viewer
from engage.schemas.reaction import ReactionState
from engage.services.feed import EntityUpdateFeed
from engage.services.gateway import ApiGateway
from engage.services.side_effects import SideEffectDispatcher

logger = logging.getLogger(__name__)


class PostSession:
    """Everything one view needs to interact with one post.

    Owns the reaction controller, the comment thread, the side-effect
    dispatcher and the reconciliation listener. Collaborators that are not
    passed in are created here and closed again by ``close``.
    """

    def __init__(
        self,
        post_id: str,
        post_owner_id: str,
        viewer: Viewer,
        *,
        initial: ReactionState | None = None,
        gateway: ApiGateway | None = None,
        feed: EntityUpdateFeed | None = None,
        dispatcher: SideEffectDispatcher | None = None,
        token: str | None = None,
    ) -> None:
        self._owns_gateway = gateway is None
        self._owns_feed = feed is None
        self.gateway = gateway if gateway is not None else ApiGateway(token=token)
        self.feed = feed if feed is not None else EntityUpdateFeed()
        self.dispatcher = dispatcher if dispatcher is not None else SideEffectDispatcher(self.gateway)
        self.registry = PendingRegistry()
        self.reactions = ReactionController(
            post_id,
            post_owner_id,
            viewer,
            self.gateway,
            self.dispatcher,
            initial=initial,
            registry=self.registry,
        )
        self.comments = CommentThread(
            post_id,
            post_owner_id,
            viewer,
            self.gateway,
            self.dispatcher,
            registry=self.registry,
        )
        self.listener = ReconciliationListener(self.reactions, self.feed)

    async def open(self, *, load_comments: bool = True) -> PostSession:
        self.listener.start()
        if load_comments:
            try:
                await self.comments.refresh()
            except RemoteFailure as exc:
                logger.warning("Initial comment load failed for post_id=%s: %s", self.reactions.entity_id, exc.detail)
        return self

    async def close(self) -> None:
        await self.listener.stop()
        await self.dispatcher.drain()
        if self._owns_feed:
            await self.feed.aclose()
        if self._owns_gateway:
            await self.gateway.aclose()

    async def __aenter__(self) -> PostSession:
        return await self.open()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
