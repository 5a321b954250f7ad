from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing

from engage.core.config import settings
from engage.engine.reactions import ReactionController
from engage.services.feed import EntityUpdateFeed

logger = logging.getLogger(__name__)


class ReconciliationListener:
    """Feeds authoritative post counters into a ReactionController.

    Pushes are handed over in arrival order; the controller decides whether to
    merge now or buffer behind an in-flight toggle. The subscription is
    restarted after a failure or an unexpected end of stream until ``stop``.
    """

    def __init__(
        self,
        controller: ReactionController,
        feed: EntityUpdateFeed,
        *,
        restart_delay: float | None = None,
    ) -> None:
        self._controller = controller
        self._feed = feed
        self._restart_delay = settings.feed_restart_delay_seconds if restart_delay is None else restart_delay
        self._task: asyncio.Task | None = None
        self.received = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"reconcile:{self._controller.entity_id}")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        post_id = self._controller.entity_id
        while True:
            try:
                async with aclosing(self._feed.subscribe(post_id)) as stream:
                    async for push in stream:
                        self.received += 1
                        self._controller.reconcile(push)
                logger.info("Post update feed ended for post_id=%s, resubscribing", post_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Post update feed failed for post_id=%s, resubscribing", post_id)
            await asyncio.sleep(self._restart_delay)
