from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.asyncio.client import PubSub

from engage.core.config import settings
from engage.schemas.reaction import ReactionPush

logger = logging.getLogger(__name__)


def decode_push(raw: bytes | str) -> ReactionPush | None:
    try:
        payload = json.loads(raw)
    except ValueError:
        logger.warning("Dropping undecodable post update payload")
        return None
    if not isinstance(payload, dict):
        logger.warning("Dropping post update payload of type %s", type(payload).__name__)
        return None
    try:
        return ReactionPush.model_validate(payload)
    except ValidationError:
        logger.warning("Dropping invalid post update payload: %s", payload)
        return None


class EntityUpdateFeed:
    """Authoritative post counters pushed over Redis pub/sub.

    ``subscribe`` is lazy and infinite; closing or cancelling the iterator
    unsubscribes. A fresh call starts a fresh subscription, which is how the
    reconciliation listener restarts after a failure.
    """

    def __init__(self, redis: Redis | None = None, *, poll_seconds: float | None = None) -> None:
        self._owns_redis = redis is None
        self._redis = redis or Redis.from_url(settings.redis_url)
        self._poll_seconds = settings.feed_poll_seconds if poll_seconds is None else poll_seconds

    async def subscribe(self, post_id: str) -> AsyncIterator[ReactionPush]:
        channel = settings.feed_channel(post_id)
        pubsub: PubSub = self._redis.pubsub()
        await pubsub.subscribe(channel)
        logger.debug("Subscribed to %s", channel)
        try:
            while True:
                msg = await pubsub.get_message(ignore_subscribe_messages=True, timeout=self._poll_seconds)
                if not msg or not msg.get("data"):
                    await asyncio.sleep(0.02)
                    continue
                push = decode_push(msg["data"])
                if push is not None:
                    yield push
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
            logger.debug("Unsubscribed from %s", channel)

    async def aclose(self) -> None:
        if self._owns_redis:
            await self._redis.aclose()
