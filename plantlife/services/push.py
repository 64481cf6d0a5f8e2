"""Push channel: best-effort fan-out of change events to connected clients.

``EventHub`` keeps per-connection queues for SSE and WebSocket consumers in
this process. ``RedisBroadcaster`` publishes to a pub/sub channel instead,
and ``relay_to_hub`` forwards that channel into the local hub, so every
process serves the events of every other process.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import redis.asyncio as aioredis

from plantlife.logging_config import get_logger
from plantlife.utils import utcnow

logger = get_logger(__name__)

# Event kinds broadcast after successful mutations.
NEW_POST = "new_post"
POST_DELETED = "post_deleted"
POST_LIKED = "post_liked"
POST_UNLIKED = "post_unliked"
POST_SHARED = "post_shared"
POST_UNSHARED = "post_unshared"
USER_FOLLOWED = "user_followed"
USER_UNFOLLOWED = "user_unfollowed"


def make_event(event: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {"type": event, "data": payload, "timestamp": utcnow().isoformat()}


class Broadcaster(ABC):
    """Sink for change events. Implementations never raise."""

    @abstractmethod
    async def broadcast(self, event: str, payload: dict[str, Any]) -> None:
        raise NotImplementedError


class EventHub(Broadcaster):
    """In-process fan-out to subscriber queues."""

    def __init__(self, queue_size: int = 100):
        self._queue_size = queue_size
        self._subscribers: set[asyncio.Queue] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue]:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        logger.debug("push_subscriber_added", subscribers=len(self._subscribers))
        try:
            yield queue
        finally:
            self._subscribers.discard(queue)
            logger.debug("push_subscriber_removed", subscribers=len(self._subscribers))

    def publish(self, message: dict[str, Any]) -> None:
        """Deliver an already-built event to every local subscriber."""
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                # Slow consumer: it will re-fetch on its next request.
                logger.warning("push_event_dropped", event=message.get("type"))

    async def broadcast(self, event: str, payload: dict[str, Any]) -> None:
        self.publish(make_event(event, payload))


class RedisBroadcaster(Broadcaster):
    """Publishes events to a Redis pub/sub channel."""

    def __init__(self, redis: aioredis.Redis, channel: str):
        self._redis = redis
        self.channel = channel

    async def broadcast(self, event: str, payload: dict[str, Any]) -> None:
        message = json.dumps(make_event(event, payload), default=str)
        try:
            await self._redis.publish(self.channel, message)
        except Exception as e:
            logger.warning("redis_publish_failed", channel=self.channel, error=str(e))


async def relay_to_hub(redis: aioredis.Redis, channel: str, hub: EventHub) -> None:
    """Forward every message on ``channel`` into ``hub`` until cancelled."""
    pubsub = redis.pubsub()
    await pubsub.subscribe(channel)
    logger.info("push_relay_started", channel=channel)
    try:
        while True:
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if message and message["type"] == "message":
                try:
                    hub.publish(json.loads(message["data"]))
                except (json.JSONDecodeError, TypeError):
                    logger.warning("push_relay_bad_message", channel=channel)
            await asyncio.sleep(0)
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()
        logger.info("push_relay_stopped", channel=channel)
