from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict

import redis.asyncio as redis

from campus_drive.core.config import settings

logger = logging.getLogger("cd.events")

QUEUE_SIZE = 200


class EventBus:
    """
    Fire-and-forget fan-out of domain events to notification workers and live dashboards.

    With a Redis URL every instance publishes to one pub/sub channel and relays what it hears
    to its local subscribers; without one, events stay in-process.
    """

    def __init__(self, redis_url: str = "", channel: str = "cd:events") -> None:
        self._subscribers: set[asyncio.Queue[str]] = set()
        self._lock = asyncio.Lock()
        self._redis_url = redis_url.strip()
        self._channel = channel
        self._redis: redis.Redis | None = None
        self._relay: asyncio.Task | None = None

    @property
    def distributed(self) -> bool:
        return bool(self._redis_url)

    async def _fan_out(self, data: str) -> None:
        async with self._lock:
            for queue in self._subscribers:
                if queue.full():
                    # Slow consumer: drop its oldest event.
                    queue.get_nowait()
                queue.put_nowait(data)

    def _client(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(self._redis_url, decode_responses=True)
        return self._redis

    def _start_relay(self) -> None:
        if self._relay is None or self._relay.done():
            self._relay = asyncio.create_task(self._relay_channel())

    async def _relay_channel(self) -> None:
        pubsub = self._client().pubsub()
        await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") == "message" and isinstance(message.get("data"), str):
                    await self._fan_out(message["data"])
        except redis.RedisError:
            logger.exception("event_relay_stopped", extra={"channel": self._channel})
        finally:
            await pubsub.aclose()

    async def subscribe(self) -> asyncio.Queue[str]:
        queue: asyncio.Queue[str] = asyncio.Queue(maxsize=QUEUE_SIZE)
        async with self._lock:
            self._subscribers.add(queue)
        if self.distributed:
            self._start_relay()
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[str]) -> None:
        async with self._lock:
            self._subscribers.discard(queue)

    async def publish(self, payload: Dict[str, Any]) -> None:
        data = json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)
        if self.distributed:
            try:
                await self._client().publish(self._channel, data)
                return
            except redis.RedisError:
                logger.warning("event_publish_redis_failed", extra={"event_type": payload.get("event_type")})
        await self._fan_out(data)

    async def aclose(self) -> None:
        if self._relay is not None:
            self._relay.cancel()
            self._relay = None
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


event_bus = EventBus(settings.redis_url, settings.event_channel)


async def publish_event(event_type: str, **fields: Any) -> None:
    """Publish after commit. Delivery problems are logged, never raised to the caller."""
    try:
        await event_bus.publish({"event_type": event_type, **fields})
    except (redis.RedisError, OSError):
        logger.exception("event_publish_failed", extra={"event_type": event_type})
