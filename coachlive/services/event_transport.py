"""Redis pub/sub transport that lets several API workers share session events.

Each session maps to one channel (``coachlive:session:<session_id>``). The
relay task pattern-subscribes to all of them and hands every received event
to the local broadcaster, which then fans it out to its WebSocket
subscribers.
"""

from __future__ import annotations

import asyncio
import contextlib

import orjson
from loguru import logger
from pydantic import ValidationError
from redis.asyncio import Redis

from coachlive.domain.session.broadcaster import EventBroadcaster, SessionEvent

CHANNEL_PREFIX = "coachlive:session:"


class RedisEventTransport:
    def __init__(self, redis_client: Redis, channel_prefix: str = CHANNEL_PREFIX):
        self._redis = redis_client
        self._prefix = channel_prefix
        self._relay_task: asyncio.Task | None = None

    def channel_for(self, session_id: str) -> str:
        return f"{self._prefix}{session_id}"

    async def publish(self, event: SessionEvent) -> None:
        data = orjson.dumps(event.model_dump(mode="json"))
        receivers = await self._redis.publish(self.channel_for(event.session_id), data)
        logger.debug(
            f"Published {event.event} seq={event.seq} for session {event.session_id} "
            f"to {receivers} relay(s)"
        )

    @staticmethod
    def decode(data: bytes | str) -> SessionEvent | None:
        try:
            return SessionEvent.model_validate(orjson.loads(data))
        except (orjson.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Discarding malformed session event from Redis: {e}")
            return None

    async def relay(self, broadcaster: EventBroadcaster) -> None:
        """Forward every event published on the session channels to ``broadcaster``."""
        pubsub = self._redis.pubsub()
        await pubsub.psubscribe(f"{self._prefix}*")
        logger.info(f"Redis event relay listening on {self._prefix}*")
        try:
            async for message in pubsub.listen():
                if message.get("type") != "pmessage":
                    continue
                event = self.decode(message["data"])
                if event is not None:
                    broadcaster.deliver(event)
        finally:
            await pubsub.punsubscribe()
            await pubsub.aclose()
            logger.info("Redis event relay stopped")

    def start(self, broadcaster: EventBroadcaster) -> asyncio.Task:
        if self._relay_task is None or self._relay_task.done():
            self._relay_task = asyncio.create_task(self.relay(broadcaster), name="redis-event-relay")
        return self._relay_task

    async def stop(self) -> None:
        if self._relay_task is None:
            return
        self._relay_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._relay_task
        self._relay_task = None
