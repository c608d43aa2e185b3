"""Redis Pub/Sub: cross-node relay of committed chat events."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine

import redis.asyncio as aioredis

from chat_sync.infrastructure.bus.serializer import deserialize_event, serialize_event

logger = logging.getLogger(__name__)


class RedisPubSubPublisher:
    """Implements application.ports.bus.EventPublisher.

    The envelope ``origin`` is the node that committed the event, carried in
    the outbox payload, not the process doing the relay.
    """

    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        raw = serialize_event(
            payload.get("event_type", "unknown"),
            payload,
            origin=payload.get("origin"),
        )
        await self._redis.publish(channel, raw)


OnEventCallback = Callable[[str, dict[str, Any]], Coroutine[Any, Any, None]]


class RedisPubSubSubscriber:
    """Background task that feeds relayed events into the local engine.

    Events that carry this node's own ``origin`` were already delivered
    in-process and are skipped.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        callback: OnEventCallback,
        *,
        node_id: str | None = None,
        reconnect_delay: float = 1.0,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._callback = callback
        self._node_id = node_id
        self._reconnect_delay = reconnect_delay
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name="redis-pubsub-subscriber")
        logger.info("Redis Pub/Sub subscriber started on channel=%s", self._channel)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Redis Pub/Sub subscriber stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self._listen()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    "Pub/Sub connection lost, reconnecting in %.1fs",
                    self._reconnect_delay,
                )
                await asyncio.sleep(self._reconnect_delay)

    async def _listen(self) -> None:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                await self.dispatch(message["data"])
        finally:
            await pubsub.unsubscribe(self._channel)
            await pubsub.aclose()

    async def dispatch(self, raw: str | bytes) -> None:
        try:
            event_type, origin, data = deserialize_event(raw)
        except (ValueError, KeyError, TypeError):
            logger.warning("Dropping malformed pubsub message")
            return
        if self._node_id is not None and origin == self._node_id:
            return
        try:
            await self._callback(event_type, data)
        except Exception:
            logger.exception("Error processing pubsub event %s", event_type)
