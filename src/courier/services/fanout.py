"""Cross-instance fan-out over Redis pub/sub.

Every instance publishes the messages it persisted to one shared channel and
delivers what the other instances publish to its own local connections. The
database stays the source of truth: a message lost on the bridge is still
returned by the History API.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from courier.core.settings import settings
from courier.schemas.direct_message import MessageResponse

logger = logging.getLogger(__name__)

DeliveryHandler = Callable[[dict[str, Any]], Awaitable[Any]]


class RedisFanout:
    """Publishes local deliveries and replays remote ones through ``on_delivery``."""

    def __init__(
        self,
        client: Any,
        *,
        channel: str,
        instance_id: str,
        on_delivery: DeliveryHandler,
        retry_seconds: float = 2.0,
    ) -> None:
        self.client = client
        self.channel = channel
        self.instance_id = instance_id
        self.on_delivery = on_delivery
        self.retry_seconds = retry_seconds
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    async def publish(self, message: MessageResponse) -> bool:
        """Announce a persisted message to the other instances.

        Returns False when Redis is unreachable; the message stays durable.
        """
        envelope = json.dumps({"origin": self.instance_id, "message": message.to_wire()})
        try:
            await self.client.publish(self.channel, envelope)
        except RedisError as exc:
            logger.warning("Failed to publish message %s to %s: %s", message.id, self.channel, exc)
            return False
        return True

    async def handle_raw(self, data: Any) -> bool:
        """Deliver one raw pub/sub payload; return True if it was handed on."""
        if isinstance(data, bytes):
            data = data.decode("utf-8", errors="replace")
        try:
            envelope = json.loads(data)
        except (TypeError, ValueError):
            logger.warning("Ignoring undecodable payload on %s", self.channel)
            return False

        if not isinstance(envelope, dict) or not isinstance(envelope.get("message"), dict):
            logger.warning("Ignoring malformed envelope on %s", self.channel)
            return False
        if envelope.get("origin") == self.instance_id:
            return False

        await self.on_delivery(envelope["message"])
        return True

    async def start(self) -> None:
        """Start the background subscriber loop."""
        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the subscriber loop and release the Redis connection."""
        self._stopping.set()
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        await self.client.aclose()

    async def _run(self) -> None:
        while not self._stopping.is_set():
            pubsub = self.client.pubsub()
            try:
                await pubsub.subscribe(self.channel)
                logger.info("Subscribed to %s as %s", self.channel, self.instance_id)
                async for item in pubsub.listen():
                    if item.get("type") != "message":
                        continue
                    await self.handle_raw(item.get("data"))
            except RedisError as exc:
                logger.warning(
                    "Relay bridge lost (%s); retrying in %.1fs", exc, self.retry_seconds
                )
                await asyncio.sleep(self.retry_seconds)
            finally:
                with contextlib.suppress(RedisError):
                    await pubsub.aclose()


def fanout_enabled() -> bool:
    """Return True when a Redis URL is configured for cross-instance fan-out."""
    return bool(settings.relay_redis_url)


def create_fanout(on_delivery: DeliveryHandler) -> RedisFanout:
    """Build a fan-out bridge from settings."""
    if not settings.relay_redis_url:
        raise RuntimeError("RELAY_REDIS_URL is not configured")
    client = redis.from_url(settings.relay_redis_url)
    return RedisFanout(
        client,
        channel=settings.relay_deliveries_channel,
        instance_id=settings.relay_instance_id,
        on_delivery=on_delivery,
        retry_seconds=settings.relay_retry_seconds,
    )
