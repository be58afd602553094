# babelchat/services/redis_pub_sub.py
import asyncio
import json
import logging
from typing import TYPE_CHECKING

import redis.asyncio as redis
from pydantic import ValidationError

from babelchat.core.errors import ChannelSubscriptionError
from babelchat.core.keys import ROOM_CHANNEL, ROOM_CHANNEL_PATTERN
from babelchat.models.events import ChannelEvent, parse_event

if TYPE_CHECKING:
    from babelchat.services.message_channel import MessageChannel

logger = logging.getLogger(__name__)

# Reconnect backoff of the listener, in seconds
DEFAULT_RETRY_DELAY = 0.5
MAX_RETRY_DELAY = 30.0


class AsyncRedisPubSubService:
    """
    Cross-instance relay for room events over Redis Pub/Sub.

    Every instance publishes room events to ``room:{room_id}`` and listens on
    the ``room:*`` pattern, handing what it receives to its local
    MessageChannel. An instance therefore sees its own events too, in the
    order Redis delivered them.

    Usage:
        relay = AsyncRedisPubSubService(redis_client, channel)
        channel.relay = relay
        asyncio.create_task(relay.run())
    """

    def __init__(self, client: redis.Redis, channel: "MessageChannel"):
        self.client = client
        self.channel = channel
        self.pubsub = None
        # Set while the listener holds a live subscription
        self.subscribed = asyncio.Event()
        self.failures = 0

    async def connect(self):
        """Check the connection before the listener starts."""
        await self.client.ping()
        logger.info("✓ Connected to Redis for room events")

    async def publish(self, channel: str, message: dict):
        """Publish message to channel."""
        await self.client.publish(channel, json.dumps(message))
        logger.debug("📤 Published to Redis channel '%s'", channel)

    async def broadcast_to_room(self, room_id: str, event: ChannelEvent):
        """
        Publish a room event on the room's channel.

        Args:
            room_id: Target room UUID
            event: Any channel event; serialized with its ``type`` tag
        """
        await self.publish(ROOM_CHANNEL.format(room_id=room_id), event.model_dump(mode="json"))
        logger.debug("📨 Broadcasted %s to room %s via Redis", event.type, room_id)

    async def handle(self, raw: str):
        """
        Route one payload from the transport to local subscribers.

        Payloads that are not a known event are logged and skipped.
        """
        try:
            event = parse_event(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.warning("Dropping malformed room event: %s", e)
            return

        logger.debug("➡ Redis: routing %s to room=%s", event.type, event.room_id)
        await self.channel.dispatch(event.room_id, event)

    async def listen(self, pattern: str = ROOM_CHANNEL_PATTERN):
        """
        Listen on a channel or pattern and dispatch until the connection drops.

        If the connection breaks, every local subscriber is moved to
        CHANNEL_ERROR and the error is re-raised. ``run`` restarts the
        listener; clients resubscribe on their own.
        """
        self.pubsub = self.client.pubsub()

        try:
            if "*" in pattern:
                await self.pubsub.psubscribe(pattern)
                logger.info("✓ Subscribed to Redis pattern '%s'", pattern)
            else:
                await self.pubsub.subscribe(pattern)
                logger.info("✓ Subscribed to Redis channel '%s'", pattern)
            self.failures = 0
            self.subscribed.set()

            async for message in self.pubsub.listen():
                if message["type"] in ("message", "pmessage"):
                    await self.handle(message["data"])
        except redis.RedisError as e:
            logger.error("Redis listener failed: %s", e)
            self.subscribed.clear()
            self.channel.fail_all(ChannelSubscriptionError(f"Realtime transport lost: {e}"))
            raise

    async def run(
        self,
        pattern: str = ROOM_CHANNEL_PATTERN,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        max_retry_delay: float = MAX_RETRY_DELAY,
    ):
        """
        Keep the listener alive until cancelled, reconnecting with
        exponential backoff after every drop.

        Usage:
            listener_task = asyncio.create_task(relay.run())
        """
        while True:
            try:
                await self.listen(pattern)
                return
            except redis.RedisError:
                await self._discard_pubsub()

            self.failures += 1
            delay = min(retry_delay * 2 ** (self.failures - 1), max_retry_delay)
            logger.info("↻ Reconnecting to Redis in %.2fs (attempt %d)", delay, self.failures)
            await asyncio.sleep(delay)

    async def _discard_pubsub(self):
        pubsub, self.pubsub = self.pubsub, None
        if pubsub is None:
            return
        try:
            await pubsub.aclose()
        except redis.RedisError as e:
            logger.debug("Ignoring error while dropping broken pub/sub: %s", e)

    async def close(self):
        """Close the subscription. The client itself is owned by the app state."""
        pubsub = self.pubsub
        if pubsub is not None:
            await pubsub.punsubscribe()
            await pubsub.unsubscribe()
            await pubsub.aclose()
            self.pubsub = None
        self.subscribed.clear()
        logger.info("Redis pub/sub closed")
