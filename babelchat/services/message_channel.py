# babelchat/services/message_channel.py

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Protocol

import redis.asyncio as redis

from babelchat.core.errors import ChannelSubscriptionError, InvalidMessage
from babelchat.core.keys import MESSAGE_KEY, ROOM_MESSAGES_KEY
from babelchat.models.events import (
    ChannelEvent,
    MemberJoined,
    MemberLeft,
    MessageInserted,
    TypingBroadcast,
)
from babelchat.models.models import Message

logger = logging.getLogger(__name__)


class ChannelStatus(str, Enum):
    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    CLOSED = "CLOSED"


@dataclass
class ChannelHandlers:
    """Async callbacks for one subscription. Missing handlers ignore the event."""

    on_message: Optional[Callable[[MessageInserted], Awaitable[None]]] = None
    on_member_joined: Optional[Callable[[MemberJoined], Awaitable[None]]] = None
    on_member_left: Optional[Callable[[MemberLeft], Awaitable[None]]] = None
    on_typing: Optional[Callable[[TypingBroadcast], Awaitable[None]]] = None
    on_status: Optional[
        Callable[[ChannelStatus, Optional[ChannelSubscriptionError]], Awaitable[None]]
    ] = None


class RoomRelay(Protocol):
    """Cross-instance transport. ``MessageChannel.dispatch`` receives what it relays."""

    async def broadcast_to_room(self, room_id: str, event: ChannelEvent) -> None: ...


_CLOSE = object()


class Subscription:
    """
    One subscriber's live view of a room.

    Events are queued and handed to the handlers one at a time by a dedicated
    task, so every subscriber sees events in the order the channel
    dispatched them, however slow its handlers are.
    """

    def __init__(
        self,
        channel: "MessageChannel",
        room_id: str,
        subscriber_key: str,
        handlers: ChannelHandlers,
        user_id: Optional[str] = None,
    ) -> None:
        self.channel = channel
        self.room_id = room_id
        self.subscriber_key = subscriber_key
        self.user_id = user_id
        self.handlers = handlers
        self.status: Optional[ChannelStatus] = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self.status == ChannelStatus.SUBSCRIBED

    def start(self) -> None:
        self.status = ChannelStatus.SUBSCRIBED
        self._task = asyncio.create_task(self._run())

    def deliver(self, event: ChannelEvent) -> None:
        if not self.active:
            return
        # Typing signals never echo back to the user who sent them
        if isinstance(event, TypingBroadcast) and event.user_id == self.user_id:
            return
        self._queue.put_nowait(event)

    def fail(self, error: ChannelSubscriptionError) -> None:
        """Transport-level failure: stop delivering and report CHANNEL_ERROR."""
        if self.active:
            self._queue.put_nowait(error)

    async def close(self) -> None:
        if self.status == ChannelStatus.SUBSCRIBED:
            self.status = ChannelStatus.CLOSED
            self._queue.put_nowait(_CLOSE)
        if self._task is not None and self._task is not asyncio.current_task():
            await self._task

    async def _run(self) -> None:
        await self._notify(ChannelStatus.SUBSCRIBED)
        while True:
            item = await self._queue.get()
            if item is _CLOSE:
                await self._notify(ChannelStatus.CLOSED)
                return
            if isinstance(item, ChannelSubscriptionError):
                await self._error(item)
                return

            try:
                await self._handle(item)
            except Exception as e:
                logger.exception("Subscriber %s failed on room %s", self.subscriber_key, self.room_id)
                await self._error(ChannelSubscriptionError(f"Handler error: {e}"))
                return

    async def _handle(self, event: ChannelEvent) -> None:
        if isinstance(event, MessageInserted):
            handler = self.handlers.on_message
        elif isinstance(event, MemberJoined):
            handler = self.handlers.on_member_joined
        elif isinstance(event, MemberLeft):
            handler = self.handlers.on_member_left
        else:
            handler = self.handlers.on_typing

        if handler is not None:
            await handler(event)

    async def _error(self, error: ChannelSubscriptionError) -> None:
        self.status = ChannelStatus.CHANNEL_ERROR
        self.channel._forget(self)
        await self._notify(ChannelStatus.CHANNEL_ERROR, error)

    async def _notify(
        self, status: ChannelStatus, error: Optional[ChannelSubscriptionError] = None
    ) -> None:
        if self.handlers.on_status is None:
            return
        try:
            await self.handlers.on_status(status, error)
        except Exception:
            logger.exception("Status handler failed for subscriber %s", self.subscriber_key)


# ============================================================================
# ROOM MESSAGE CHANNEL
# ============================================================================

class MessageChannel:
    """
    Per-room append-only message log plus live fan-out.

    Storage Format:
        room:messages:{room_id}  Redis stream; the entry id
                                 ("<ms>-<seq>") is the creation timestamp
                                 with ties broken by arrival order
        message:{message_id}     Message JSON, for lookups by id

    Data Structures:
        subscriptions: room_id -> {subscriber_key -> Subscription}
        One subscriber key (a client session) holds at most one
        subscription per room; subscribing again replaces the old one.

    Transport:
        Without a relay, events are dispatched in-process. With a relay
        (Redis pub/sub), events go out on the room channel and come back
        through ``dispatch`` on every instance, this one included.
    """

    def __init__(
        self,
        client: redis.Redis,
        relay: Optional[RoomRelay] = None,
        history_limit: int = 100,
    ) -> None:
        self.client = client
        self.relay = relay
        self.history_limit = history_limit
        self.subscriptions: Dict[str, Dict[str, Subscription]] = {}
        # room_id -> lock, with the number of posts holding or waiting on it
        self._room_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    # ------------------------------------------------------------------ log

    async def post_message(
        self, room_id: str, sender_id: str, content: str, source_language: str
    ) -> Message:
        """
        Append a message to the room log and push it to subscribers.

        Raises:
            InvalidMessage: if content is empty after stripping
        """
        content = (content or "").strip()
        if not content:
            raise InvalidMessage()

        # Append and publish under one lock so publish order equals log order
        async with self._room_lock(room_id):
            message_id = str(uuid.uuid4())
            fields = {
                "id": message_id,
                "sender_id": sender_id,
                "content": content,
                "source_language": source_language,
            }
            seq = await self.client.xadd(ROOM_MESSAGES_KEY.format(room_id=room_id), fields)
            message = self._message_from_entry(room_id, seq, fields)
            await self.client.set(MESSAGE_KEY.format(message_id=message_id), message.model_dump_json())

            logger.info("💬 Message %s posted to room %s by %s", message_id, room_id, sender_id)
            await self.publish(room_id, MessageInserted(room_id=room_id, message=message))

        return message

    @asynccontextmanager
    async def _room_lock(self, room_id: str) -> AsyncIterator[None]:
        """Per-room posting lock, dropped once no post holds or waits on it."""
        lock = self._room_locks.setdefault(room_id, asyncio.Lock())
        self._lock_users[room_id] = self._lock_users.get(room_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[room_id] -= 1
            if not self._lock_users[room_id]:
                del self._lock_users[room_id]
                del self._room_locks[room_id]

    async def get_message(self, message_id: str) -> Optional[Message]:
        raw = await self.client.get(MESSAGE_KEY.format(message_id=message_id))
        return Message.model_validate_json(raw) if raw else None

    async def history(self, room_id: str, limit: Optional[int] = None) -> List[Message]:
        """Most recent ``limit`` messages of a room, oldest first."""
        entries = await self.client.xrevrange(
            ROOM_MESSAGES_KEY.format(room_id=room_id), count=limit or self.history_limit
        )
        return [self._message_from_entry(room_id, seq, fields) for seq, fields in reversed(entries)]

    @staticmethod
    def _message_from_entry(room_id: str, seq: str, fields: Dict[str, str]) -> Message:
        millis = int(seq.split("-", 1)[0])
        return Message(
            id=fields["id"],
            room_id=room_id,
            sender_id=fields["sender_id"],
            content=fields["content"],
            source_language=fields["source_language"],
            created_at=datetime.fromtimestamp(millis / 1000, tz=timezone.utc),
            seq=seq,
        )

    # ------------------------------------------------------------ fan-out

    async def publish(self, room_id: str, event: ChannelEvent) -> None:
        if self.relay is not None:
            await self.relay.broadcast_to_room(room_id, event)
        else:
            await self.dispatch(room_id, event)

    async def broadcast_typing(self, room_id: str, user_id: str, display_name: str) -> None:
        """Fire-and-forget typing signal; not persisted, not ordered with messages."""
        await self.publish(
            room_id, TypingBroadcast(room_id=room_id, user_id=user_id, display_name=display_name)
        )

    async def dispatch(self, room_id: str, event: ChannelEvent) -> None:
        """
        Hand an event to every local subscriber of the room.

        Called directly for in-process fan-out, or by the relay listener for
        events coming back from the transport.
        """
        subscribers = self.subscriptions.get(room_id)
        if not subscribers:
            logger.debug("[routing] Skipped %s: room=%s has 0 subscribers", event.type, room_id)
            return

        for subscription in list(subscribers.values()):
            subscription.deliver(event)

    async def subscribe(
        self,
        room_id: str,
        subscriber_key: str,
        handlers: ChannelHandlers,
        user_id: Optional[str] = None,
    ) -> Subscription:
        """
        Open a live subscription on a room.

        An existing subscription for the same (room, subscriber_key) is torn
        down first so no event is delivered twice.
        """
        previous = self.subscriptions.get(room_id, {}).pop(subscriber_key, None)
        if previous is not None:
            logger.info("↺ Replacing subscription %s on room %s", subscriber_key, room_id)
            await previous.close()

        subscription = Subscription(self, room_id, subscriber_key, handlers, user_id=user_id)
        self.subscriptions.setdefault(room_id, {})[subscriber_key] = subscription
        subscription.start()
        logger.info("→ %s subscribed to room %s (%d subscribers)",
                    subscriber_key, room_id, len(self.subscriptions[room_id]))
        return subscription

    async def unsubscribe(self, room_id: str, subscriber_key: str) -> None:
        subscription = self.subscriptions.get(room_id, {}).pop(subscriber_key, None)
        if subscription is None:
            return
        self._drop_empty(room_id)
        await subscription.close()
        logger.info("← %s unsubscribed from room %s", subscriber_key, room_id)

    def fail_all(self, error: ChannelSubscriptionError) -> None:
        """Report a transport failure to every subscriber. They must resubscribe."""
        for subscribers in list(self.subscriptions.values()):
            for subscription in list(subscribers.values()):
                subscription.fail(error)

    def subscriber_count(self, room_id: str) -> int:
        return len(self.subscriptions.get(room_id, {}))

    def _forget(self, subscription: Subscription) -> None:
        subscribers = self.subscriptions.get(subscription.room_id, {})
        if subscribers.get(subscription.subscriber_key) is subscription:
            del subscribers[subscription.subscriber_key]
        self._drop_empty(subscription.room_id)

    def _drop_empty(self, room_id: str) -> None:
        if room_id in self.subscriptions and not self.subscriptions[room_id]:
            del self.subscriptions[room_id]

    async def close(self) -> None:
        for room_id in list(self.subscriptions):
            for subscriber_key in list(self.subscriptions.get(room_id, {})):
                await self.unsubscribe(room_id, subscriber_key)
