# babelchat/services/chat_session.py

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set

from babelchat.core.errors import ChannelSubscriptionError, NotRoomMember
from babelchat.models.events import MemberJoined, MemberLeft, MessageInserted, TypingBroadcast
from babelchat.models.models import Message, Profile, Room
from babelchat.services.message_channel import ChannelHandlers, ChannelStatus, MessageChannel
from babelchat.services.profiles import ProfileStore
from babelchat.services.room_manager import RoomManager
from babelchat.services.translator import MessageTranslator, TranslationResult
from babelchat.services.typing_indicators import DEFAULT_TYPING_TIMEOUT, TypingIndicators

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    CLOSED = "closed"


class TranslationState(str, Enum):
    UNTRANSLATED = "untranslated"
    TRANSLATING = "translating"
    TRANSLATED = "translated"
    NOT_NEEDED = "not_needed"


@dataclass
class MessageView:
    """A message as one viewer sees it."""

    message: Message
    state: TranslationState = TranslationState.UNTRANSLATED
    translation: Optional[str] = None
    # Set when the gateway failed and ``translation`` is the original text
    translation_failed: bool = False
    show_original: bool = False
    sender_name: Optional[str] = None

    @property
    def display_text(self) -> str:
        if self.show_original or self.state != TranslationState.TRANSLATED or self.translation is None:
            return self.message.content
        return self.translation

    def to_dict(self) -> dict:
        return {
            **self.message.model_dump(mode="json"),
            "sender_name": self.sender_name,
            "translation_state": self.state.value,
            "translation": self.translation,
            "translation_failed": self.translation_failed,
            "show_original": self.show_original,
            "display_text": self.display_text,
        }


UpdateCallback = Callable[[dict], Awaitable[None]]


class ChatSession:
    """
    One viewer's open view of one room.

    Lifecycle:
        LOADING  -> subscribe, load room, members and history
        READY    -> live events applied as they arrive
        CLOSED   -> unsubscribed; late translation results are dropped

    Per message:
        UNTRANSLATED -> NOT_NEEDED                 (same language)
        UNTRANSLATED -> TRANSLATED                 (cache hit on load)
        UNTRANSLATED -> TRANSLATING -> TRANSLATED  (gateway call)

    A gateway failure still ends in TRANSLATED, with the original text as
    the translation. Translations complete in any order and are applied by
    message id, never by position.

    Every visible change is reported to ``on_update`` as a JSON-ready dict.
    """

    def __init__(
        self,
        room_id: str,
        viewer: Profile,
        *,
        room_manager: RoomManager,
        channel: MessageChannel,
        translator: MessageTranslator,
        profiles: Optional[ProfileStore] = None,
        on_update: Optional[UpdateCallback] = None,
        subscriber_key: Optional[str] = None,
        typing_timeout: float = DEFAULT_TYPING_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        history_limit: Optional[int] = None,
    ) -> None:
        self.room_id = room_id
        self.viewer = viewer
        self.room_manager = room_manager
        self.channel = channel
        self.translator = translator
        self.profiles = profiles
        self.on_update = on_update
        self.subscriber_key = subscriber_key or f"session:{uuid.uuid4()}"
        self.history_limit = history_limit

        self.state = SessionState.LOADING
        self.channel_status: Optional[ChannelStatus] = None
        self.room: Optional[Room] = None
        self.member_count = 0
        self.messages: List[MessageView] = []
        self.typing = TypingIndicators(timeout=typing_timeout, clock=clock)

        self._views: Dict[str, MessageView] = {}
        self._sender_names: Dict[str, str] = {}
        self._pending_live: List[Message] = []
        self._tasks: Set[asyncio.Task] = set()
        self._sweeper: Optional[asyncio.Task] = None

    @property
    def language(self) -> str:
        return self.viewer.preferred_language

    # ------------------------------------------------------------ lifecycle

    async def open(self) -> None:
        """
        Load the room and go live.

        Raises:
            RoomNotFound: if the room does not exist
            NotRoomMember: if the viewer has not joined the room
        """
        self.state = SessionState.LOADING
        room = await self.room_manager.require_room(self.room_id)
        if not await self.room_manager.is_member(room.id, self.viewer.id):
            raise NotRoomMember()
        self.room = room

        # Subscribe before reading history; live messages that arrive while
        # loading are held back and merged after it
        await self.channel.subscribe(
            self.room_id,
            self.subscriber_key,
            ChannelHandlers(
                on_message=self._on_message,
                on_member_joined=self._on_member_joined,
                on_member_left=self._on_member_left,
                on_typing=self._on_typing,
                on_status=self._on_status,
            ),
            user_id=self.viewer.id,
        )

        try:
            to_translate = await self._load()
        except Exception:
            # The caller never gets a session to close; drop the subscription here
            self.state = SessionState.CLOSED
            await self.channel.unsubscribe(self.room_id, self.subscriber_key)
            raise

        self.state = SessionState.READY
        self._sweeper = asyncio.create_task(self._sweep_typing())
        logger.info("Session %s ready on room %s (%d messages, lang=%s)",
                    self.subscriber_key, self.room_id, len(self.messages), self.language)
        await self._emit({"type": "room_state", **self.snapshot()})
        self._schedule_all(to_translate)

    async def _load(self) -> List[MessageView]:
        """Read members and history; returns the views that still need a translation."""
        member_ids = await self.room_manager.member_ids(self.room_id)
        self.member_count = len(member_ids)
        if self.profiles is not None:
            for uid, profile in (await self.profiles.get_many(member_ids)).items():
                self._sender_names[uid] = profile.display_name

        history = await self.channel.history(self.room_id, self.history_limit)
        views = [v for v in map(self._add_view, history) if v]
        to_translate: List[MessageView] = []
        while True:
            views += [v for v in map(self._add_view, self._pending_live) if v]
            self._pending_live.clear()
            to_translate += await self._prepare_translations(views)
            views = []
            if not self._pending_live:
                break
        return to_translate

    async def close(self) -> None:
        """
        Leave the view. In-flight translations keep running and still write
        the cache; their results are not applied here.
        """
        if self.state == SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        if self._sweeper is not None:
            self._sweeper.cancel()
        self.typing.clear()
        await self.channel.unsubscribe(self.room_id, self.subscriber_key)

    async def settle(self) -> None:
        """Wait until every scheduled translation has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def snapshot(self) -> dict:
        return {
            "room": self.room.model_dump(mode="json") if self.room else None,
            "state": self.state.value,
            "member_count": self.member_count,
            "language": self.language,
            "messages": [view.to_dict() for view in self.messages],
            "typing": self.typing.names(),
        }

    # ------------------------------------------------------------- messages

    def _add_view(self, message: Message) -> Optional[MessageView]:
        if message.id in self._views:
            return None
        view = MessageView(message=message, sender_name=self._sender_names.get(message.sender_id))
        self._views[message.id] = view
        self.messages.append(view)
        return view

    def get_view(self, message_id: str) -> MessageView:
        return self._views[message_id]

    async def _prepare_translations(self, views: List[MessageView]) -> List[MessageView]:
        """
        Resolve same-language messages and cache hits in place.

        Returns:
            The views left TRANSLATING, to be handed to ``_schedule_all``
            once their state has been shown
        """
        needing = []
        for view in views:
            if view.message.source_language == self.language:
                view.state = TranslationState.NOT_NEEDED
            else:
                needing.append(view)
        if not needing:
            return []

        # Cache hits resolve here, before anything is shown as translating
        cached = await self.translator.cache.get_many([v.message.id for v in needing], self.language)
        pending = []
        for view in needing:
            if view.message.id in cached:
                view.translation = cached[view.message.id]
                view.state = TranslationState.TRANSLATED
            else:
                view.state = TranslationState.TRANSLATING
                pending.append(view)
        return pending

    def _schedule_all(self, views: List[MessageView]) -> None:
        for view in views:
            self._schedule(view.message, self.language)

    def _schedule(self, message: Message, language: str) -> None:
        task = asyncio.create_task(self._translate(message, language))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _translate(self, message: Message, language: str) -> None:
        try:
            result = await self.translator.translate_uncached(message, language)
        except Exception:
            logger.exception("Unexpected error translating message %s", message.id)
            result = TranslationResult(message.id, message.content, "failed")
        await self._apply_translation(result, language)

    async def _apply_translation(self, result: TranslationResult, language: str) -> None:
        view = self._views.get(result.message_id)
        # Closed session or the viewer switched language meanwhile
        if view is None or self.state == SessionState.CLOSED or language != self.language:
            return

        view.translation = result.text
        view.translation_failed = result.failed
        view.state = TranslationState.TRANSLATED
        await self._emit({
            "type": "translation",
            "message_id": view.message.id,
            "translation": view.translation,
            "translation_failed": view.translation_failed,
            "display_text": view.display_text,
        })

    async def _on_message(self, event: MessageInserted) -> None:
        message = event.message
        if self.profiles is not None and message.sender_id not in self._sender_names:
            sender = await self.profiles.get(message.sender_id)
            if sender is not None:
                self._sender_names[sender.id] = sender.display_name

        if self.state == SessionState.LOADING:
            self._pending_live.append(message)
            return

        view = self._add_view(message)
        if view is None:
            return
        to_translate = await self._prepare_translations([view])
        await self._emit({"type": "message", "message": view.to_dict()})
        self._schedule_all(to_translate)

    def toggle_show_original(self, message_id: str) -> MessageView:
        """
        Flip between translation and original. Never re-translates.

        Raises:
            KeyError: if the message is not in this view
        """
        view = self._views[message_id]
        view.show_original = not view.show_original
        return view

    async def change_language(self, language: str) -> None:
        """Switch the viewer's language and re-evaluate every message."""
        if language == self.language:
            return
        self.viewer = self.viewer.model_copy(update={"preferred_language": language})
        for view in self.messages:
            view.translation = None
            view.translation_failed = False
            view.state = TranslationState.UNTRANSLATED
        to_translate = await self._prepare_translations(list(self.messages))
        await self._emit({"type": "room_state", **self.snapshot()})
        self._schedule_all(to_translate)

    # -------------------------------------------------------------- sending

    async def send_message(self, content: str) -> Message:
        """
        Post as the viewer, in the viewer's preferred language.

        Raises:
            NotRoomMember: if the viewer left the room meanwhile
            InvalidMessage: on empty content
        """
        if not await self.room_manager.is_member(self.room_id, self.viewer.id):
            raise NotRoomMember()
        return await self.channel.post_message(
            self.room_id, self.viewer.id, content, self.viewer.preferred_language
        )

    async def send_typing(self) -> None:
        await self.channel.broadcast_typing(self.room_id, self.viewer.id, self.viewer.display_name)

    # ----------------------------------------------------- presence, status

    async def _on_member_joined(self, event: MemberJoined) -> None:
        self.member_count += 1
        await self._emit({"type": "member_count", "member_count": self.member_count})

    async def _on_member_left(self, event: MemberLeft) -> None:
        self.member_count = max(0, self.member_count - 1)
        await self._emit({"type": "member_count", "member_count": self.member_count})

    async def _on_typing(self, event: TypingBroadcast) -> None:
        if event.user_id == self.viewer.id:
            return
        self.typing.touch(event.user_id, event.display_name)
        await self._emit({"type": "typing", "users": self.typing.names()})

    def typing_names(self) -> List[str]:
        return self.typing.names()

    async def _sweep_typing(self) -> None:
        interval = max(0.05, self.typing.timeout / 6)
        while True:
            await asyncio.sleep(interval)
            if self.typing.sweep():
                await self._emit({"type": "typing", "users": self.typing.names()})

    async def _on_status(
        self, status: ChannelStatus, error: Optional[ChannelSubscriptionError]
    ) -> None:
        self.channel_status = status
        if status == ChannelStatus.CHANNEL_ERROR:
            logger.warning("Realtime subscription error on room %s: %s", self.room_id, error)
        await self._emit({
            "type": "status",
            "room_id": self.room_id,
            "status": status.value,
            "error": error.message if error else None,
        })

    async def _emit(self, payload: dict) -> None:
        if self.on_update is None:
            return
        try:
            await self.on_update({"room_id": self.room_id, **payload})
        except Exception as e:
            logger.warning("Dropping %s update for %s: %s", payload.get("type"), self.subscriber_key, e)
