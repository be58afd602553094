# babelchat/services/connection_manager.py

from __future__ import annotations

import logging
import uuid
from typing import Dict, Optional

from fastapi import WebSocket

from babelchat.models.models import Profile
from babelchat.services.chat_session import ChatSession
from babelchat.services.message_channel import MessageChannel
from babelchat.services.profiles import ProfileStore
from babelchat.services.room_manager import RoomManager
from babelchat.services.translator import MessageTranslator
from babelchat.services.typing_indicators import DEFAULT_TYPING_TIMEOUT

logger = logging.getLogger(__name__)

# ============================================================================
# WEBSOCKET CONNECTION MANAGER
# ============================================================================

class ConnectionManager:
    """
    Tracks WebSocket connections and the chat sessions each one has open.

    Data Structures:
        connection_users: Maps WebSocket -> Profile of the authenticated user
        connection_keys:  Maps WebSocket -> connection id, used as the
                          subscriber key of every session it opens
        sessions:         Maps WebSocket -> {room_id -> ChatSession}

    A socket opens at most one session per room. Opening a room again
    replaces the previous session (and its subscription). All sessions are
    closed when the socket goes away.
    """

    def __init__(
        self,
        room_manager: RoomManager,
        channel: MessageChannel,
        translator: MessageTranslator,
        profiles: ProfileStore,
        typing_timeout: float = DEFAULT_TYPING_TIMEOUT,
    ) -> None:
        self.room_manager = room_manager
        self.channel = channel
        self.translator = translator
        self.profiles = profiles
        self.typing_timeout = typing_timeout

        self.connection_users: Dict[WebSocket, Profile] = {}
        self.connection_keys: Dict[WebSocket, str] = {}
        self.sessions: Dict[WebSocket, Dict[str, ChatSession]] = {}

    async def connect(self, websocket: WebSocket, profile: Profile) -> None:
        """
        Accept a new WebSocket connection.

        Note:
            The user does not see any room yet. Rooms are opened with
            explicit "join" actions.
        """
        await websocket.accept()
        self.connection_users[websocket] = profile
        self.connection_keys[websocket] = f"ws:{uuid.uuid4()}"
        self.sessions[websocket] = {}
        logger.info("✓ User %s connected. Total: %d", profile.id, len(self.connection_users))

    async def disconnect(self, websocket: WebSocket) -> None:
        """Close every session of the socket and forget it."""
        if websocket not in self.connection_users:
            return

        for session in list(self.sessions.get(websocket, {}).values()):
            await session.close()

        profile = self.connection_users.pop(websocket)
        self.connection_keys.pop(websocket, None)
        self.sessions.pop(websocket, None)
        logger.info("✗ User %s disconnected. Total: %d", profile.id, len(self.connection_users))

    def get_session(self, websocket: WebSocket, room_id: str) -> Optional[ChatSession]:
        return self.sessions.get(websocket, {}).get(room_id)

    async def open_room(self, websocket: WebSocket, room_id: str) -> ChatSession:
        """
        Open a live view of a room for this socket.

        The session pushes its updates ("room_state", "message",
        "translation", "typing", "member_count", "status") straight to the
        socket.

        Raises:
            RoomNotFound: if the room does not exist
            NotRoomMember: if the user has not joined the room
        """
        profile = self.connection_users[websocket]

        # The profile may have changed (e.g. language) since the socket connected
        profile = await self.profiles.get(profile.id) or profile
        self.connection_users[websocket] = profile

        await self.close_room(websocket, room_id)

        async def push(payload: dict) -> None:
            await websocket.send_json(payload)

        session = ChatSession(
            room_id,
            profile,
            room_manager=self.room_manager,
            channel=self.channel,
            translator=self.translator,
            profiles=self.profiles,
            on_update=push,
            subscriber_key=self.connection_keys[websocket],
            typing_timeout=self.typing_timeout,
        )
        await session.open()
        self.sessions[websocket][room_id] = session
        logger.info("→ %s opened room %s", profile.id, room_id)
        return session

    async def close_room(self, websocket: WebSocket, room_id: str) -> bool:
        session = self.sessions.get(websocket, {}).pop(room_id, None)
        if session is None:
            return False
        await session.close()
        return True

    async def change_language(self, user_id: str, language: str) -> None:
        """Re-evaluate every open session of a user after a language change."""
        for websocket, profile in list(self.connection_users.items()):
            if profile.id != user_id:
                continue
            self.connection_users[websocket] = profile.model_copy(update={"preferred_language": language})
            for session in list(self.sessions.get(websocket, {}).values()):
                await session.change_language(language)

    async def broadcast_all(self, message: dict) -> None:
        """
        Send a message to every connected socket.

        Error Handling:
            A socket that fails to receive is disconnected.
        """
        disconnected = []
        for websocket in list(self.connection_users):
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.error("Send error: %s", e)
                disconnected.append(websocket)

        for websocket in disconnected:
            await self.disconnect(websocket)
