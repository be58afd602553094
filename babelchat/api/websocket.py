# babelchat/api/websocket.py

from __future__ import annotations

import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from babelchat.core import state
from babelchat.core.errors import AuthenticationRequired, BabelChatError
from babelchat.core.security import decode_token, profile_from_claims

logger = logging.getLogger(__name__)

router = APIRouter()

# Close code sent when the token is missing or invalid
WS_CLOSE_UNAUTHORIZED = 4401


async def send_error(websocket: WebSocket, message: str) -> None:
    await websocket.send_json({"type": "error", "message": message})


async def handle_action(websocket: WebSocket, message: dict) -> None:
    """
    Run one client action.

    Raises:
        BabelChatError: domain errors, reported to the client by the caller
    """
    manager = state.connection_manager
    action = message.get("action")
    room_id = message.get("room_id")

    if action == "list_rooms":
        profile = manager.connection_users[websocket]
        rooms = await state.room_manager.list_rooms_for_user(profile.id)
        await websocket.send_json({"type": "rooms_list", "rooms": [r.model_dump(mode="json") for r in rooms]})
        return

    if action not in ("join", "leave", "send_message", "typing", "toggle_original"):
        await send_error(websocket, f"Unknown action: {action}")
        return

    if not room_id:
        await send_error(websocket, "room_id required")
        return

    if action == "join":
        # The session sends "room_state" once history is loaded
        await manager.open_room(websocket, room_id)
        return

    if action == "leave":
        await manager.close_room(websocket, room_id)
        await websocket.send_json({"type": "room_left", "room_id": room_id})
        return

    session = manager.get_session(websocket, room_id)
    if session is None:
        await send_error(websocket, "Room not open - send a join action first")
        return

    if action == "send_message":
        sent = await session.send_message(message.get("content") or "")
        await websocket.send_json({"type": "message_sent", "room_id": room_id, "message_id": sent.id})

    elif action == "typing":
        await session.send_typing()

    elif action == "toggle_original":
        try:
            view = session.toggle_show_original(message.get("message_id") or "")
        except KeyError:
            await send_error(websocket, "Message not found")
            return
        await websocket.send_json({"type": "message_view", "room_id": room_id, "message": view.to_dict()})


# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: Optional[str] = None):
    """
    WebSocket endpoint for realtime chat.

    Protocol:
    =========

    Client -> Server Actions:
    -------------------------
    Open Room:
        {"action": "join", "room_id": "uuid-123"}
        Response: {"type": "room_state", "room": {...}, "messages": [...], ...}

    Close Room:
        {"action": "leave", "room_id": "uuid-123"}
        Response: {"type": "room_left", "room_id": "uuid-123"}

    Send Message:
        {"action": "send_message", "room_id": "uuid-123", "content": "Hola"}
        Response: {"type": "message_sent", "room_id": "...", "message_id": "..."}

    Typing:
        {"action": "typing", "room_id": "uuid-123"}

    Show Original / Translation:
        {"action": "toggle_original", "room_id": "uuid-123", "message_id": "..."}
        Response: {"type": "message_view", "room_id": "...", "message": {...}}

    List My Rooms:
        {"action": "list_rooms"}
        Response: {"type": "rooms_list", "rooms": [...]}

    Server -> Client Messages:
    -------------------------
    New Message:      {"type": "message", "room_id": ..., "message": {...}}
    Translation Done: {"type": "translation", "room_id": ..., "message_id": ..., "translation": ...}
    Typing:           {"type": "typing", "room_id": ..., "users": ["Bob"]}
    Member Count:     {"type": "member_count", "room_id": ..., "member_count": 3}
    Channel Status:   {"type": "status", "room_id": ..., "status": "SUBSCRIBED"}
    Room List:        {"type": "rooms_updated", "rooms": [...]}
    Error:            {"type": "error", "message": "..."}

    Lifecycle:
    ==========
    1. Client connects with ?token=<access token>; an invalid token closes
       the socket with code 4401
    2. Client sends "join" actions for the rooms it shows
    3. On "status" CHANNEL_ERROR the client sends "join" again
    4. On disconnect every open session is closed
    """
    try:
        profile = await profile_from_claims(decode_token(token))
    except AuthenticationRequired as e:
        logger.info("WebSocket rejected: %s", e.message)
        await websocket.accept()
        await websocket.close(code=WS_CLOSE_UNAUTHORIZED, reason=e.message)
        return

    await state.connection_manager.connect(websocket, profile)

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await send_error(websocket, "Invalid JSON")
                continue
            if not isinstance(message, dict):
                await send_error(websocket, "Invalid JSON")
                continue

            logger.debug("Websocket input from %s: action=%s", profile.id, message.get("action"))
            try:
                await handle_action(websocket, message)
            except BabelChatError as e:
                await send_error(websocket, e.message)

    except WebSocketDisconnect:
        await state.connection_manager.disconnect(websocket)
    except Exception as e:
        logger.error("WebSocket error: %s", e)
        await state.connection_manager.disconnect(websocket)
