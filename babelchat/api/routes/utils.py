# babelchat/api/routes/utils.py

from __future__ import annotations

from fastapi import HTTPException, status

from babelchat.core import state
from babelchat.core.errors import (
    AuthenticationRequired,
    BabelChatError,
    InvalidInviteCode,
    InvalidMessage,
    NotRoomCreator,
    NotRoomMember,
    RoomNotFound,
)

STATUS_CODES = {
    InvalidInviteCode: status.HTTP_400_BAD_REQUEST,
    InvalidMessage: status.HTTP_400_BAD_REQUEST,
    AuthenticationRequired: status.HTTP_401_UNAUTHORIZED,
    NotRoomMember: status.HTTP_403_FORBIDDEN,
    NotRoomCreator: status.HTTP_403_FORBIDDEN,
    RoomNotFound: status.HTTP_404_NOT_FOUND,
}


def http_error(error: BabelChatError) -> HTTPException:
    """Map a domain error to the HTTP error the client sees."""
    code = STATUS_CODES.get(type(error), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(status_code=code, detail=error.message)


async def broadcast_room_list_update():
    """
    Helper function to notify all clients that the public room list has changed.

    Used after room creation and membership changes.

    Side Effects:
        Sends JSON message to all WebSocket connections:
        {
            "type": "rooms_updated",
            "rooms": [public rooms with member counts]
        }
    """
    rooms = await state.room_manager.list_public_rooms_with_member_counts()
    await state.connection_manager.broadcast_all(
        {
            "type": "rooms_updated",
            "rooms": [r.model_dump(mode="json") for r in rooms],
        }
    )
