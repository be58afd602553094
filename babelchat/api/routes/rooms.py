# babelchat/api/routes/rooms.py

import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from babelchat.api.routes.utils import broadcast_room_list_update, http_error
from babelchat.core import state
from babelchat.core.errors import BabelChatError
from babelchat.core.security import get_current_profile
from babelchat.models.models import (
    CreateRoomRequest,
    JoinByCodeRequest,
    Profile,
    PublicRoomWithCount,
    Room,
)

router = APIRouter(prefix="/rooms", tags=["Rooms"])

# ============================================================================
# ROOM ENDPOINTS
# ============================================================================

@router.get("", response_model=List[Room])
async def list_my_rooms(profile: Profile = Depends(get_current_profile)):
    """Rooms the caller belongs to, in the order they joined them."""
    return await state.room_manager.list_rooms_for_user(profile.id)


@router.get("/public", response_model=List[PublicRoomWithCount])
async def list_public_rooms(
    search: Optional[str] = None, profile: Profile = Depends(get_current_profile)
):
    """
    Browse public rooms.

    Args:
        search: Optional case-insensitive filter on name or description

    Returns:
        List[PublicRoomWithCount]: Public rooms with member counts, without
        their invite codes
    """
    return await state.room_manager.list_public_rooms_with_member_counts(search)


@router.post("", response_model=Room)
async def create_room(request: CreateRoomRequest, profile: Profile = Depends(get_current_profile)):
    """
    Create a room. The creator is a member from the start.

    Raises:
        HTTPException: 400 if name is empty

    Side Effects:
        - "rooms_updated" broadcast to all WebSocket clients for public rooms
    """
    if not request.name.strip():
        raise HTTPException(status_code=400, detail="Room name required")

    room = await state.room_manager.create_room(
        name=request.name,
        description=request.description or "",
        created_by=profile.id,
        is_public=request.is_public,
    )

    if room.is_public:
        asyncio.create_task(broadcast_room_list_update())
    return room


@router.post("/join-by-code", response_model=Room)
async def join_by_code(request: JoinByCodeRequest, profile: Profile = Depends(get_current_profile)):
    """
    Join a room, public or private, with its invite code.

    Raises:
        HTTPException: 400 "Invalid invite code" if the code matches no room
    """
    try:
        return await state.room_manager.join_by_invite_code(request.code, profile.id)
    except BabelChatError as e:
        raise http_error(e)


@router.get("/{room_id}")
async def get_room(room_id: str, profile: Profile = Depends(get_current_profile)):
    """
    Details of a room with its member count.

    Members see the full room, invite code included. Anyone else only sees
    public rooms, without the invite code.

    Raises:
        HTTPException: 404 if room not found or private to others
    """
    room = await state.room_manager.get_room(room_id)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")

    is_member = await state.room_manager.is_member(room_id, profile.id)
    if not is_member and not room.is_public:
        raise HTTPException(status_code=404, detail="Room not found")

    data = room.model_dump(mode="json", exclude=None if is_member else {"invite_code"})
    data["member_count"] = await state.room_manager.member_count(room_id)
    data["is_member"] = is_member
    return data


@router.post("/{room_id}/join")
async def join_room(room_id: str, profile: Profile = Depends(get_current_profile)):
    """
    Join a public room. Joining twice is a no-op.

    Raises:
        HTTPException: 404 if room not found or private
    """
    room = await state.room_manager.get_room(room_id)
    if room is None or not room.is_public:
        raise HTTPException(status_code=404, detail="Room not found")

    try:
        joined = await state.room_manager.join(room_id, profile.id)
    except BabelChatError as e:
        raise http_error(e)

    if joined:
        asyncio.create_task(broadcast_room_list_update())
    return {"status": "joined" if joined else "already_member", "room_id": room_id}


@router.post("/{room_id}/leave")
async def leave_room(room_id: str, profile: Profile = Depends(get_current_profile)):
    """
    Leave a room.

    Side Effects:
        - "rooms_updated" broadcast to all WebSocket clients
    """
    left = await state.room_manager.leave(room_id, profile.id)
    if left:
        asyncio.create_task(broadcast_room_list_update())
    return {"status": "left" if left else "not_member", "room_id": room_id}


@router.post("/{room_id}/invite-code", response_model=Room)
async def regenerate_invite_code(room_id: str, profile: Profile = Depends(get_current_profile)):
    """
    Replace the room's invite code. Only the creator may do this.

    Raises:
        HTTPException: 404 if room not found, 403 if not the creator
    """
    try:
        return await state.room_manager.regenerate_invite_code(room_id, profile.id)
    except BabelChatError as e:
        raise http_error(e)
