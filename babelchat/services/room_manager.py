# babelchat/services/room_manager.py

from __future__ import annotations

import logging
import secrets
import string
import uuid
from typing import TYPE_CHECKING, List, Optional

import redis.asyncio as redis

from babelchat.core.errors import (
    InvalidInviteCode,
    MembershipConflict,
    NotRoomCreator,
    RoomNotFound,
)
from babelchat.core.keys import (
    INVITE_CODES_KEY,
    PUBLIC_ROOMS_KEY,
    ROOM_KEY,
    ROOM_MEMBERS_KEY,
    USER_ROOMS_KEY,
)
from babelchat.models.events import MemberJoined, MemberLeft
from babelchat.models.models import PublicRoomWithCount, Room, RoomMember, utcnow

if TYPE_CHECKING:
    from babelchat.services.message_channel import MessageChannel

logger = logging.getLogger(__name__)

INVITE_CODE_ALPHABET = string.ascii_lowercase + string.digits
INVITE_CODE_LENGTH = 8
INVITE_CODE_ATTEMPTS = 10

# ============================================================================
# ROOM MEMBERSHIP STORE
# ============================================================================
class RoomManager:
    """
    Rooms, memberships and invite codes, persisted in Redis.

    Storage Format:
        room:meta:{room_id}      Room JSON
        room:members:{room_id}   hash user_id -> RoomMember JSON
        user:rooms:{user_id}     zset of room ids scored by join time
        rooms:public             zset of public room ids scored by creation time
        rooms:invite_codes       hash invite_code -> room_id

    Invariants:
        - A user is a member of a room at most once (HSETNX on the members hash)
        - A room is never visible without its creator as a member: the room,
          its indexes and the creator's membership are written in one MULTI
        - Invite codes are unique (HSETNX on the invite code index)

    Membership inserts and removals are published on the room channel as
    MemberJoined / MemberLeft, the way a database change feed would.

    Usage:
        room_manager = RoomManager(redis_client, channel)
        room = await room_manager.create_room("Design", "UI talk", "alice-id")
        await room_manager.join(room.id, "bob-id")
    """

    def __init__(self, client: redis.Redis, channel: Optional["MessageChannel"] = None) -> None:
        self.client = client
        self.channel = channel

    async def _reserve_invite_code(self, room_id: str) -> str:
        """Claim a fresh invite code for ``room_id`` in the invite index."""
        for _ in range(INVITE_CODE_ATTEMPTS):
            code = "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))
            if await self.client.hsetnx(INVITE_CODES_KEY, code, room_id):
                return code
        raise RuntimeError("Could not allocate a unique invite code")

    async def create_room(
        self, name: str, description: str, created_by: str, is_public: bool = True
    ) -> Room:
        """
        Create a room with its creator already joined.

        Args:
            name: Room name
            description: Room description
            created_by: User id of the creator
            is_public: Listed in the public directory when True

        Returns:
            Room: The newly created room
        """
        room_id = str(uuid.uuid4())
        invite_code = await self._reserve_invite_code(room_id)
        room = Room(
            id=room_id,
            name=name.strip(),
            description=(description or "").strip(),
            created_by=created_by,
            is_public=is_public,
            invite_code=invite_code,
        )
        member = RoomMember(id=str(uuid.uuid4()), room_id=room_id, user_id=created_by)
        created_score = room.created_at.timestamp()

        async with self.client.pipeline(transaction=True) as pipe:
            pipe.set(ROOM_KEY.format(room_id=room_id), room.model_dump_json())
            pipe.hset(ROOM_MEMBERS_KEY.format(room_id=room_id), created_by, member.model_dump_json())
            pipe.zadd(USER_ROOMS_KEY.format(user_id=created_by), {room_id: created_score})
            if is_public:
                pipe.zadd(PUBLIC_ROOMS_KEY, {room_id: created_score})
            await pipe.execute()

        logger.info("✓ Created %s room '%s' (%s)", "public" if is_public else "private", room.name, room.id)
        return room

    async def get_room(self, room_id: str) -> Optional[Room]:
        raw = await self.client.get(ROOM_KEY.format(room_id=room_id))
        return Room.model_validate_json(raw) if raw else None

    async def require_room(self, room_id: str) -> Room:
        """
        Raises:
            RoomNotFound: if the room does not exist
        """
        room = await self.get_room(room_id)
        if room is None:
            raise RoomNotFound()
        return room

    async def _get_rooms(self, room_ids: List[str]) -> List[Room]:
        if not room_ids:
            return []
        values = await self.client.mget([ROOM_KEY.format(room_id=rid) for rid in room_ids])
        return [Room.model_validate_json(raw) for raw in values if raw]

    async def list_rooms_for_user(self, user_id: str) -> List[Room]:
        """Rooms the user belongs to, in the order they joined them."""
        room_ids = await self.client.zrange(USER_ROOMS_KEY.format(user_id=user_id), 0, -1)
        return await self._get_rooms(room_ids)

    async def _insert_membership(self, room_id: str, user_id: str) -> RoomMember:
        """
        Raises:
            MembershipConflict: if the user is already a member
        """
        member = RoomMember(id=str(uuid.uuid4()), room_id=room_id, user_id=user_id)
        inserted = await self.client.hsetnx(
            ROOM_MEMBERS_KEY.format(room_id=room_id), user_id, member.model_dump_json()
        )
        if not inserted:
            raise MembershipConflict()

        await self.client.zadd(
            USER_ROOMS_KEY.format(user_id=user_id), {room_id: member.joined_at.timestamp()}
        )
        return member

    async def join(self, room_id: str, user_id: str) -> bool:
        """
        Add a user to a room. Joining twice is a no-op.

        Returns:
            True if a membership was created, False if it already existed

        Raises:
            RoomNotFound: if the room does not exist
        """
        room = await self.require_room(room_id)
        try:
            await self._insert_membership(room.id, user_id)
        except MembershipConflict:
            logger.debug("%s already in room %s - join ignored", user_id, room.id)
            return False

        logger.info("→ %s joined '%s'", user_id, room.name)
        if self.channel is not None:
            await self.channel.publish(room.id, MemberJoined(room_id=room.id, user_id=user_id))
        return True

    async def join_by_invite_code(self, code: str, user_id: str) -> Room:
        """
        Resolve an invite code and join its room.

        Returns:
            Room: The joined room, so the caller can subscribe to it right away

        Raises:
            InvalidInviteCode: if the code matches no room
        """
        code = (code or "").strip().lower()
        room_id = await self.client.hget(INVITE_CODES_KEY, code) if code else None
        room = await self.get_room(room_id) if room_id else None
        if room is None or room.invite_code != code:
            raise InvalidInviteCode()

        await self.join(room.id, user_id)
        return room

    async def leave(self, room_id: str, user_id: str) -> bool:
        """
        Remove a user from a room.

        Returns:
            True if a membership was removed, False if there was none
        """
        removed = await self.client.hdel(ROOM_MEMBERS_KEY.format(room_id=room_id), user_id)
        if not removed:
            return False

        await self.client.zrem(USER_ROOMS_KEY.format(user_id=user_id), room_id)
        logger.info("← %s left room %s", user_id, room_id)
        if self.channel is not None:
            await self.channel.publish(room_id, MemberLeft(room_id=room_id, user_id=user_id))
        return True

    async def is_member(self, room_id: str, user_id: str) -> bool:
        return bool(await self.client.hexists(ROOM_MEMBERS_KEY.format(room_id=room_id), user_id))

    async def member_ids(self, room_id: str) -> List[str]:
        return list(await self.client.hkeys(ROOM_MEMBERS_KEY.format(room_id=room_id)))

    async def member_count(self, room_id: str) -> int:
        return int(await self.client.hlen(ROOM_MEMBERS_KEY.format(room_id=room_id)))

    async def list_public_rooms_with_member_counts(
        self, search: Optional[str] = None
    ) -> List[PublicRoomWithCount]:
        """
        Public rooms with their member counts, oldest first.

        Args:
            search: Optional case-insensitive filter on name or description
        """
        rooms = await self._get_rooms(await self.client.zrange(PUBLIC_ROOMS_KEY, 0, -1))

        if search and search.strip():
            needle = search.strip().lower()
            rooms = [r for r in rooms if needle in r.name.lower() or needle in r.description.lower()]

        async with self.client.pipeline(transaction=False) as pipe:
            for room in rooms:
                pipe.hlen(ROOM_MEMBERS_KEY.format(room_id=room.id))
            counts = await pipe.execute()

        return [
            PublicRoomWithCount(**room.model_dump(exclude={"invite_code"}), member_count=count)
            for room, count in zip(rooms, counts)
        ]

    async def regenerate_invite_code(self, room_id: str, user_id: str) -> Room:
        """
        Replace a room's invite code. The old code stops working.

        Raises:
            RoomNotFound: if the room does not exist
            NotRoomCreator: if ``user_id`` did not create the room
        """
        room = await self.require_room(room_id)
        if room.created_by != user_id:
            raise NotRoomCreator()

        old_code = room.invite_code
        room.invite_code = await self._reserve_invite_code(room.id)

        async with self.client.pipeline(transaction=True) as pipe:
            pipe.set(ROOM_KEY.format(room_id=room.id), room.model_dump_json())
            pipe.hdel(INVITE_CODES_KEY, old_code)
            await pipe.execute()

        logger.info("✓ Regenerated invite code for room %s", room.id)
        return room
