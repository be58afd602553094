"""Tests for rooms, memberships and invite codes."""

import pytest

from babelchat.core.errors import InvalidInviteCode, NotRoomCreator, RoomNotFound
from babelchat.services.room_manager import INVITE_CODE_ALPHABET, INVITE_CODE_LENGTH


@pytest.mark.asyncio
async def test_create_room_includes_creator(room_manager) -> None:
    """The creator is a member as soon as the room exists."""
    room = await room_manager.create_room("  Design ", "UI talk", "alice-id")

    assert room.name == "Design"
    assert room.created_by == "alice-id"
    assert await room_manager.is_member(room.id, "alice-id")
    assert await room_manager.member_count(room.id) == 1
    assert [r.id for r in await room_manager.list_rooms_for_user("alice-id")] == [room.id]


@pytest.mark.asyncio
async def test_create_room_invite_code_format(room_manager) -> None:
    room = await room_manager.create_room("Design", "", "alice-id")

    assert len(room.invite_code) == INVITE_CODE_LENGTH
    assert set(room.invite_code) <= set(INVITE_CODE_ALPHABET)


@pytest.mark.asyncio
async def test_join_is_idempotent(room_manager) -> None:
    """Joining twice leaves exactly one membership."""
    room = await room_manager.create_room("Design", "", "alice-id")

    assert await room_manager.join(room.id, "bob-id") is True
    assert await room_manager.join(room.id, "bob-id") is False
    assert await room_manager.member_count(room.id) == 2
    assert sorted(await room_manager.member_ids(room.id)) == ["alice-id", "bob-id"]


@pytest.mark.asyncio
async def test_join_missing_room(room_manager) -> None:
    with pytest.raises(RoomNotFound):
        await room_manager.join("no-such-room", "bob-id")


@pytest.mark.asyncio
async def test_join_by_invite_code(room_manager) -> None:
    """A valid code joins even a private room and returns it."""
    room = await room_manager.create_room("Secret", "", "alice-id", is_public=False)

    joined = await room_manager.join_by_invite_code(room.invite_code.upper(), "bob-id")

    assert joined.id == room.id
    assert await room_manager.is_member(room.id, "bob-id")


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["zzzzzzzz", "", "   "])
async def test_join_by_invalid_invite_code(room_manager, code) -> None:
    await room_manager.create_room("Design", "", "alice-id")

    with pytest.raises(InvalidInviteCode) as exc:
        await room_manager.join_by_invite_code(code, "bob-id")
    assert exc.value.message == "Invalid invite code"


@pytest.mark.asyncio
async def test_leave(room_manager) -> None:
    room = await room_manager.create_room("Design", "", "alice-id")
    await room_manager.join(room.id, "bob-id")

    assert await room_manager.leave(room.id, "bob-id") is True
    assert await room_manager.leave(room.id, "bob-id") is False
    assert not await room_manager.is_member(room.id, "bob-id")
    assert await room_manager.list_rooms_for_user("bob-id") == []


@pytest.mark.asyncio
async def test_public_rooms_with_member_counts(room_manager) -> None:
    """Private rooms are not listed; counts reflect memberships."""
    design = await room_manager.create_room("Design", "UI talk", "alice-id")
    await room_manager.create_room("Secret", "", "alice-id", is_public=False)
    travel = await room_manager.create_room("Travel", "Trips and tips", "bob-id")
    await room_manager.join(design.id, "bob-id")

    rooms = await room_manager.list_public_rooms_with_member_counts()

    assert {r.id: r.member_count for r in rooms} == {design.id: 2, travel.id: 1}
    assert all("invite_code" not in r.model_dump() for r in rooms)


@pytest.mark.asyncio
async def test_public_rooms_search(room_manager) -> None:
    """Search matches name or description, case-insensitively."""
    await room_manager.create_room("Design", "UI talk", "alice-id")
    travel = await room_manager.create_room("Travel", "Trips and tips", "bob-id")

    assert [r.id for r in await room_manager.list_public_rooms_with_member_counts("TRIPS")] == [travel.id]
    assert await room_manager.list_public_rooms_with_member_counts("cooking") == []


@pytest.mark.asyncio
async def test_regenerate_invite_code(room_manager) -> None:
    """The old code stops working, the new one joins."""
    room = await room_manager.create_room("Design", "", "alice-id")
    old_code = room.invite_code

    updated = await room_manager.regenerate_invite_code(room.id, "alice-id")

    assert updated.invite_code != old_code
    with pytest.raises(InvalidInviteCode):
        await room_manager.join_by_invite_code(old_code, "bob-id")
    assert (await room_manager.join_by_invite_code(updated.invite_code, "bob-id")).id == room.id


@pytest.mark.asyncio
async def test_regenerate_invite_code_creator_only(room_manager) -> None:
    room = await room_manager.create_room("Design", "", "alice-id")

    with pytest.raises(NotRoomCreator):
        await room_manager.regenerate_invite_code(room.id, "bob-id")
