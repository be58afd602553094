# babelchat/api/routes/messages.py

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from babelchat.api.routes.utils import http_error
from babelchat.core import state
from babelchat.core.errors import BabelChatError, NotRoomMember
from babelchat.core.security import get_current_profile
from babelchat.models.models import Message, PostMessageRequest, Profile
from babelchat.services.languages import is_supported, normalize_language_code

router = APIRouter(tags=["Messages"])


async def require_membership(room_id: str, user_id: str) -> None:
    try:
        await state.room_manager.require_room(room_id)
        if not await state.room_manager.is_member(room_id, user_id):
            raise NotRoomMember()
    except BabelChatError as e:
        raise http_error(e)


@router.get("/rooms/{room_id}/messages")
async def list_messages(
    room_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    profile: Profile = Depends(get_current_profile),
):
    """
    Recent messages of a room, oldest first, translated for the caller.

    Translation is fail-open: a message whose translation failed carries
    its original text and ``translation_failed: true``.
    """
    await require_membership(room_id, profile.id)

    messages = await state.channel.history(room_id, limit)
    results = await state.translator.translate_messages(messages, profile.preferred_language)
    return [
        {
            **message.model_dump(mode="json"),
            "translation": results[message.id].text,
            "translation_failed": results[message.id].failed,
        }
        for message in messages
    ]


@router.post("/rooms/{room_id}/messages", response_model=Message)
async def post_message(
    room_id: str, request: PostMessageRequest, profile: Profile = Depends(get_current_profile)
):
    """
    Post a message in the caller's preferred language.

    Raises:
        HTTPException: 403 if not a member, 400 on empty content
    """
    await require_membership(room_id, profile.id)
    try:
        return await state.channel.post_message(
            room_id, profile.id, request.content, profile.preferred_language
        )
    except BabelChatError as e:
        raise http_error(e)


@router.get("/messages/{message_id}/translation")
async def get_translation(
    message_id: str,
    lang: Optional[str] = None,
    profile: Profile = Depends(get_current_profile),
):
    """
    One message in one language, served from the translation cache when
    possible.

    Args:
        lang: Target language; defaults to the caller's preferred language
    """
    message = await state.channel.get_message(message_id)
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    await require_membership(message.room_id, profile.id)

    target = lang or profile.preferred_language
    if not is_supported(target):
        raise HTTPException(status_code=400, detail=f"Unsupported language: {target}")

    result = await state.translator.translate_message(message, normalize_language_code(target))
    return {
        "message_id": message.id,
        "source_language": message.source_language,
        "target_language": normalize_language_code(target),
        "original": message.content,
        "translation": result.text,
        "outcome": result.outcome,
    }
