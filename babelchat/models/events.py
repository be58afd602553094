# babelchat/models/events.py
"""
Realtime events carried by a room channel.

Every event is tagged with ``type`` so a payload coming back from the pub/sub
transport can be parsed into exactly one variant.
"""
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from babelchat.models.models import Message


class MessageInserted(BaseModel):
    type: Literal["message_inserted"] = "message_inserted"
    room_id: str
    message: Message

class MemberJoined(BaseModel):
    type: Literal["member_joined"] = "member_joined"
    room_id: str
    user_id: str

class MemberLeft(BaseModel):
    type: Literal["member_left"] = "member_left"
    room_id: str
    user_id: str

class TypingBroadcast(BaseModel):
    type: Literal["typing"] = "typing"
    room_id: str
    user_id: str
    display_name: str


ChannelEvent = Annotated[
    Union[MessageInserted, MemberJoined, MemberLeft, TypingBroadcast],
    Field(discriminator="type"),
]

channel_event_adapter: TypeAdapter[ChannelEvent] = TypeAdapter(ChannelEvent)


def parse_event(data: dict) -> ChannelEvent:
    """Validate a raw transport payload into its event variant."""
    return channel_event_adapter.validate_python(data)
