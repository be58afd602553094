# babelchat/models/models.py
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Profile(BaseModel):
    id: str
    display_name: str
    preferred_language: str = "en"
    avatar_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

class Room(BaseModel):
    id: str
    name: str
    description: str = ""
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    is_public: bool = True
    invite_code: str

class PublicRoomWithCount(BaseModel):
    id: str
    name: str
    description: str = ""
    created_by: Optional[str] = None
    created_at: datetime
    is_public: bool = True
    member_count: int = 0

class RoomMember(BaseModel):
    id: str
    room_id: str
    user_id: str
    joined_at: datetime = Field(default_factory=utcnow)

class Message(BaseModel):
    id: str
    room_id: str
    sender_id: str
    content: str
    source_language: str
    created_at: datetime
    # Position in the room log; creation order within the room
    seq: str = ""

class MessageTranslation(BaseModel):
    message_id: str
    target_language: str
    translated_content: str
    created_at: datetime = Field(default_factory=utcnow)


# ----------------------------------------------------------------------------
# Request bodies
# ----------------------------------------------------------------------------

class CreateRoomRequest(BaseModel):
    name: str
    description: Optional[str] = ""
    is_public: bool = True

class JoinByCodeRequest(BaseModel):
    code: str

class PostMessageRequest(BaseModel):
    content: str

class UpdateProfileRequest(BaseModel):
    display_name: Optional[str] = None
    preferred_language: Optional[str] = None
    avatar_url: Optional[str] = None

class TranslateRequest(BaseModel):
    # A string, or an object whose string values are translated in place
    content: Union[str, Dict[str, Any]]
    sourceLocale: Optional[str] = None
    targetLocale: str

class DetectLanguageRequest(BaseModel):
    text: str
