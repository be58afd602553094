# babelchat/core/errors.py
"""
Domain errors.

Errors that affect data integrity (invite codes, authentication, membership)
propagate to the client as explicit messages. Errors from enhancement paths
(translation, language detection) are caught inside the services and degrade
to the original text.
"""


class BabelChatError(Exception):
    """Base class for every error raised by the chat core."""

    message = "Chat error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class InvalidInviteCode(BabelChatError):
    message = "Invalid invite code"


class RoomNotFound(BabelChatError):
    message = "Room not found"


class NotRoomMember(BabelChatError):
    message = "Not a member of this room"


class InvalidMessage(BabelChatError):
    message = "Message content is empty"


class AuthenticationRequired(BabelChatError):
    message = "Not authenticated"


class TranslationUnavailable(BabelChatError):
    """Raised by the gateway; fail-open callers turn it into the original text."""

    message = "Translation service unavailable"


class ChannelSubscriptionError(BabelChatError):
    """A live subscription broke; the consumer has to subscribe again."""

    message = "Realtime subscription error"


class MembershipConflict(BabelChatError):
    """Duplicate join. Handled as success by the membership store."""

    message = "Already a member of this room"


class NotRoomCreator(BabelChatError):
    message = "Only the room creator can do this"
