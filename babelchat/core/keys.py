# babelchat/core/keys.py
# Redis key layout

PROFILE_KEY = "profile:{user_id}"  # JSON profile

ROOM_KEY = "room:meta:{room_id}"  # JSON room
ROOM_MEMBERS_KEY = "room:members:{room_id}"  # hash user_id -> JSON membership
ROOM_MESSAGES_KEY = "room:messages:{room_id}"  # stream, one entry per message
PUBLIC_ROOMS_KEY = "rooms:public"  # zset room_id scored by creation time
INVITE_CODES_KEY = "rooms:invite_codes"  # hash invite_code -> room_id
USER_ROOMS_KEY = "user:rooms:{user_id}"  # zset room_id scored by join time

MESSAGE_KEY = "message:{message_id}"  # JSON message
TRANSLATION_KEY = "translation:{message_id}:{target_language}"  # JSON cache entry

# Pub/sub channels (separate namespace from keys)
ROOM_CHANNEL = "room:{room_id}"
ROOM_CHANNEL_PATTERN = "room:*"
