# babelchat/core/state.py
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

import redis.asyncio as redis
from fakeredis import FakeAsyncRedis

from babelchat.core.config import settings
from babelchat.services.connection_manager import ConnectionManager
from babelchat.services.message_channel import MessageChannel
from babelchat.services.profiles import ProfileStore
from babelchat.services.proxy_cache import ProxyCache
from babelchat.services.redis_pub_sub import AsyncRedisPubSubService
from babelchat.services.room_manager import RoomManager
from babelchat.services.translation_cache import TranslationCache
from babelchat.services.translation_gateway import LingoTranslationGateway
from babelchat.services.translator import MessageTranslator

logger = logging.getLogger(__name__)

# Global singletons for app state, built by init() on startup
redis_client: Optional[redis.Redis] = None
profiles: Optional[ProfileStore] = None
channel: Optional[MessageChannel] = None
room_manager: Optional[RoomManager] = None
proxy_cache: Optional[ProxyCache] = None
gateway: Optional[LingoTranslationGateway] = None
translation_cache: Optional[TranslationCache] = None
translator: Optional[MessageTranslator] = None
connection_manager: Optional[ConnectionManager] = None
redis_service: Optional[AsyncRedisPubSubService] = None
listener_task: Optional[asyncio.Task] = None

app_start_time: datetime = datetime.now(timezone.utc)


def create_redis_client() -> redis.Redis:
    """Real Redis when REDIS_HOST is set, otherwise an embedded fakeredis."""
    if not settings.REDIS_HOST:
        logger.warning("REDIS_HOST not set - using in-memory fakeredis (data is lost on restart)")
        return FakeAsyncRedis(decode_responses=True)
    return redis.from_url(settings.redis_url, decode_responses=True)


async def init(
    client: Optional[redis.Redis] = None,
    translation_gateway: Optional[LingoTranslationGateway] = None,
    backend: Optional[str] = None,
) -> None:
    """
    Build the stores and services.

    Args:
        client: Redis client to use instead of the configured one
        translation_gateway: Gateway to use instead of the Lingo.dev client
        backend: "memory" or "redis" fan-out; defaults to CHANNEL_BACKEND
    """
    global redis_client, profiles, channel, room_manager, proxy_cache, gateway
    global translation_cache, translator, connection_manager, redis_service, listener_task

    redis_client = client or create_redis_client()
    backend = backend or settings.CHANNEL_BACKEND

    channel = MessageChannel(redis_client, history_limit=settings.MESSAGE_HISTORY_LIMIT)
    if backend == "redis":
        redis_service = AsyncRedisPubSubService(redis_client, channel)
        await redis_service.connect()
        channel.relay = redis_service
        listener_task = asyncio.create_task(redis_service.run())

    profiles = ProfileStore(redis_client, default_language=settings.DEFAULT_LANGUAGE)
    room_manager = RoomManager(redis_client, channel)

    proxy_cache = ProxyCache(ttl=settings.PROXY_CACHE_TTL_SECONDS, maxsize=settings.PROXY_CACHE_MAXSIZE)
    gateway = translation_gateway or LingoTranslationGateway(
        settings.LINGO_API_KEY,
        base_url=settings.LINGO_API_URL,
        timeout=settings.TRANSLATION_TIMEOUT_SECONDS,
        proxy_cache=proxy_cache,
    )
    if not settings.LINGO_API_KEY and translation_gateway is None:
        logger.warning("LINGO_API_KEY not set - messages will be shown untranslated")

    translation_cache = TranslationCache(redis_client)
    translator = MessageTranslator(translation_cache, gateway)
    connection_manager = ConnectionManager(
        room_manager,
        channel,
        translator,
        profiles,
        typing_timeout=settings.TYPING_TIMEOUT_SECONDS,
    )
    logger.info("✓ App state ready (channel backend: %s)", backend)


async def shutdown() -> None:
    global listener_task, redis_service

    if connection_manager is not None:
        for websocket in list(connection_manager.connection_users):
            await connection_manager.disconnect(websocket)

    if listener_task is not None:
        listener_task.cancel()
        try:
            await listener_task
        except (asyncio.CancelledError, redis.RedisError):
            pass
        listener_task = None

    if redis_service is not None:
        await redis_service.close()
        redis_service = None

    if channel is not None:
        await channel.close()
    if gateway is not None:
        await gateway.close()
    if redis_client is not None:
        await redis_client.aclose()
    logger.info("App state shut down")
