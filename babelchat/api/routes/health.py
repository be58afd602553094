# babelchat/api/routes/health.py

from datetime import datetime, timezone

from fastapi import APIRouter
from redis.exceptions import RedisError

from babelchat.core import state

router = APIRouter()

@router.get("/health")
async def health():
    """
    Health check endpoint.

    Returns current system status, connection and subscription counts.

    Returns:
        dict: Status, uptime, connection count, rooms with live subscribers,
              translation proxy cache size
    """
    try:
        redis_ok = bool(await state.redis_client.ping())
    except RedisError:
        redis_ok = False

    return {
        "status": "healthy" if redis_ok else "degraded",
        "redis": redis_ok,
        "uptime_seconds": int((datetime.now(timezone.utc) - state.app_start_time).total_seconds()),
        "connections": len(state.connection_manager.connection_users),
        "active_rooms_with_subscribers": len(state.channel.subscriptions),
        "proxy_cache_entries": len(state.proxy_cache) if state.proxy_cache is not None else 0,
    }
