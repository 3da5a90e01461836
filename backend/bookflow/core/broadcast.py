"""
Shared broadcast manager for multi-instance availability fan-out.

One Broadcaster instance per worker process. Broadcaster keeps a single
Redis PubSub connection and multiplexes every channel subscription
through internal asyncio queues, so N realtime subscribers cost one
Redis connection rather than N.
"""
import logging
from typing import Optional

from broadcaster import Broadcast

from .config import settings

logger = logging.getLogger(__name__)

_broadcast: Optional[Broadcast] = None


async def connect_broadcast(url: Optional[str] = None) -> Broadcast:
    """
    Connect to Redis via Broadcaster.

    Call during application startup (in lifespan manager).
    """
    global _broadcast

    redis_url = url or settings.redis_url or "redis://localhost:6379"
    _broadcast = Broadcast(redis_url)
    await _broadcast.connect()
    logger.info("[BROADCAST] Connected for availability fan-out: %s", redis_url)
    return _broadcast


async def disconnect_broadcast() -> None:
    """Disconnect from Redis. Call during application shutdown."""
    global _broadcast

    if _broadcast is not None:
        await _broadcast.disconnect()
        _broadcast = None
        logger.info("[BROADCAST] Disconnected from Redis")
