"""
Optional async Redis client for conversation locks. If redis_url is empty or connection fails, returns None
and the send pipeline uses in-process locks instead.
"""
import logging
from typing import Any

from geminichat.config import get_settings
from geminichat.services.conversation_locks import ConversationLocks, RedisConversationLocks

logger = logging.getLogger(__name__)

_redis_client: Any = None


async def get_redis_client() -> Any:
    """Lazy singleton: one async Redis client or None if disabled/unavailable."""
    global _redis_client
    if _redis_client is not None:
        return _redis_client
    url = (get_settings().redis_url or "").strip()
    if not url:
        return None
    try:
        from redis.asyncio import Redis
        client = Redis.from_url(url, decode_responses=True)
        await client.ping()
        _redis_client = client
        logger.info("Redis lock store connected: %s", url.split("@")[-1] if "@" in url else url)
        return _redis_client
    except Exception as e:
        logger.warning("Redis unavailable (using in-process conversation locks): %s", e, exc_info=False)
        return None


async def build_conversation_locks() -> ConversationLocks | RedisConversationLocks:
    client = await get_redis_client()
    if client is None:
        return ConversationLocks()
    return RedisConversationLocks(client, get_settings().conversation_lock_timeout_seconds)


async def close_redis() -> None:
    """Graceful shutdown: close Redis connection."""
    global _redis_client
    if _redis_client is not None:
        try:
            await _redis_client.aclose()
        except Exception as e:
            logger.warning("Redis close error: %s", e)
        _redis_client = None
