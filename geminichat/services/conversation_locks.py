"""
Per-conversation advisory locks for the send pipeline.

Two sends to the same conversation must not both read a stale "last message"
and both decide to split. The pipeline holds the lock from reading history
until the user message is stored; the model call runs outside it.

ConversationLocks serializes within one process. RedisConversationLocks
serializes across workers and falls back to the in-process lock if Redis errors.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from redis.exceptions import LockError, RedisError

from geminichat.core.errors import UpstreamTransientError

logger = logging.getLogger(__name__)

LOCK_KEY_PREFIX = "chat:conversation-lock:"


class ConversationLocks:
    """In-process lock registry keyed by conversation id. Entries are dropped when unused."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._holders[conversation_id] = self._holders.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[conversation_id] -= 1
            if self._holders[conversation_id] == 0:
                del self._holders[conversation_id]
                del self._locks[conversation_id]

    def __len__(self) -> int:
        return len(self._locks)


class RedisConversationLocks:
    """Redis-backed locks shared by every worker process."""

    def __init__(self, redis_client: Any, timeout_seconds: int = 30):
        self._redis = redis_client
        self._timeout = timeout_seconds
        self._fallback = ConversationLocks()

    @asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncIterator[None]:
        lock = self._redis.lock(
            f"{LOCK_KEY_PREFIX}{conversation_id}",
            timeout=self._timeout,
            blocking_timeout=self._timeout,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            logger.warning("Redis lock unavailable for %s, using in-process lock: %s", conversation_id, e)
            acquired = None

        if acquired is None:
            async with self._fallback.hold(conversation_id):
                yield
            return
        if not acquired:
            raise UpstreamTransientError("This conversation is busy. Please try again.")
        try:
            yield
        finally:
            try:
                await lock.release()
            except (LockError, RedisError) as e:
                # Lock expired while held or Redis went away; the timeout frees it anyway
                logger.warning("Redis lock release failed for %s: %s", conversation_id, e)
