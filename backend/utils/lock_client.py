"""Lock client abstraction - Redis or in-memory fallback."""
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator, Optional
import asyncio
import logging

logger = logging.getLogger(__name__)


class LockTimeoutError(RuntimeError):
    """Raised when a named lock cannot be acquired in time."""


class LockClient:
    """Named async locks - uses Redis if available, else per-process asyncio locks.

    The in-memory backend only serializes coroutines in this process; deploy
    with ``REDIS_URL`` when running more than one worker.
    """

    def __init__(self, redis_url: Optional[str] = None):
        self.backend = "memory"
        self.redis = None
        # name -> [lock, number of holders and waiters]
        self._memory_locks: dict[str, list] = {}

        if redis_url:
            try:
                from redis import asyncio as redis_asyncio
                self.redis = redis_asyncio.from_url(redis_url, decode_responses=True)
                self.backend = "redis"
                logger.info("Using Redis for locks")
            except Exception as e:
                logger.warning(f"Redis not available, using in-memory locks: {e}")
        else:
            logger.info("Using in-memory locks (Redis URL not provided)")

    @asynccontextmanager
    async def lock(self, name: str, timeout: float = 10) -> AsyncIterator[None]:
        """Hold the named lock for the duration of the block.

        Raises:
            LockTimeoutError: If the lock is not acquired within ``timeout`` seconds.
        """
        if self.backend == "redis":
            async with self._redis_lock(name, timeout):
                yield
        else:
            async with self._memory_lock(name, timeout):
                yield

    @asynccontextmanager
    async def _redis_lock(self, name: str, timeout: float) -> AsyncIterator[None]:
        from redis.exceptions import LockError

        redis_lock = self.redis.lock(f"lock:{name}", timeout=timeout * 3, blocking_timeout=timeout)
        acquired = await redis_lock.acquire()
        if not acquired:
            raise LockTimeoutError(f"Timed out acquiring lock {name}")
        try:
            yield
        finally:
            try:
                await redis_lock.release()
            except LockError as e:
                logger.warning(f"Lock {name} expired before release: {e}")

    @asynccontextmanager
    async def _memory_lock(self, name: str, timeout: float) -> AsyncIterator[None]:
        entry = self._memory_locks.get(name)
        if entry is None:
            entry = [asyncio.Lock(), 0]
            self._memory_locks[name] = entry
        entry[1] += 1
        lock = entry[0]
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout)
            except asyncio.TimeoutError as exc:
                raise LockTimeoutError(f"Timed out acquiring lock {name}") from exc
            try:
                yield
            finally:
                lock.release()
        finally:
            entry[1] -= 1
            # Drop idle locks so they are never reused from another event loop
            if entry[1] == 0 and self._memory_locks.get(name) is entry:
                del self._memory_locks[name]

    def held_lock_names(self) -> list[str]:
        """Names of in-memory locks currently held or awaited."""
        return sorted(self._memory_locks)


@lru_cache()
def get_lock_client() -> LockClient:
    """Get the process-wide lock client."""
    from backend.config import get_settings
    settings = get_settings()
    return LockClient(settings.redis_url or None)
