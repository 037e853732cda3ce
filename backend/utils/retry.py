"""Bounded retry with exponential backoff for transient backend failures."""
import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from backend.utils.exceptions import TransientBackendError
from backend.utils.lock_client import LockTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (
    OperationalError,
    DBAPIError,
    LockTimeoutError,
    ConnectionError,
    asyncio.TimeoutError,
)


def is_transient(exc: BaseException) -> bool:
    """Return True for failures worth retrying."""
    if isinstance(exc, OperationalError):
        return True
    if isinstance(exc, DBAPIError):
        return bool(exc.connection_invalidated)
    return isinstance(exc, (LockTimeoutError, ConnectionError, asyncio.TimeoutError))


async def with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 0.2,
    max_delay: float = 2.0,
    jitter_ratio: float = 0.1,
    retry_on: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS,
    should_retry: Optional[Callable[[BaseException], bool]] = is_transient,
    on_retry: Optional[Callable[[int, BaseException, float], Awaitable[None] | None]] = None,
) -> T:
    """
    Exponential backoff with jitter around an async operation.
    - retry_on: which exception types to retry
    - should_retry: optional predicate for finer control
    - on_retry: callback (attempt_idx, exc, sleep_seconds), e.g. a session rollback

    Raises TransientBackendError once the attempts are exhausted; anything
    not deemed transient propagates unchanged on the first failure.
    """
    last_exc: BaseException | None = None
    for i in range(attempts):
        try:
            return await fn()
        except retry_on as e:
            if should_retry and not should_retry(e):
                raise
            last_exc = e
            if i == attempts - 1:
                break
            sleep = min(max_delay, base_delay * (2 ** i))
            # jitter ~ up to +/-jitter_ratio
            sleep *= (1.0 + random.uniform(-jitter_ratio, jitter_ratio))
            logger.warning(f"Transient backend failure (attempt {i + 1}/{attempts}), retrying in {sleep:.2f}s: {e}")
            if on_retry:
                result = on_retry(i + 1, e, sleep)
                if asyncio.iscoroutine(result):
                    await result
            await asyncio.sleep(max(0.0, sleep))
    assert last_exc is not None
    logger.error(f"Giving up after {attempts} attempts: {last_exc}")
    raise TransientBackendError() from last_exc


async def call_with_retry(db, fn: Callable[[], Awaitable[T]]) -> T:
    """Run a service call with the configured backoff, rolling the session back between attempts."""
    from backend.config import get_settings
    settings = get_settings()

    async def _rollback(attempt: int, exc: BaseException, sleep: float) -> None:
        await db.rollback()

    return await with_backoff(
        fn,
        attempts=settings.backend_retry_attempts,
        base_delay=settings.backend_retry_base_delay,
        max_delay=settings.backend_retry_max_delay,
        on_retry=_rollback,
    )
