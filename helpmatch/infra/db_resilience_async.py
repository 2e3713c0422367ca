# helpmatch/infra/db_resilience_async.py
"""
Retry on transient asyncpg failures.

Two levels:
- ``safe_db_conn``: retries acquiring a connection; the block itself runs once
- ``retry_on_transient_error``: re-runs a whole repository call; use only on
  reads and on conditional updates that are safe to repeat
"""
from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from functools import wraps
from typing import Callable, Iterator

import asyncpg

from helpmatch.infra.db_async import db_conn
from helpmatch.infra.logging_config import get_logger
from helpmatch.infra.metrics import inc_counter

logger = get_logger(__name__)

_TRANSIENT_TYPES = (
    asyncpg.PostgresConnectionError,
    asyncpg.TooManyConnectionsError,
    asyncpg.DeadlockDetectedError,
    ConnectionError,
)

_TRANSIENT_MARKERS = (
    "connection",
    "timeout",
    "closed",
    "network",
    "deadlock",
    "too many connections",
)


def is_transient_error(exc: Exception) -> bool:
    """True for failures worth retrying: lost connections, pool exhaustion, deadlocks."""
    if isinstance(exc, _TRANSIENT_TYPES):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


def _backoff(retries: int, initial: float, factor: float, cap: float) -> Iterator[float]:
    delay = initial
    for _ in range(retries):
        yield delay
        delay = min(delay * factor, cap)


def retry_on_transient_error(
    max_retries: int = 3,
    initial_delay: float = 0.1,
    backoff_factor: float = 2.0,
    max_delay: float = 5.0,
):
    """
    Decorator: re-run an async repository method after a transient error.

    Example:
        @retry_on_transient_error(max_retries=2)
        async def find_in_postal_range(self, start, end): ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            delays = _backoff(max_retries, initial_delay, backoff_factor, max_delay)
            attempt = 0
            while True:
                attempt += 1
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    delay = next(delays, None) if is_transient_error(exc) else None
                    if delay is None:
                        if attempt > 1:
                            logger.error(f"{func.__name__} failed after {attempt} attempts: {exc}")
                        raise
                    inc_counter("db_transient_retries", operation=func.__name__)
                    logger.warning(
                        f"Transient error in {func.__name__} (attempt {attempt}/{max_retries + 1}): {exc}. "
                        f"Retrying in {delay:.2f}s"
                    )
                    await asyncio.sleep(delay)

        return wrapper
    return decorator


@asynccontextmanager
async def safe_db_conn(autocommit: bool = True, max_retries: int = 3):
    """
    ``db_conn`` with retries while acquiring the connection.

    Usage:
        async with safe_db_conn() as conn:
            await conn.fetch("SELECT * FROM help_offers WHERE postal_code = $1", code)

    Statements inside the block are not replayed.
    """
    delays = _backoff(max_retries, 0.1, 2.0, 5.0)
    async with AsyncExitStack() as stack:
        while True:
            try:
                conn = await stack.enter_async_context(db_conn(autocommit=autocommit))
                break
            except Exception as exc:
                delay = next(delays, None) if is_transient_error(exc) else None
                if delay is None:
                    raise
                inc_counter("db_transient_retries", operation="acquire")
                logger.warning(f"Transient error getting connection: {exc}. Retrying in {delay:.2f}s")
                await asyncio.sleep(delay)

        yield conn
