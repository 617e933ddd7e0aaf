# ABOUTME: Ledger store management with caching and retry logic
# ABOUTME: Provides the shared store factory and auth/conflict retry decorators

import asyncio
import functools
import logging
from typing import Any, Callable, TypeVar

from clinicledger.exceptions import AuthenticationError, ConcurrentUpdateError, StoreError
from clinicledger.supabase import SupabaseLedgerStore

logger = logging.getLogger(__name__)

# Module-level store cache with lock for thread safety
_store: SupabaseLedgerStore | None = None
_store_lock = asyncio.Lock()

F = TypeVar("F", bound=Callable[..., Any])


async def get_store() -> SupabaseLedgerStore:
    """
    Get or create the shared Supabase ledger store.

    Creates the store on first call from environment credentials and
    returns the cached instance afterwards.
    """
    global _store

    async with _store_lock:
        if _store is None:
            logger.info("Creating new Supabase ledger store")
            _store = SupabaseLedgerStore()
        return _store


async def invalidate_store() -> None:
    """Drop the cached store (e.g., after rotated credentials)."""
    global _store

    async with _store_lock:
        if _store:
            await _store.close()
            _store = None
        logger.info("Invalidated Supabase ledger store")


def _is_auth_error(exc: Exception) -> bool:
    """
    Check if an exception indicates an authentication failure.

    Args:
        exc: The exception to check

    Returns:
        True if this looks like an auth error
    """
    if isinstance(exc, AuthenticationError):
        return True
    if isinstance(exc, StoreError) and exc.status_code is not None:
        return exc.status_code in (401, 403)

    error_str = str(exc).lower()
    return any(
        indicator in error_str
        for indicator in ["401", "403", "unauthorized", "jwt expired", "invalid api key"]
    )


def with_auth_retry(func: F) -> F:
    """
    Decorator that retries on authentication failures.

    If a function fails with an auth error, this will:
    1. Invalidate the cached store
    2. Retry the function once with a fresh store

    Usage:
        @with_auth_retry
        async def my_tool_function(...):
            store = await get_store()
            # ... use store
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)
        except Exception as exc:
            if _is_auth_error(exc):
                logger.warning(f"Auth error in {func.__name__}, retrying with fresh store")
                await invalidate_store()
                return await func(*args, **kwargs)
            raise

    return wrapper  # type: ignore


def retry_on_conflict(attempts: int) -> Callable[[F], F]:
    """
    Decorator that re-runs an optimistic update when it loses a race.

    The wrapped coroutine signals a lost race by raising
    ConcurrentUpdateError; after `attempts` tries the error propagates.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except ConcurrentUpdateError:
                    if attempt == attempts:
                        logger.error(f"{func.__name__} lost {attempts} races in a row, giving up")
                        raise
                    logger.warning(f"Conflict in {func.__name__}, retrying ({attempt}/{attempts})")

        return wrapper  # type: ignore

    return decorator
