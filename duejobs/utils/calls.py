import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from duejobs.domain.errors import StoreUnavailableError
from duejobs.domain.retry import calculate_backoff

logger = logging.getLogger(__name__)

T = TypeVar("T")

async def bounded_call(fn: Callable[..., Awaitable[T]], *args: Any, timeout: float, op: str = "", **kwargs: Any) -> T:
    """
    Runs one store call under a per-call timeout.
    A timeout is reported as StoreUnavailableError like any other transient store failure.
    """
    try:
        return await asyncio.wait_for(fn(*args, **kwargs), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise StoreUnavailableError(f"{op or getattr(fn, '__name__', 'store call')} timed out after {timeout}s") from e

async def call_store(
    fn: Callable[..., Awaitable[T]],
    *args: Any,
    timeout: float,
    max_attempts: int = 3,
    base_delay_seconds: float = 0.1,
    max_delay_seconds: float = 2.0,
    **kwargs: Any
) -> T:
    """
    Retries a store call on StoreUnavailableError with exponential backoff.
    Re-raises the last StoreUnavailableError once `max_attempts` are used up.

    Only used for reads and conditional writes, which are safe to repeat.
    """
    op = getattr(fn, "__name__", "store call")
    attempt = 0
    while True:
        attempt += 1
        try:
            return await bounded_call(fn, *args, timeout=timeout, op=op, **kwargs)
        except StoreUnavailableError as e:
            if attempt >= max_attempts:
                logger.error(f"Store call {op} failed after {attempt} attempts: {e}")
                raise
            delay = calculate_backoff(attempt, base_delay_seconds, max_delay_seconds)
            logger.warning(f"Store call {op} unavailable (attempt {attempt}/{max_attempts}), retrying in {delay:.2f}s")
            await asyncio.sleep(delay)
