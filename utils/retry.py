"""Retry decorator for Canvas requests that may fail transiently."""

import asyncio
import random
from functools import wraps
from typing import Any, Awaitable, Callable, Iterator, Optional, Tuple, Type, TypeVar

import config
from utils.logger import get_logger

logger = get_logger()

F = TypeVar('F', bound=Callable[..., Awaitable[Any]])


def backoff_delays(initial_delay: float, backoff_factor: float, jitter: float) -> Iterator[float]:
    """Yields an endless series of exponentially growing, jittered waits."""
    delay = initial_delay
    while True:
        yield max(0.0, delay + delay * jitter * random.uniform(-1, 1))
        delay *= backoff_factor


def retry_on_exception(
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    jitter: float = 0.1,
    should_retry: Optional[Callable[[Exception], bool]] = None,
) -> Callable[[F], F]:
    """Retries a coroutine function with exponential backoff.

    Args:
        exceptions: Exception types that may trigger another attempt.
        max_attempts: Total number of attempts, the first one included.
        initial_delay: Seconds to wait before the second attempt.
        backoff_factor: Multiplier applied to the wait after every retry.
        jitter: Relative random spread of each wait.
        should_retry: Narrows `exceptions` further; a caught exception it
            rejects propagates immediately.

    Returns:
        A decorator for `async def` functions.
    """
    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            delays = backoff_delays(initial_delay, backoff_factor, jitter)
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if should_retry is not None and not should_retry(e):
                        raise
                    if attempt == max_attempts:
                        logger.error(
                            f"{func.__name__} gave up after {max_attempts} attempts: {type(e).__name__}: {e}",
                            exc_info=config.DEBUG
                        )
                        raise
                    wait_time = next(delays)
                    logger.warning(
                        f"{func.__name__} attempt {attempt}/{max_attempts} failed ({type(e).__name__}: {e}), "
                        f"next try in {wait_time:.2f}s"
                    )
                    await asyncio.sleep(wait_time)
            raise ValueError(f"max_attempts must be positive, got {max_attempts}")

        return wrapper # type: ignore
    return decorator
