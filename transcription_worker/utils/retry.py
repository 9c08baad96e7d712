"""Retry utility with exponential backoff.

Implements the retry_with_backoff decorator used by the provider client
and the result emitter. Supports a delay cap, proportional jitter, and
transient vs permanent failure classification via retryable_exceptions.
"""

import asyncio
import logging
import random
from collections.abc import Callable
from functools import wraps
from typing import Any

logger = logging.getLogger(__name__)


def compute_backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float | None = None,
    jitter: float = 0.0,
) -> float:
    """Return the delay before retry number ``attempt + 1``.

    Delay follows base_delay * 2^attempt, capped at max_delay, then scaled
    by a random factor in [1 - jitter, 1 + jitter].
    """
    delay = base_delay * (2**attempt)
    if max_delay is not None:
        delay = min(delay, max_delay)
    if jitter:
        delay *= random.uniform(1.0 - jitter, 1.0 + jitter)
    return delay


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float | None = None,
    jitter: float = 0.0,
    retryable_exceptions: tuple[type[Exception], ...] | None = None,
) -> Callable:
    """Decorator for retrying async functions with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts after the first call
            (default 3, i.e. up to 4 calls).
        base_delay: Base delay in seconds before first retry (default 1.0).
        max_delay: Upper bound on the computed delay, before jitter.
        jitter: Fraction of the delay applied as random +/- noise
            (0.5 means +/-50%).
        retryable_exceptions: Tuple of exception types eligible for retry.
            If None, all exceptions are retried.
            Non-retryable exceptions are re-raised immediately with
            _retry_count attached.

    Returns:
        Decorator that wraps an async function with retry logic.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            last_error: Exception | None = None
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    last_error = exc
                    # Permanent failure: re-raise immediately
                    if retryable_exceptions is not None and not isinstance(
                        exc, retryable_exceptions
                    ):
                        exc._retry_count = attempt  # type: ignore[attr-defined]
                        raise
                    if attempt < max_retries:
                        delay = compute_backoff_delay(
                            attempt, base_delay, max_delay, jitter
                        )
                        logger.warning(
                            "Retry %d/%d for %s after %.1fs: %s",
                            attempt + 1,
                            max_retries,
                            func.__name__,
                            delay,
                            exc,
                        )
                        await asyncio.sleep(delay)
            # Exhausted all retries: attach retry count before raising
            last_error._retry_count = max_retries  # type: ignore[union-attr]
            raise last_error  # type: ignore[misc]

        return wrapper

    return decorator
