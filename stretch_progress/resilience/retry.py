"""Retry logic with exponential backoff and jitter

Implements the retry loop behind every version-checked write:
1. Only retries transient store errors (version conflicts, unavailable store)
2. Uses exponential backoff with jitter so racing writers spread out
3. Gives up after max retries to avoid infinite loops
"""

import asyncio
import random
import logging
from typing import Callable, Any, Optional, TypeVar

from stretch_progress.config import STORE_MAX_RETRIES, STORE_RETRY_BASE_DELAY
from stretch_progress.exceptions import StoreUnavailableError, VersionConflictError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Retry configuration
MAX_RETRIES = STORE_MAX_RETRIES
BASE_DELAY = STORE_RETRY_BASE_DELAY  # seconds
MAX_DELAY = 2.0  # seconds
JITTER = 0.1  # 10% random jitter


def is_retryable_error(exc: Exception) -> bool:
    """
    Determine if error is transient and should be retried.

    Retryable errors:
    - VersionConflictError (another writer saved first; re-read and re-apply)
    - StoreUnavailableError (store call failed or timed out)

    Everything else (invalid operations, programming errors) is raised
    immediately.
    """
    return isinstance(exc, (VersionConflictError, StoreUnavailableError))


def calculate_backoff(attempt: int, base_delay: Optional[float] = None) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Formula: delay = min(base_delay * (2 ** attempt), MAX_DELAY) + jitter
    Jitter is random value between -10% and +10% of delay

    Args:
        attempt: The retry attempt number (0-indexed)
        base_delay: First delay in seconds (default: BASE_DELAY)

    Returns:
        Delay in seconds
    """
    if base_delay is None:
        base_delay = BASE_DELAY

    delay = min(base_delay * (2 ** attempt), MAX_DELAY)

    jitter_amount = random.uniform(-JITTER * delay, JITTER * delay)
    final_delay = delay + jitter_amount

    return max(final_delay, 0.0)


async def retry_with_backoff(
    func: Callable[..., T],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    base_delay: Optional[float] = None,
    **kwargs: Any
) -> T:
    """
    Retry async function with exponential backoff.

    Only retries transient store errors. Gives up after max_retries retries.

    Args:
        func: Async function to retry
        max_retries: Maximum number of retry attempts (default: STORE_MAX_RETRIES)
        base_delay: First backoff delay in seconds
        *args, **kwargs: Arguments to pass to func

    Returns:
        Result from func

    Raises:
        Last exception if all retries exhausted or non-retryable error

    Example:
        progress = await retry_with_backoff(apply_and_save, store, max_retries=3)
    """
    name = getattr(func, "__name__", repr(func))

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)

        except Exception as e:
            if not is_retryable_error(e):
                raise

            if attempt == max_retries:
                logger.error(f"[RETRY] All {max_retries} retries exhausted for {name}")
                raise

            backoff = calculate_backoff(attempt, base_delay)

            logger.info(
                f"[RETRY] Attempt {attempt + 1}/{max_retries} for {name} "
                f"after {backoff:.2f}s (error: {type(e).__name__})"
            )

            await asyncio.sleep(backoff)

    raise RuntimeError("Retry logic failed unexpectedly")

