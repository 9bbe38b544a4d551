"""
Optimistic read-modify-write against a ProgressStore

Every write path goes through transactional_update():
1. load the latest stored record
2. apply the mutator to that fresh copy
3. save with the version that was read
4. on VersionConflictError, back off and start over from step 1

A mutator that raises InvalidOperationError aborts without saving.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional, Tuple, TypeVar, Union

from stretch_progress.config import STORE_MAX_RETRIES, STORE_TIMEOUT_SECONDS
from stretch_progress.exceptions import StoreError, StoreUnavailableError
from stretch_progress.models.progress import ActivityRecord, UserProgress
from stretch_progress.resilience.retry import retry_with_backoff
from stretch_progress.storage.base import ProgressStore, default_progress

logger = logging.getLogger(__name__)

T = TypeVar("T")

Mutator = Callable[[UserProgress], Union[T, Awaitable[T]]]


async def with_timeout(awaitable: Awaitable[T], timeout: float, operation: str) -> T:
    """
    Bound a store call

    Raises:
        StoreUnavailableError: If the call does not finish within timeout
    """
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as e:
        raise StoreUnavailableError(
            f"Store {operation} timed out after {timeout}s",
            operation=operation,
            cause=e,
        ) from e


async def transactional_update(
    store: ProgressStore,
    mutator: Mutator,
    reason: str = "update",
    max_retries: int = STORE_MAX_RETRIES,
    timeout: float = STORE_TIMEOUT_SECONDS
) -> Tuple[UserProgress, Any]:
    """
    Apply mutator to the latest stored progress and save it, retrying on conflict

    Args:
        store: Progress store
        mutator: Function (sync or async) that edits the record in place;
            its return value is passed back to the caller
        reason: Label used in log lines
        max_retries: Conflict retries before giving up
        timeout: Bound on each store call in seconds

    Returns:
        (saved progress, mutator result)

    Raises:
        InvalidOperationError: Raised by the mutator; nothing is saved
        VersionConflictError: Retries exhausted
        StoreUnavailableError: Store failed or timed out on every attempt
    """

    async def attempt() -> Tuple[UserProgress, Any]:
        progress = await with_timeout(store.load(), timeout, "load")
        read_version = progress.version

        result = mutator(progress)
        if inspect.isawaitable(result):
            result = await result

        saved = await with_timeout(
            store.save(progress, expected_version=read_version), timeout, "save"
        )
        logger.debug(f"[TX] {reason}: saved version {saved.version}")
        return saved, result

    attempt.__name__ = f"transactional_update[{reason}]"
    return await retry_with_backoff(attempt, max_retries=max_retries)


async def load_progress_safely(store: ProgressStore, timeout: float = STORE_TIMEOUT_SECONDS) -> UserProgress:
    """Load progress, falling back to a default record if the store fails"""
    try:
        return await with_timeout(store.load(), timeout, "load")
    except StoreError as e:
        logger.error(f"Falling back to default progress: {e}")
        return default_progress(getattr(store, "user_id", "local"))


async def load_history_safely(store: ProgressStore, timeout: float = STORE_TIMEOUT_SECONDS) -> List[ActivityRecord]:
    """Load activity history, falling back to an empty list if the store fails"""
    try:
        return await with_timeout(store.load_activity_history(), timeout, "load_activity_history")
    except StoreError as e:
        logger.error(f"Falling back to empty activity history: {e}")
        return []
