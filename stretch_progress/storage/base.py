"""
Persistent store contract

One UserProgress record per user plus an append-only activity history.
Records loaded through a store are migrated and self-healed before they
reach the engines.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from stretch_progress.models.progress import ActivityRecord, UserProgress

logger = logging.getLogger(__name__)


class ProgressStore(ABC):
    """
    Durable storage for one user's progress.

    Implementations must make save() atomic per call: concurrent readers
    see either the old or the new record, never a partial write.
    """

    user_id: str = "local"

    @abstractmethod
    async def load(self) -> UserProgress:
        """Return the stored record, or a default one if none exists"""

    @abstractmethod
    async def save(self, progress: UserProgress, expected_version: Optional[int] = None) -> UserProgress:
        """
        Persist progress

        Args:
            progress: Record to store
            expected_version: If given, the stored version must still equal it

        Returns:
            The stored record with its new version

        Raises:
            VersionConflictError: If expected_version no longer matches
            StoreUnavailableError: If the write failed
        """

    @abstractmethod
    async def load_activity_history(self) -> List[ActivityRecord]:
        """Return every recorded activity session, oldest first"""

    @abstractmethod
    async def append_activity(self, record: ActivityRecord) -> None:
        """Append one completed session to the history"""


def default_progress(user_id: str = "local") -> UserProgress:
    """Fresh record with the full reward catalog, all locked"""
    from stretch_progress.gamification.reward_system import initialize_rewards

    return UserProgress(user_id=user_id, rewards=initialize_rewards())


def migrate_user_progress(progress: UserProgress) -> bool:
    """
    Bring a loaded record up to the current shape

    - merges legacy reward ids into their current ids
    - adds catalog rewards the record is missing
    - keeps best_streak >= current_streak

    Returns:
        True if anything changed
    """
    from stretch_progress.gamification.reward_system import repair_rewards

    changed = repair_rewards(progress)

    stats = progress.statistics
    if stats.best_streak < stats.current_streak:
        stats.best_streak = stats.current_streak
        changed = True

    if changed:
        logger.info(f"Migrated progress record for user {progress.user_id}")
    return changed
