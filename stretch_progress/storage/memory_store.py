"""In-memory progress store

Holds serialized snapshots so callers never share mutable state with the
store. Used by tests and by hosts that persist elsewhere.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from stretch_progress.exceptions import VersionConflictError
from stretch_progress.models.progress import ActivityRecord, UserProgress
from stretch_progress.storage.base import ProgressStore, default_progress, migrate_user_progress

logger = logging.getLogger(__name__)


class InMemoryProgressStore(ProgressStore):
    """Process-local store with version-checked saves"""

    def __init__(
        self,
        user_id: str = "local",
        progress: Optional[UserProgress] = None,
        history: Optional[List[ActivityRecord]] = None
    ):
        self.user_id = user_id
        self._record: Optional[Dict[str, Any]] = None
        self._history: List[Dict[str, Any]] = []
        self._lock = asyncio.Lock()

        if progress is not None:
            self._record = progress.model_dump(mode="json")
        for record in history or []:
            self._history.append(record.model_dump(mode="json"))

    @property
    def stored_version(self) -> int:
        return self._record["version"] if self._record else 0

    async def load(self) -> UserProgress:
        async with self._lock:
            if self._record is None:
                return default_progress(self.user_id)
            progress = UserProgress.model_validate(self._record)

        migrate_user_progress(progress)
        return progress

    async def save(self, progress: UserProgress, expected_version: Optional[int] = None) -> UserProgress:
        async with self._lock:
            current = self.stored_version
            if expected_version is not None and expected_version != current:
                raise VersionConflictError(
                    expected_version=expected_version,
                    stored_version=current,
                    user_id=self.user_id,
                    operation="save",
                )

            stored = progress.model_copy(deep=True)
            stored.version = current + 1
            self._record = stored.model_dump(mode="json")

        logger.debug(f"Saved progress for {self.user_id} at version {stored.version}")
        return stored

    async def load_activity_history(self) -> List[ActivityRecord]:
        async with self._lock:
            return [ActivityRecord.model_validate(r) for r in self._history]

    async def append_activity(self, record: ActivityRecord) -> None:
        async with self._lock:
            self._history.append(record.model_dump(mode="json"))
