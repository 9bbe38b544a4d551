"""JSON file progress store

Layout under DATA_PATH:
    <user_id>/progress.json   one UserProgress record
    <user_id>/activity.json   list of ActivityRecord
"""
import asyncio
import json
import logging
import os
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from stretch_progress.config import DATA_PATH
from stretch_progress.exceptions import StoreUnavailableError, VersionConflictError
from stretch_progress.models.progress import ActivityRecord, UserProgress
from stretch_progress.storage.base import ProgressStore, default_progress, migrate_user_progress

logger = logging.getLogger(__name__)

PROGRESS_FILE = "progress.json"
ACTIVITY_FILE = "activity.json"


class JsonFileProgressStore(ProgressStore):
    """Store one user's progress as JSON files, written atomically"""

    def __init__(self, data_path: Path = DATA_PATH, user_id: str = "local"):
        self.data_path = Path(data_path)
        self.user_id = user_id
        self._lock = asyncio.Lock()

    def get_user_dir(self) -> Path:
        """Get user's data directory"""
        return self.data_path / self.user_id

    @property
    def progress_path(self) -> Path:
        return self.get_user_dir() / PROGRESS_FILE

    @property
    def activity_path(self) -> Path:
        return self.get_user_dir() / ACTIVITY_FILE

    async def load(self) -> UserProgress:
        async with self._lock:
            progress = self._read_progress()

        if progress is None:
            return default_progress(self.user_id)
        migrate_user_progress(progress)
        return progress

    async def save(self, progress: UserProgress, expected_version: Optional[int] = None) -> UserProgress:
        async with self._lock:
            current = self._read_progress()
            current_version = current.version if current else 0

            if expected_version is not None and expected_version != current_version:
                raise VersionConflictError(
                    expected_version=expected_version,
                    stored_version=current_version,
                    user_id=self.user_id,
                    operation="save",
                )

            stored = progress.model_copy(deep=True)
            stored.version = current_version + 1
            self._write_atomic(self.progress_path, stored.model_dump_json(indent=2))

        logger.debug(f"Saved progress for {self.user_id} at version {stored.version}")
        return stored

    async def load_activity_history(self) -> List[ActivityRecord]:
        async with self._lock:
            return self._read_history()

    async def append_activity(self, record: ActivityRecord) -> None:
        async with self._lock:
            history = self._read_history()
            history.append(record)
            payload = json.dumps([r.model_dump(mode="json") for r in history], indent=2)
            self._write_atomic(self.activity_path, payload)
        logger.info(f"Recorded {record.duration_minutes} min {record.area} session for {self.user_id}")

    # ==========================================
    # File helpers (call with the lock held)
    # ==========================================

    def _read_progress(self) -> Optional[UserProgress]:
        path = self.progress_path
        if not path.exists():
            return None
        try:
            raw = path.read_text()
        except OSError as e:
            raise StoreUnavailableError(
                f"Could not read {path}", user_id=self.user_id, operation="load", cause=e
            ) from e

        try:
            return UserProgress.model_validate_json(raw)
        except ValidationError as e:
            # Keep the broken file for inspection and start over
            backup = path.with_suffix(".json.corrupt")
            logger.error(f"Corrupted progress file {path}, moved to {backup}: {e}")
            os.replace(path, backup)
            return None

    def _read_history(self) -> List[ActivityRecord]:
        path = self.activity_path
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text())
        except OSError as e:
            raise StoreUnavailableError(
                f"Could not read {path}", user_id=self.user_id, operation="load_activity_history", cause=e
            ) from e
        except json.JSONDecodeError as e:
            logger.error(f"Corrupted activity file {path}: {e}")
            return []

        records = []
        for item in data:
            try:
                records.append(ActivityRecord.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping malformed activity record {item!r}: {e}")
        return records

    def _write_atomic(self, path: Path, content: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(path.suffix + ".tmp")
            tmp_path.write_text(content)
            os.replace(tmp_path, path)
        except OSError as e:
            raise StoreUnavailableError(
                f"Could not write {path}", user_id=self.user_id, operation="save", cause=e
            ) from e
