"""Persistent progress storage"""
from stretch_progress.storage.base import ProgressStore, default_progress, migrate_user_progress
from stretch_progress.storage.file_store import JsonFileProgressStore
from stretch_progress.storage.memory_store import InMemoryProgressStore
from stretch_progress.storage.transactions import (
    load_history_safely,
    load_progress_safely,
    transactional_update,
    with_timeout,
)

__all__ = [
    "ProgressStore",
    "InMemoryProgressStore",
    "JsonFileProgressStore",
    "default_progress",
    "migrate_user_progress",
    "transactional_update",
    "load_progress_safely",
    "load_history_safely",
    "with_timeout",
]
