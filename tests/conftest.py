"""Global test fixtures and utilities for stretch-progress tests"""
import random
import pytest
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from stretch_progress.gamification.catalog import FLEX_SAVE_REWARD_ID
from stretch_progress.gamification.events import EventBus
from stretch_progress.models.progress import ActivityRecord, UserProgress
from stretch_progress.storage.base import default_progress
from stretch_progress.storage.memory_store import InMemoryProgressStore
from stretch_progress.utils import datetime_helpers


# ============================================================================
# Clock Fixtures
# ============================================================================

class FixedClock:
    """Callable clock that only moves when a test moves it"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def utc(year: int, month: int, day: int, hour: int = 10, minute: int = 0) -> datetime:
    """Aware UTC datetime shorthand"""
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def utc_calendar(monkeypatch):
    """Evaluate calendar days in UTC regardless of the environment"""
    monkeypatch.setattr(datetime_helpers, "TIMEZONE", "UTC")


@pytest.fixture
def clock():
    """Clock fixed at Wednesday 2024-01-03 10:00 UTC"""
    return FixedClock(utc(2024, 1, 3))


@pytest.fixture
def rng():
    """Seeded random source for template selection"""
    return random.Random(42)


# ============================================================================
# Store & Event Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def store():
    """Empty in-memory store"""
    return InMemoryProgressStore(user_id="test_user")


def sessions(*days: str, minutes: int = 5, area: str = "neck", hour: int = 9) -> List[ActivityRecord]:
    """One activity record per YYYY-MM-DD day"""
    return [
        ActivityRecord(
            date=datetime.fromisoformat(f"{day}T{hour:02d}:00:00+00:00"),
            duration_minutes=minutes,
            area=area,
        )
        for day in days
    ]


def make_progress(
    current_streak: int = 0,
    level: int = 1,
    total_xp: int = 0,
    flex_uses: Optional[int] = None,
    freeze_dates: Optional[List[str]] = None,
    last_refill: Optional[datetime] = None
) -> UserProgress:
    """
    Default record with streak/level/flex-save state filled in

    flex_uses=None leaves the flex_saves reward locked.
    """
    progress = default_progress("test_user")
    progress.statistics.current_streak = current_streak
    progress.statistics.best_streak = current_streak
    progress.level = level
    progress.total_xp = total_xp

    reward = progress.rewards[FLEX_SAVE_REWARD_ID]
    if flex_uses is not None:
        reward.unlocked = True
        reward.uses = flex_uses
        reward.last_refill = last_refill
    reward.applied_dates = list(freeze_dates or [])
    return progress


def make_store(
    progress: Optional[UserProgress] = None,
    history: Optional[List[ActivityRecord]] = None
) -> InMemoryProgressStore:
    return InMemoryProgressStore(user_id="test_user", progress=progress, history=history)


# ============================================================================
# Factory Fixtures
# ============================================================================

@pytest.fixture
def progress_factory():
    """make_progress() as a fixture"""
    return make_progress


@pytest.fixture
def store_factory():
    """make_store() as a fixture"""
    return make_store


@pytest.fixture
def sessions_factory():
    """sessions() as a fixture"""
    return sessions
