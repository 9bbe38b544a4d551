"""
Streak Tracking System

A streak is the number of consecutive calendar days, ending today or
yesterday, covered by a completed routine or by a flex save (freeze).

Features:
- Idempotent day recording (same day twice counts once)
- Flex saves: spend a credit to cover a missed yesterday
- Two-day grace: a streak is only lost once today, yesterday and the
  day before all lack coverage
- Self-healing: the stored streak is reconciled with a recount of the
  activity and freeze dates
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Set
from datetime import date, datetime
import logging

from stretch_progress.config import STORE_TIMEOUT_SECONDS
from stretch_progress.exceptions import InvalidOperationError, StoreError
from stretch_progress.gamification.catalog import FLEX_SAVE_REWARD_ID
from stretch_progress.gamification.events import (
    EventBus,
    StreakBroken,
    StreakMaintained,
    StreakSaved,
    StreakUpdated,
)
from stretch_progress.gamification.reward_system import RewardManager, consume_use
from stretch_progress.models.progress import UserProgress
from stretch_progress.storage.base import ProgressStore
from stretch_progress.storage.transactions import (
    load_history_safely,
    load_progress_safely,
    transactional_update,
)
from stretch_progress.utils.datetime_helpers import days_ago, now_local, to_date_string, yesterday_of

logger = logging.getLogger(__name__)


def calculate_streak(routine_dates: Iterable[str], freeze_dates: Iterable[str], today: str) -> int:
    """
    Count consecutive covered days ending today or yesterday

    Algorithm:
    - covered = routine dates | freeze dates
    - start from the most recent covered day (a future day counts as today)
    - 0 if that day is neither today nor yesterday
    - otherwise walk back one day at a time until the first gap
    """
    covered = set(routine_dates) | set(freeze_dates)
    if not covered:
        return 0

    most_recent = min(max(covered), today)
    if most_recent not in (today, yesterday_of(today)):
        return 0

    streak = 1
    day = most_recent
    while True:
        day = yesterday_of(day)
        if day not in covered:
            break
        streak += 1
    return streak


def is_streak_broken(routine_dates: Iterable[str], freeze_dates: Iterable[str], today: str) -> bool:
    """True if today, yesterday and two days ago all lack coverage"""
    covered = set(routine_dates) | set(freeze_dates)
    window = (today, days_ago(today, 1), days_ago(today, 2))
    return not any(day in covered for day in window)


@dataclass
class StreakCache:
    """In-memory view of streak state, kept in step with every store write"""
    current_streak: int = 0
    routine_dates: Set[str] = field(default_factory=set)
    freeze_dates: Set[str] = field(default_factory=set)
    freezes_available: int = 0
    initialized: bool = False


class StreakTracker:
    """
    Maintains the consecutive-day streak for one user.

    Owns its StreakCache; compose one tracker per store (see ServiceContainer).
    """

    def __init__(
        self,
        store: ProgressStore,
        event_bus: Optional[EventBus] = None,
        reward_manager: Optional[RewardManager] = None,
        clock=now_local,
        timeout: float = STORE_TIMEOUT_SECONDS
    ):
        self.store = store
        self.events = event_bus or EventBus()
        self.clock = clock
        self.timeout = timeout
        self.reward_manager = reward_manager or RewardManager(store, clock=clock, timeout=timeout)
        self.cache = StreakCache()

    def _today(self) -> str:
        return to_date_string(self.clock())

    def _sync_freezes(self, progress: UserProgress) -> None:
        reward = progress.rewards.get(FLEX_SAVE_REWARD_ID)
        self.cache.freeze_dates = set(reward.applied_dates) if reward else set()
        self.cache.freezes_available = (reward.uses or 0) if reward else 0

    async def ensure_initialized(self) -> None:
        if not self.cache.initialized:
            await self.initialize()

    async def _fresh_routine_dates(self) -> Set[str]:
        """Cached routine days plus whatever the activity log holds now"""
        history = await load_history_safely(self.store, self.timeout)
        return self.cache.routine_dates | {to_date_string(r.date) for r in history}

    # ==========================================
    # Initialization & reconciliation
    # ==========================================

    async def initialize(self) -> StreakCache:
        """
        Load activity and freeze dates and reconcile the stored streak

        The stored value is corrected when the recount is higher, or when
        it differs by more than 2 days. A recount of 0 is left to
        validate_streak(), which owns the broken-streak reset.
        """
        progress = await load_progress_safely(self.store, self.timeout)
        history = await load_history_safely(self.store, self.timeout)

        self.cache = StreakCache(
            current_streak=progress.statistics.current_streak,
            routine_dates={to_date_string(r.date) for r in history},
            initialized=True,
        )
        self._sync_freezes(progress)

        today = self._today()
        stored = self.cache.current_streak
        calculated = calculate_streak(self.cache.routine_dates, self.cache.freeze_dates, today)

        if calculated > 0 and calculated != stored and (abs(calculated - stored) > 2 or calculated > stored):
            logger.info(f"Correcting stored streak for {progress.user_id}: {stored} -> {calculated}")
            await self.update_stored_streak(calculated)

        return self.cache

    async def validate_streak(self) -> Dict[str, any]:
        """
        Reconcile the stored streak with a full recount

        Returns:
            {'current_streak': int, 'corrected': bool, 'broken': bool}
        """
        await self.ensure_initialized()
        today = self._today()
        stored = self.cache.current_streak

        if is_streak_broken(self.cache.routine_dates, self.cache.freeze_dates, today):
            if stored > 0:
                logger.info(f"Streak of {stored} broken, resetting to 0")
                await self.update_stored_streak(0)
                self.events.emit(StreakBroken(current_streak=0, user_reset=False))
                self.events.emit(StreakUpdated())
            return {"current_streak": 0, "corrected": stored > 0, "broken": True}

        calculated = calculate_streak(self.cache.routine_dates, self.cache.freeze_dates, today)
        corrected = calculated > 0 and calculated != stored
        if corrected:
            logger.info(f"Streak recount differs from stored value: {stored} -> {calculated}")
            await self.update_stored_streak(calculated)
            self.events.emit(StreakUpdated())

        return {"current_streak": self.cache.current_streak, "corrected": corrected, "broken": False}

    async def update_stored_streak(self, streak: int) -> bool:
        """Persist streak as current_streak, raising best_streak if needed"""

        def mutate(progress: UserProgress):
            progress.statistics.current_streak = streak
            progress.statistics.best_streak = max(progress.statistics.best_streak, streak)

        try:
            await transactional_update(self.store, mutate, reason="update_stored_streak", timeout=self.timeout)
        except StoreError as e:
            logger.error(f"Could not store streak {streak}: {e}")
            return False

        self.cache.current_streak = streak
        return True

    async def reset_streak(self, user_reset: bool = True) -> bool:
        """Drop the streak to 0 and announce it"""
        saved = await self.update_stored_streak(0)
        if saved:
            self.events.emit(StreakBroken(current_streak=0, user_reset=user_reset))
            self.events.emit(StreakUpdated())
        return saved

    # ==========================================
    # Queries
    # ==========================================

    async def has_routine_today(self) -> bool:
        await self.ensure_initialized()
        return self._today() in self.cache.routine_dates

    async def has_routine_yesterday(self) -> bool:
        await self.ensure_initialized()
        return yesterday_of(self._today()) in self.cache.routine_dates

    async def has_freeze_yesterday(self) -> bool:
        await self.ensure_initialized()
        return yesterday_of(self._today()) in self.cache.freeze_dates

    async def is_broken(self) -> bool:
        """True once today, yesterday and two days ago are all uncovered"""
        await self.ensure_initialized()
        return is_streak_broken(self.cache.routine_dates, self.cache.freeze_dates, self._today())

    async def can_apply_freeze(self) -> bool:
        """
        Yesterday uncovered, a credit left and a streak worth protecting
        """
        await self.ensure_initialized()
        yesterday = yesterday_of(self._today())
        return (
            yesterday not in self.cache.routine_dates
            and yesterday not in self.cache.freeze_dates
            and self.cache.freezes_available > 0
            and self.cache.current_streak > 0
        )

    async def get_streak_status(self) -> Dict[str, any]:
        """
        Returns:
            {
                'current_streak': int,
                'maintained_today': bool,
                'can_freeze': bool,
                'freezes_available': int
            }
        """
        await self.ensure_initialized()
        today = self._today()
        yesterday = yesterday_of(today)
        has_yesterday = yesterday in self.cache.routine_dates or yesterday in self.cache.freeze_dates

        return {
            "current_streak": self.cache.current_streak,
            "maintained_today": today in self.cache.routine_dates or has_yesterday,
            "can_freeze": await self.can_apply_freeze(),
            "freezes_available": self.cache.freezes_available,
        }

    # ==========================================
    # Mutations
    # ==========================================

    async def record_completion(self, day: Optional[date | datetime | str] = None) -> Dict[str, any]:
        """
        Record a completed routine for a calendar day (default today)

        Logic:
        - Day already recorded: no change
        - Day before it covered (routine or freeze): streak + 1
        - Streak was running but the day before is uncovered: restart at 1
        - No streak: start at 1

        Returns:
            {'success': bool, 'current_streak': int, 'incremented': bool}
        """
        await self.ensure_initialized()
        day_str = to_date_string(day) if day is not None else self._today()

        if day_str in self.cache.routine_dates:
            return {"success": True, "current_streak": self.cache.current_streak, "incremented": False}

        previous_day = yesterday_of(day_str)
        # Other writers may have logged the previous day since initialize()
        routine_dates = await self._fresh_routine_dates()

        def mutate(progress: UserProgress):
            reward = progress.rewards.get(FLEX_SAVE_REWARD_ID)
            freeze_dates = set(reward.applied_dates) if reward else set()
            covered = previous_day in routine_dates or previous_day in freeze_dates
            streak = progress.statistics.current_streak

            if covered:
                new_streak, incremented = streak + 1, True
            elif streak > 0:
                new_streak, incremented = 1, False
            else:
                new_streak, incremented = 1, True

            progress.statistics.current_streak = new_streak
            progress.statistics.best_streak = max(progress.statistics.best_streak, new_streak)
            return new_streak, incremented

        try:
            saved, (new_streak, incremented) = await transactional_update(
                self.store, mutate, reason="record_completion", timeout=self.timeout
            )
        except StoreError as e:
            logger.error(f"Could not record completion for {day_str}: {e}")
            return {"success": False, "current_streak": self.cache.current_streak, "incremented": False}

        self.cache.routine_dates.add(day_str)
        if previous_day in routine_dates:
            self.cache.routine_dates.add(previous_day)
        self.cache.current_streak = new_streak
        self._sync_freezes(saved)

        if incremented:
            logger.info(f"Streak maintained for {saved.user_id}: day {new_streak}")
            self.events.emit(StreakMaintained(current_streak=new_streak, increment=True))
        else:
            logger.info(f"Streak restarted for {saved.user_id} on {day_str}")
        self.events.emit(StreakUpdated())

        return {"success": True, "current_streak": new_streak, "incremented": incremented}

    async def apply_freeze(self) -> Dict[str, any]:
        """
        Spend one flex save to cover yesterday

        The streak is recounted over activity + freeze dates, so covering
        yesterday can reconnect the run that ended the day before.

        Returns:
            {
                'success': bool,
                'current_streak': int,
                'remaining_freezes': int,
                'applied_date': str (on success),
                'message': str (on failure)
            }
        """
        await self.ensure_initialized()
        now = self.clock()
        today = to_date_string(now)
        yesterday = yesterday_of(today)
        routine_dates = await self._fresh_routine_dates()

        def mutate(progress: UserProgress):
            reward = progress.rewards.get(FLEX_SAVE_REWARD_ID)
            if yesterday in routine_dates:
                raise InvalidOperationError("Yesterday already has a completed routine", operation="apply_freeze")
            if reward is not None and yesterday in reward.applied_dates:
                raise InvalidOperationError("A flex save already covers yesterday", operation="apply_freeze")
            if progress.statistics.current_streak <= 0:
                raise InvalidOperationError("There is no streak to protect", operation="apply_freeze")
            if reward is None or not consume_use(reward, now, yesterday):
                raise InvalidOperationError("No flex saves available", operation="apply_freeze")

            new_streak = calculate_streak(routine_dates, reward.applied_dates, today)
            progress.statistics.current_streak = new_streak
            progress.statistics.best_streak = max(progress.statistics.best_streak, new_streak)
            return new_streak, reward.uses

        try:
            saved, (new_streak, remaining) = await transactional_update(
                self.store, mutate, reason="apply_freeze", timeout=self.timeout
            )
        except (InvalidOperationError, StoreError) as e:
            return {
                "success": False,
                "current_streak": self.cache.current_streak,
                "remaining_freezes": self.cache.freezes_available,
                "message": e.user_message,
            }

        self.cache.current_streak = new_streak
        self._sync_freezes(saved)
        logger.info(f"Flex save applied for {yesterday}: streak {new_streak}, {remaining} left")

        self.events.emit(StreakSaved(current_streak=new_streak, freezes_remaining=remaining))
        self.events.emit(StreakUpdated())

        return {
            "success": True,
            "current_streak": new_streak,
            "remaining_freezes": remaining,
            "applied_date": yesterday,
        }

    async def refill_freezes(self) -> bool:
        """Monthly flex-save refill; True if credits were added"""
        await self.ensure_initialized()
        refilled = await self.reward_manager.refill(FLEX_SAVE_REWARD_ID)
        if refilled:
            self.cache.freezes_available = await self.reward_manager.get_uses(FLEX_SAVE_REWARD_ID)
            self.events.emit(StreakUpdated())
        return refilled
