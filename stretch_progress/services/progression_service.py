"""
ProgressionService - Progression Business Logic

Runs the full flow for a logged stretching session:
1. append the session to the activity history
2. update aggregate statistics
3. record the streak day
4. recompute challenges (may emit ChallengeCompleted)
5. opportunistic reward unlocks and flex-save refill
"""

import logging
from typing import Any, Dict

from stretch_progress.config import STORE_TIMEOUT_SECONDS
from stretch_progress.exceptions import InvalidOperationError, StoreError
from stretch_progress.gamification.catalog import DARK_THEME_REWARD_ID
from stretch_progress.gamification.challenges import ChallengeEngine
from stretch_progress.gamification.reward_system import RewardManager
from stretch_progress.gamification.streak_system import StreakTracker
from stretch_progress.gamification.xp_system import get_level_info
from stretch_progress.models.progress import ActivityRecord, UserProgress
from stretch_progress.storage.base import ProgressStore
from stretch_progress.storage.transactions import (
    load_progress_safely,
    transactional_update,
    with_timeout,
)
from stretch_progress.utils.datetime_helpers import now_local, to_date_string

logger = logging.getLogger(__name__)

THEMES = ("light", "dark")


class ProgressionService:
    """
    Service for the session-to-progress flow.

    Responsibilities:
    - Statistics bookkeeping for logged sessions
    - Ordering streak, challenge and reward updates
    - Startup reconciliation
    - Status snapshot for display
    """

    def __init__(
        self,
        store: ProgressStore,
        streak_tracker: StreakTracker,
        challenge_engine: ChallengeEngine,
        reward_manager: RewardManager,
        clock=now_local,
        timeout: float = STORE_TIMEOUT_SECONDS
    ):
        self.store = store
        self.streak_tracker = streak_tracker
        self.challenge_engine = challenge_engine
        self.reward_manager = reward_manager
        self.clock = clock
        self.timeout = timeout
        logger.debug("ProgressionService initialized")

    async def startup(self) -> Dict[str, Any]:
        """
        Reconcile persisted state when the app opens

        Returns:
            {
                'current_streak': int,
                'streak_broken': bool,
                'flex_saves_refilled': bool,
                'challenges': {'expired': int, 'removed': int, 'added': int}
            }
        """
        await self.reward_manager.repair()
        await self.streak_tracker.initialize()
        validation = await self.streak_tracker.validate_streak()
        refilled = await self.streak_tracker.refill_freezes()
        refresh = await self.challenge_engine.refresh_challenges()

        logger.info(
            f"Startup complete: streak {validation['current_streak']}, "
            f"{refresh.get('added', 0)} challenges added"
        )
        return {
            "current_streak": validation["current_streak"],
            "streak_broken": validation["broken"],
            "flex_saves_refilled": refilled,
            "challenges": {k: refresh.get(k, 0) for k in ("expired", "removed", "added")},
        }

    async def record_session(self, record: ActivityRecord) -> Dict[str, Any]:
        """
        Log one completed stretching session

        Returns:
            {
                'success': bool,
                'current_streak': int,
                'streak_incremented': bool,
                'completed_challenges': [challenge ids],
                'unlocked_rewards': [reward ids],
                'flex_saves_refilled': bool,
                'level': int,
                'total_xp': int,
                'message': str (on failure)
            }
        """
        now = self.clock()

        # Load the streak cache before the session lands in the history
        await self.streak_tracker.ensure_initialized()

        try:
            await with_timeout(self.store.append_activity(record), self.timeout, "append_activity")
        except StoreError as e:
            logger.error(f"Could not record session: {e}")
            return {"success": False, "message": e.user_message}

        def mutate(progress: UserProgress):
            stats = progress.statistics
            stats.total_routines += 1
            stats.total_minutes += record.duration_minutes
            if record.area not in stats.unique_areas:
                stats.unique_areas.append(record.area)
            stats.routines_by_area[record.area] = stats.routines_by_area.get(record.area, 0) + 1
            stats.last_updated = now

        try:
            await transactional_update(self.store, mutate, reason="record_session", timeout=self.timeout)
        except StoreError as e:
            logger.error(f"Statistics update failed for session on {to_date_string(record.date)}: {e}")

        streak = await self.streak_tracker.record_completion(record.date)
        completed = await self.challenge_engine.update_user_challenges()
        rewards = await self.reward_manager.update_rewards()
        refilled = await self.streak_tracker.refill_freezes()

        progress = await load_progress_safely(self.store, self.timeout)
        logger.info(
            f"Session recorded: {record.duration_minutes} min {record.area}, "
            f"streak {streak['current_streak']}, {len(completed)} challenges completed"
        )

        return {
            "success": True,
            "current_streak": streak["current_streak"],
            "streak_incremented": streak["incremented"],
            "completed_challenges": [c.id for c in completed],
            "unlocked_rewards": rewards.get("unlocked", []),
            "flex_saves_refilled": refilled,
            "level": progress.level,
            "total_xp": progress.total_xp,
        }

    async def claim_challenge(self, challenge_id: str) -> Dict[str, Any]:
        """Claim a challenge; a level-up immediately unlocks its rewards"""
        result = await self.challenge_engine.claim_challenge(challenge_id)
        result["unlocked_rewards"] = []

        if result["success"] and result["leveled_up"]:
            rewards = await self.reward_manager.update_rewards()
            result["unlocked_rewards"] = rewards.get("unlocked", [])

        return result

    async def apply_freeze(self) -> Dict[str, Any]:
        """Spend a flex save on yesterday and refresh streak challenges"""
        result = await self.streak_tracker.apply_freeze()
        if result["success"]:
            await self.challenge_engine.update_user_challenges()
        return result

    async def set_theme(self, theme: str) -> Dict[str, Any]:
        """Change the theme setting; dark requires the dark_theme reward"""

        def mutate(progress: UserProgress):
            if theme not in THEMES:
                raise InvalidOperationError(f"Unknown theme '{theme}'", operation="set_theme")
            reward = progress.rewards.get(DARK_THEME_REWARD_ID)
            if theme == "dark" and not (reward and reward.unlocked):
                raise InvalidOperationError("Dark theme is not unlocked yet", operation="set_theme")
            progress.settings["theme"] = theme

        try:
            await transactional_update(self.store, mutate, reason="set_theme", timeout=self.timeout)
        except (InvalidOperationError, StoreError) as e:
            return {"success": False, "message": e.user_message}

        return {"success": True, "message": f"Theme set to {theme}"}

    async def status(self) -> Dict[str, Any]:
        """Snapshot of level, streak, challenges and rewards for display"""
        progress = await load_progress_safely(self.store, self.timeout)
        active = await self.challenge_engine.get_active_challenges()
        claimable = await self.challenge_engine.get_claimable_challenges()

        return {
            "level": get_level_info(progress),
            "streak": await self.streak_tracker.get_streak_status(),
            "best_streak": progress.statistics.best_streak,
            "total_routines": progress.statistics.total_routines,
            "total_minutes": progress.statistics.total_minutes,
            "active_challenges": {
                category: [c.model_dump(mode="json") for c in challenges]
                for category, challenges in active.items()
            },
            "claimable_challenges": [c.model_dump(mode="json") for c in claimable],
            "unlocked_rewards": [r.id for r in await self.reward_manager.get_unlocked_rewards()],
            "theme": progress.settings.get("theme", "light"),
        }
