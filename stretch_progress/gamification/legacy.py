"""
Backward-compatible streak and flex-save API

Older callers use these names and result shapes. Each function is a thin
wrapper over StreakTracker / RewardManager and carries no logic of its own.
"""

import logging
from enum import Enum
from typing import Dict

from stretch_progress.gamification.catalog import FLEX_SAVE_REWARD_ID
from stretch_progress.gamification.reward_system import RewardManager
from stretch_progress.gamification.streak_system import StreakTracker
from stretch_progress.utils.datetime_helpers import to_date_string, yesterday_of

logger = logging.getLogger(__name__)


class StreakState(str, Enum):
    """Coarse streak state reported by the old API"""
    ACTIVE = "ACTIVE"
    FROZEN = "FROZEN"
    BROKEN = "BROKEN"


async def check_streak_status(tracker: StreakTracker) -> Dict[str, any]:
    """
    Old-style status check (reconciles the streak first)

    Returns:
        {
            'current_streak': int,
            'streak_broken': bool,
            'can_save_yesterday_streak': bool,
            'freezes_available': int,
            'has_today_activity': bool,
            'streak_state': StreakState
        }
    """
    validation = await tracker.validate_streak()
    status = await tracker.get_streak_status()

    if status["current_streak"] > 0:
        state = StreakState.FROZEN if await tracker.has_freeze_yesterday() else StreakState.ACTIVE
    else:
        state = StreakState.BROKEN

    return {
        "current_streak": status["current_streak"],
        "streak_broken": validation["broken"],
        "can_save_yesterday_streak": status["can_freeze"],
        "freezes_available": status["freezes_available"],
        "has_today_activity": await tracker.has_routine_today(),
        "streak_state": state,
    }


async def save_streak_with_freeze(tracker: StreakTracker) -> Dict[str, any]:
    """Old name for apply_freeze(); returns {'success': bool, 'streak_state': StreakState}"""
    result = await tracker.apply_freeze()
    state = StreakState.FROZEN if result["success"] and result["current_streak"] > 0 else StreakState.BROKEN
    return {"success": result["success"], "streak_state": state}


async def let_streak_break(tracker: StreakTracker) -> bool:
    """User chose not to save the streak"""
    return await tracker.reset_streak(user_reset=True)


async def refill_monthly_flex_saves(reward_manager: RewardManager) -> bool:
    return await reward_manager.refill(FLEX_SAVE_REWARD_ID)


async def get_flex_save_count(reward_manager: RewardManager) -> int:
    return await reward_manager.get_uses(FLEX_SAVE_REWARD_ID)


async def was_flex_save_applied_recently(reward_manager: RewardManager) -> bool:
    """True if a flex save covers today or yesterday"""
    today = to_date_string(reward_manager.clock())
    for day in (today, yesterday_of(today)):
        if await reward_manager.was_applied_for(day, FLEX_SAVE_REWARD_ID):
            return True
    return False
