"""
Progression engine for stretching sessions

This package implements:
- XP and leveling
- Consecutive-day streak with flex saves
- Level-gated rewards
- Daily/weekly/monthly/special challenges
- Typed events for UI collaborators
"""

from stretch_progress.gamification.xp_system import add_xp, calculate_level, get_level_info
from stretch_progress.gamification.streak_system import StreakTracker, calculate_streak, is_streak_broken
from stretch_progress.gamification.reward_system import RewardManager
from stretch_progress.gamification.challenges import ChallengeEngine
from stretch_progress.gamification.events import (
    ChallengeCompleted,
    EventBus,
    StreakBroken,
    StreakMaintained,
    StreakSaved,
    StreakUpdated,
)

__all__ = [
    "add_xp",
    "calculate_level",
    "get_level_info",
    "StreakTracker",
    "calculate_streak",
    "is_streak_broken",
    "RewardManager",
    "ChallengeEngine",
    "EventBus",
    "ChallengeCompleted",
    "StreakBroken",
    "StreakMaintained",
    "StreakSaved",
    "StreakUpdated",
]
