"""Data models"""
from stretch_progress.models.progress import (
    ActivityRecord,
    Challenge,
    ChallengeCategory,
    ChallengeHistory,
    ChallengeStatus,
    ChallengeType,
    ProgressWindow,
    Reward,
    RewardType,
    Statistics,
    UserProgress,
    XpHistoryEntry,
)

__all__ = [
    "ActivityRecord",
    "Challenge",
    "ChallengeCategory",
    "ChallengeHistory",
    "ChallengeStatus",
    "ChallengeType",
    "ProgressWindow",
    "Reward",
    "RewardType",
    "Statistics",
    "UserProgress",
    "XpHistoryEntry",
]
