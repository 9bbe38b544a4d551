"""
Static catalogs: levels, rewards, challenge templates, timing constants

Read-only configuration data. Engines copy from these into per-user
records and never mutate them.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from stretch_progress.models.progress import (
    ChallengeCategory,
    ChallengeType,
    ProgressWindow,
    RewardType,
)


# ============================================
# Levels
# ============================================

@dataclass(frozen=True)
class LevelDefinition:
    """XP threshold for a level"""
    level: int
    xp_required: int
    title: str


LEVELS: List[LevelDefinition] = [
    LevelDefinition(1, 0, "Stretching Novice"),
    LevelDefinition(2, 200, "Flexibility Enthusiast"),
    LevelDefinition(3, 500, "Stretching Regular"),
    LevelDefinition(4, 1000, "Flexibility Pro"),
    LevelDefinition(5, 2000, "Stretching Expert"),
    LevelDefinition(6, 3500, "Flexibility Master"),
    LevelDefinition(7, 5000, "Stretching Guru"),
    LevelDefinition(8, 7500, "Flexibility Champion"),
    LevelDefinition(9, 10000, "Stretching Legend"),
    LevelDefinition(10, 15000, "Ultimate Flexibility Master"),
]


# ============================================
# Rewards
# ============================================

@dataclass(frozen=True)
class RewardDefinition:
    """Catalog entry for a level-gated reward"""
    id: str
    title: str
    description: str
    level_required: int
    type: RewardType = RewardType.APP_FEATURE
    initial_uses: Optional[int] = None


DARK_THEME_REWARD_ID = "dark_theme"
FLEX_SAVE_REWARD_ID = "flex_saves"
MAX_FLEX_SAVES = 2

REWARD_CATALOG: List[RewardDefinition] = [
    RewardDefinition(
        id=DARK_THEME_REWARD_ID,
        title="Dark Theme",
        description="Enable a sleek dark mode for comfortable evening stretching",
        level_required=2,
    ),
    RewardDefinition(
        id="custom_reminders",
        title="Custom Reminders",
        description="Set personalized reminders with custom messages",
        level_required=3,
    ),
    RewardDefinition(
        id="xp_boost",
        title="XP Boost",
        description="Get a 2x boost in XP for your daily streak",
        level_required=4,
    ),
    RewardDefinition(
        id="custom_routines",
        title="Custom Routines",
        description="Create and save your own personalized stretching routines",
        level_required=5,
    ),
    RewardDefinition(
        id=FLEX_SAVE_REWARD_ID,
        title="Flex Saves",
        description="Miss a day, keep your streak. Two saves every month",
        level_required=6,
        type=RewardType.CONSUMABLE,
        initial_uses=MAX_FLEX_SAVES,
    ),
    RewardDefinition(
        id="premium_stretches",
        title="Premium Stretches",
        description="Access to 15+ premium stretching exercises",
        level_required=7,
    ),
    RewardDefinition(
        id="desk_break_boost",
        title="Desk Break Boost",
        description="Stretch in quick 15-sec bursts with 3 fast routines",
        level_required=8,
    ),
    RewardDefinition(
        id="focus_area_mastery",
        title="Focus Area Mastery",
        description="Get ultimate focus badges for your favorite areas",
        level_required=9,
    ),
]

REWARDS_BY_ID: Dict[str, RewardDefinition] = {r.id: r for r in REWARD_CATALOG}

# Ids the freeze reward has been stored under in older records
LEGACY_REWARD_IDS: Dict[str, str] = {
    "streak_freezes": FLEX_SAVE_REWARD_ID,
    "streak_freeze": FLEX_SAVE_REWARD_ID,
    "flex_save": FLEX_SAVE_REWARD_ID,
}


# ============================================
# Challenge timing
# ============================================

# Hours after completion during which a challenge can be claimed at full XP
REDEMPTION_PERIODS: Dict[ChallengeCategory, int] = {
    ChallengeCategory.DAILY: 12,
    ChallengeCategory.WEEKLY: 48,
    ChallengeCategory.MONTHLY: 72,
    ChallengeCategory.SPECIAL: 48,
}

# Target pool size per category
CHALLENGE_LIMITS: Dict[ChallengeCategory, int] = {
    ChallengeCategory.DAILY: 3,
    ChallengeCategory.WEEKLY: 2,
    ChallengeCategory.MONTHLY: 2,
    ChallengeCategory.SPECIAL: 1,
}

# How many recently used templates are skipped when picking new ones
RECENT_TEMPLATE_WINDOW: Dict[ChallengeCategory, int] = {
    ChallengeCategory.DAILY: 3,
    ChallengeCategory.WEEKLY: 2,
    ChallengeCategory.MONTHLY: 2,
    ChallengeCategory.SPECIAL: 2,
}

LATE_CLAIM_XP_FACTOR = 0.5

# Local hour ranges [start, end)
TIME_OF_DAY_WINDOWS: Dict[ProgressWindow, Tuple[int, int]] = {
    ProgressWindow.MORNING: (0, 12),
    ProgressWindow.AFTERNOON: (12, 18),
    ProgressWindow.EVENING: (18, 24),
    ProgressWindow.NIGHT: (21, 24),
}

STRETCH_AREAS = ["neck", "shoulders", "back", "hips", "legs", "full_body"]


# ============================================
# Challenge templates
# ============================================

@dataclass(frozen=True)
class ChallengeTemplate:
    """Catalog entry a challenge instance is created from"""
    id: str
    title: str
    description: str
    type: ChallengeType
    requirement: int
    xp: int
    window: ProgressWindow = ProgressWindow.ALL_TIME
    area: Optional[str] = None


CHALLENGE_TEMPLATES: Dict[ChallengeCategory, List[ChallengeTemplate]] = {
    # ========== DAILY ==========
    ChallengeCategory.DAILY: [
        ChallengeTemplate(
            id="daily_stretch",
            title="Daily Stretch",
            description="Complete any stretch routine today",
            type=ChallengeType.ROUTINE_COUNT,
            requirement=1,
            xp=25,
            window=ProgressWindow.TODAY,
        ),
        ChallengeTemplate(
            id="daily_minutes",
            title="Extended Session",
            description="Complete 5 minutes of stretching today",
            type=ChallengeType.DAILY_MINUTES,
            requirement=5,
            xp=30,
            window=ProgressWindow.TODAY,
        ),
        ChallengeTemplate(
            id="morning_flexibility",
            title="Morning Flexibility",
            description="Complete a routine before noon",
            type=ChallengeType.ROUTINE_COUNT,
            requirement=1,
            xp=35,
            window=ProgressWindow.MORNING,
        ),
        ChallengeTemplate(
            id="afternoon_reset",
            title="Afternoon Reset",
            description="Complete a routine between noon and 6 PM",
            type=ChallengeType.ROUTINE_COUNT,
            requirement=1,
            xp=35,
            window=ProgressWindow.AFTERNOON,
        ),
        ChallengeTemplate(
            id="evening_routine",
            title="Evening Relaxation",
            description="Complete a routine after 6 PM",
            type=ChallengeType.ROUTINE_COUNT,
            requirement=1,
            xp=35,
            window=ProgressWindow.EVENING,
        ),
        ChallengeTemplate(
            id="daily_double",
            title="Double Up",
            description="Complete 2 routines today",
            type=ChallengeType.ROUTINE_COUNT,
            requirement=2,
            xp=40,
            window=ProgressWindow.TODAY,
        ),
    ],
    # ========== WEEKLY ==========
    ChallengeCategory.WEEKLY: [
        ChallengeTemplate(
            id="weekly_variety",
            title="Variety Pack",
            description="Stretch 3 different body areas this week",
            type=ChallengeType.AREA_VARIETY,
            requirement=3,
            xp=75,
            window=ProgressWindow.WEEK,
        ),
        ChallengeTemplate(
            id="weekly_routines",
            title="Weekly Dedication",
            description="Complete 5 stretching routines this week",
            type=ChallengeType.ROUTINE_COUNT,
            requirement=5,
            xp=100,
            window=ProgressWindow.WEEK,
        ),
        ChallengeTemplate(
            id="weekly_minutes",
            title="Time Investment",
            description="Complete 30 minutes of total stretching this week",
            type=ChallengeType.TOTAL_MINUTES,
            requirement=30,
            xp=100,
            window=ProgressWindow.WEEK,
        ),
        ChallengeTemplate(
            id="weekly_streak",
            title="Mini Streak",
            description="Maintain a 3-day stretching streak",
            type=ChallengeType.STREAK,
            requirement=3,
            xp=125,
        ),
        ChallengeTemplate(
            id="weekly_consistency",
            title="Steady Week",
            description="Stretch on 4 different days this week",
            type=ChallengeType.WEEKLY_CONSISTENCY,
            requirement=4,
            xp=125,
            window=ProgressWindow.WEEK,
        ),
    ],
    # ========== MONTHLY ==========
    ChallengeCategory.MONTHLY: [
        ChallengeTemplate(
            id="monthly_streak",
            title="Consistency Champion",
            description="Maintain a 7-day streak",
            type=ChallengeType.STREAK,
            requirement=7,
            xp=200,
        ),
        ChallengeTemplate(
            id="stretch_master",
            title="Stretch Master",
            description="Complete 60 minutes of total stretching this month",
            type=ChallengeType.TOTAL_MINUTES,
            requirement=60,
            xp=250,
            window=ProgressWindow.MONTH,
        ),
        ChallengeTemplate(
            id="monthly_dedication",
            title="Dedicated Stretcher",
            description="Complete 15 stretching routines this month",
            type=ChallengeType.ROUTINE_COUNT,
            requirement=15,
            xp=250,
            window=ProgressWindow.MONTH,
        ),
        ChallengeTemplate(
            id="monthly_variety",
            title="Full Body Focus",
            description="Stretch every body area at least once this month",
            type=ChallengeType.AREA_VARIETY,
            requirement=len(STRETCH_AREAS),
            xp=300,
            window=ProgressWindow.MONTH,
        ),
        ChallengeTemplate(
            id="back_specialist",
            title="Back Specialist",
            description="Complete 5 routines for your back",
            type=ChallengeType.SPECIFIC_AREA,
            requirement=5,
            xp=200,
            area="back",
        ),
    ],
    # ========== SPECIAL ==========
    ChallengeCategory.SPECIAL: [
        ChallengeTemplate(
            id="night_owl",
            title="Night Owl",
            description="Complete a routine after 9 PM",
            type=ChallengeType.ROUTINE_COUNT,
            requirement=1,
            xp=100,
            window=ProgressWindow.NIGHT,
        ),
        ChallengeTemplate(
            id="special_variety",
            title="Variety Explorer",
            description="Complete routines for 4 different body areas",
            type=ChallengeType.AREA_VARIETY,
            requirement=4,
            xp=175,
        ),
        ChallengeTemplate(
            id="neck_relief",
            title="Neck Relief",
            description="Complete 3 routines for your neck",
            type=ChallengeType.SPECIFIC_AREA,
            requirement=3,
            xp=150,
            area="neck",
        ),
    ],
}
