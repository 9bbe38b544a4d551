"""Progress models: user progress record, challenges, rewards, activity"""
from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class ChallengeCategory(str, Enum):
    """Challenge cycle categories"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    SPECIAL = "special"


class ChallengeType(str, Enum):
    """How challenge progress is measured"""
    ROUTINE_COUNT = "routine_count"
    TOTAL_MINUTES = "total_minutes"
    DAILY_MINUTES = "daily_minutes"
    STREAK = "streak"
    WEEKLY_CONSISTENCY = "weekly_consistency"
    AREA_VARIETY = "area_variety"
    SPECIFIC_AREA = "specific_area"


class ChallengeStatus(str, Enum):
    """Challenge lifecycle state"""
    ACTIVE = "active"
    COMPLETED = "completed"
    CLAIMED = "claimed"
    EXPIRED = "expired"


class ProgressWindow(str, Enum):
    """Slice of activity history a challenge counts"""
    ALL_TIME = "all_time"
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


class RewardType(str, Enum):
    """Reward kinds"""
    APP_FEATURE = "app_feature"
    CONSUMABLE = "consumable"


class ActivityRecord(BaseModel):
    """One completed stretching session (append-only history)"""
    date: datetime
    duration_minutes: int = Field(ge=0)
    area: str


class ChallengeHistory(BaseModel):
    """Completed/claimed entry on a challenge"""
    completed_date: datetime
    claimed_date: datetime
    xp_earned: int


class Challenge(BaseModel):
    """
    Per-user challenge instance created from a catalog template.

    `type` is kept as a plain string so a record with an unknown type still
    loads; the engine logs it and leaves its progress alone.
    """
    id: str
    template_id: Optional[str] = None
    title: str
    description: str = ""
    category: ChallengeCategory
    type: str
    window: ProgressWindow = ProgressWindow.ALL_TIME
    area: Optional[str] = None
    requirement: int
    progress: int = 0
    xp: int
    start_date: datetime
    end_date: datetime
    completed: bool = False
    claimed: bool = False
    date_completed: Optional[datetime] = None
    date_claimed: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    expiry_warning: bool = False
    status: ChallengeStatus = ChallengeStatus.ACTIVE
    history: list[ChallengeHistory] = Field(default_factory=list)


class Reward(BaseModel):
    """Level-gated reward; consumables carry a credit count"""
    id: str
    title: str
    description: str = ""
    level_required: int
    unlocked: bool = False
    type: RewardType = RewardType.APP_FEATURE
    uses: Optional[int] = None
    initial_uses: Optional[int] = None
    applied_dates: list[str] = Field(default_factory=list)  # YYYY-MM-DD
    last_refill: Optional[datetime] = None
    last_used: Optional[datetime] = None


class Statistics(BaseModel):
    """Aggregate activity statistics"""
    current_streak: int = Field(default=0, ge=0)
    best_streak: int = Field(default=0, ge=0)
    total_routines: int = Field(default=0, ge=0)
    total_minutes: int = Field(default=0, ge=0)
    unique_areas: list[str] = Field(default_factory=list)
    routines_by_area: dict[str, int] = Field(default_factory=dict)
    last_updated: Optional[datetime] = None


class XpHistoryEntry(BaseModel):
    """One XP award"""
    amount: int
    source: str
    timestamp: datetime


class UserProgress(BaseModel):
    """Root aggregate, one per user"""
    user_id: str = "local"
    total_xp: int = 0
    level: int = 1
    statistics: Statistics = Field(default_factory=Statistics)
    rewards: dict[str, Reward] = Field(default_factory=dict)
    challenges: dict[str, Challenge] = Field(default_factory=dict)
    last_daily_challenge_check: Optional[datetime] = None
    xp_history: list[XpHistoryEntry] = Field(default_factory=list)
    settings: dict[str, str] = Field(default_factory=lambda: {"theme": "light"})
    version: int = 0
