"""
XP and Leveling System

Level thresholds come from catalog.LEVELS (10 levels, 0 to 15000 XP).

add_xp() only edits the working copy it is given; callers persist it,
normally from inside a transactional_update() mutator.
"""

from typing import Dict, Optional
from datetime import datetime
import logging

from stretch_progress.gamification.catalog import LEVELS
from stretch_progress.models.progress import UserProgress, XpHistoryEntry
from stretch_progress.utils.datetime_helpers import now_local

logger = logging.getLogger(__name__)


def calculate_level(total_xp: int) -> Dict[str, any]:
    """
    Calculate level from total XP

    Returns:
        {
            'level': int,
            'title': str,
            'xp_for_current_level': int,
            'xp_for_next_level': int or None at max level,
            'progress': float (0..1 towards next level)
        }
    """
    current = LEVELS[0]
    for definition in LEVELS:
        if total_xp >= definition.xp_required:
            current = definition
        else:
            break

    next_level = next((d for d in LEVELS if d.level == current.level + 1), None)
    if next_level is None:
        progress = 1.0
        xp_for_next = None
    else:
        span = next_level.xp_required - current.xp_required
        progress = (total_xp - current.xp_required) / span
        xp_for_next = next_level.xp_required

    return {
        "level": current.level,
        "title": current.title,
        "xp_for_current_level": current.xp_required,
        "xp_for_next_level": xp_for_next,
        "progress": progress,
    }


def get_level_info(progress: UserProgress) -> Dict[str, any]:
    """Level summary for display"""
    info = calculate_level(progress.total_xp)
    xp_to_next = None
    if info["xp_for_next_level"] is not None:
        xp_to_next = info["xp_for_next_level"] - progress.total_xp

    return {
        "level": info["level"],
        "title": info["title"],
        "total_xp": progress.total_xp,
        "xp_to_next_level": xp_to_next,
        "percent_to_next_level": round(info["progress"] * 100),
    }


def add_xp(
    progress: UserProgress,
    amount: int,
    source: str = "generic",
    now: Optional[datetime] = None
) -> Dict[str, any]:
    """
    Add XP to a working copy of progress

    Returns:
        {
            'new_xp': int,
            'old_level': int,
            'new_level': int,
            'leveled_up': bool
        }
    """
    old_level = progress.level

    if amount <= 0:
        return {
            "new_xp": progress.total_xp,
            "old_level": old_level,
            "new_level": old_level,
            "leveled_up": False,
        }

    progress.total_xp += amount
    new_level = calculate_level(progress.total_xp)["level"]
    progress.level = max(progress.level, new_level)
    progress.xp_history.append(
        XpHistoryEntry(amount=amount, source=source, timestamp=now or now_local())
    )

    leveled_up = progress.level > old_level
    if leveled_up:
        logger.info(f"User {progress.user_id} leveled up: {old_level} -> {progress.level}")
    logger.info(f"Awarded {amount} XP to user {progress.user_id} for {source}")

    return {
        "new_xp": progress.total_xp,
        "old_level": old_level,
        "new_level": progress.level,
        "leveled_up": leveled_up,
    }
