"""
Challenge System

Time-boxed daily/weekly/monthly/special challenges created from the
catalog templates.

Lifecycle per challenge:
    ACTIVE -> COMPLETED -> CLAIMED
    ACTIVE or COMPLETED -> EXPIRED

- ACTIVE expires when now > end_date without completion
- COMPLETED can be claimed during a claim window of
  REDEMPTION_PERIODS[category] hours; after that it is EXPIRED but can
  still be claimed for half XP
- status is always derived from (completed, claimed, now vs end_date /
  claim deadline), never set on its own

Pool rules:
- new challenges are only added when the category's cycle ended (new
  day / week / month) or the category has never had any
- claiming never triggers generation inside the same cycle
- at a cycle boundary every challenge of the category is removed except
  completed ones still waiting to be claimed
- specials have no cycle: one is created on first initialization and kept
"""

import logging
import math
import random
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from stretch_progress.config import STORE_TIMEOUT_SECONDS
from stretch_progress.exceptions import CatalogError, InvalidOperationError, StoreError
from stretch_progress.gamification.catalog import (
    CHALLENGE_LIMITS,
    CHALLENGE_TEMPLATES,
    LATE_CLAIM_XP_FACTOR,
    RECENT_TEMPLATE_WINDOW,
    REDEMPTION_PERIODS,
    TIME_OF_DAY_WINDOWS,
    ChallengeTemplate,
)
from stretch_progress.gamification.events import ChallengeCompleted, EventBus
from stretch_progress.gamification.xp_system import add_xp
from stretch_progress.models.progress import (
    ActivityRecord,
    Challenge,
    ChallengeCategory,
    ChallengeHistory,
    ChallengeStatus,
    ChallengeType,
    ProgressWindow,
    Statistics,
    UserProgress,
)
from stretch_progress.storage.base import ProgressStore
from stretch_progress.storage.transactions import (
    load_history_safely,
    load_progress_safely,
    transactional_update,
)
from stretch_progress.utils.datetime_helpers import (
    crossed_day_boundary,
    crossed_month_boundary,
    crossed_week_boundary,
    end_date_for_category,
    now_local,
    start_of_month,
    start_of_week,
    to_date_string,
    to_local,
)

logger = logging.getLogger(__name__)

DAY = timedelta(days=1)


# ============================================
# Status
# ============================================

def redemption_period(category: ChallengeCategory) -> timedelta:
    """Claim window length for a category"""
    return timedelta(hours=REDEMPTION_PERIODS.get(category, 48))


def claim_deadline(challenge: Challenge) -> Optional[datetime]:
    """End of the full-XP claim window, None until completed"""
    if challenge.date_completed is None:
        return None
    return challenge.date_completed + redemption_period(challenge.category)


def derive_status(challenge: Challenge, now: datetime) -> ChallengeStatus:
    """Status as a pure function of completed/claimed and the clock"""
    if challenge.claimed:
        return ChallengeStatus.CLAIMED
    if challenge.completed:
        deadline = claim_deadline(challenge)
        if deadline is not None and now > deadline:
            return ChallengeStatus.EXPIRED
        return ChallengeStatus.COMPLETED
    if now > challenge.end_date:
        return ChallengeStatus.EXPIRED
    return ChallengeStatus.ACTIVE


def update_challenge_status(challenge: Challenge, now: datetime) -> Challenge:
    """
    Refresh status, expiry_date and expiry_warning

    expiry_warning:
    - completed, unclaimed: under 25% of the claim window left
    - active: under 1 day left (daily) or 2 days (other categories)
    """
    challenge.status = derive_status(challenge, now)

    if challenge.completed and not challenge.claimed:
        deadline = claim_deadline(challenge)
        challenge.expiry_date = deadline
        if deadline is not None:
            challenge.expiry_warning = deadline - now < redemption_period(challenge.category) * 0.25
    elif not challenge.completed:
        threshold = DAY if challenge.category == ChallengeCategory.DAILY else 2 * DAY
        challenge.expiry_warning = challenge.end_date - now < threshold
    else:
        challenge.expiry_warning = False

    return challenge


# ============================================
# Progress
# ============================================

def records_in_window(
    history: List[ActivityRecord],
    window: ProgressWindow,
    now: datetime
) -> List[ActivityRecord]:
    """Activity records inside a progress window, in local time"""
    if window == ProgressWindow.ALL_TIME:
        return list(history)

    local_now = to_local(now)
    today = local_now.date()

    if window == ProgressWindow.TODAY:
        return [r for r in history if to_local(r.date).date() == today]

    if window == ProgressWindow.WEEK:
        start = start_of_week(now)
        return [r for r in history if start <= to_local(r.date) <= local_now]

    if window == ProgressWindow.MONTH:
        start = start_of_month(now)
        return [r for r in history if start <= to_local(r.date) <= local_now]

    start_hour, end_hour = TIME_OF_DAY_WINDOWS[window]
    return [
        r for r in history
        if to_local(r.date).date() == today and start_hour <= to_local(r.date).hour < end_hour
    ]


def compute_progress(
    challenge: Challenge,
    statistics: Statistics,
    history: List[ActivityRecord],
    now: datetime
) -> int:
    """
    Recompute a challenge's progress from the full activity history

    Raises:
        CatalogError: If the challenge type is unknown
    """
    try:
        challenge_type = ChallengeType(challenge.type)
    except ValueError:
        raise CatalogError(
            f"Unknown challenge type '{challenge.type}' for challenge {challenge.id}",
            entry_id=challenge.id,
        )

    window = challenge.window
    records = records_in_window(history, window, now)

    if challenge_type == ChallengeType.ROUTINE_COUNT:
        if window == ProgressWindow.ALL_TIME:
            return statistics.total_routines
        return len(records)

    if challenge_type in (ChallengeType.TOTAL_MINUTES, ChallengeType.DAILY_MINUTES):
        if window == ProgressWindow.ALL_TIME:
            return statistics.total_minutes
        return sum(r.duration_minutes for r in records)

    if challenge_type == ChallengeType.STREAK:
        return statistics.current_streak

    if challenge_type == ChallengeType.WEEKLY_CONSISTENCY:
        this_week = records_in_window(history, ProgressWindow.WEEK, now)
        return len({to_date_string(r.date) for r in this_week})

    if challenge_type == ChallengeType.AREA_VARIETY:
        areas = {r.area for r in records}
        if window == ProgressWindow.ALL_TIME:
            areas |= set(statistics.unique_areas)
        return len(areas)

    # SPECIFIC_AREA
    if challenge.area:
        return sum(1 for r in records if r.area == challenge.area)
    counts = Counter(r.area for r in records)
    return max(counts.values(), default=0)


def update_progress(
    challenge: Challenge,
    statistics: Statistics,
    history: List[ActivityRecord],
    now: datetime
) -> bool:
    """
    Update progress of an open challenge and complete it when the
    requirement is reached. Finalized challenges are left untouched.

    Returns:
        True if the challenge was completed by this call
    """
    if challenge.completed or challenge.claimed or derive_status(challenge, now) == ChallengeStatus.EXPIRED:
        return False

    before = challenge.progress
    challenge.progress = compute_progress(challenge, statistics, history, now)
    if challenge.progress != before:
        logger.debug(f"Challenge {challenge.id} progress {before} -> {challenge.progress}/{challenge.requirement}")

    completed = False
    if challenge.progress >= challenge.requirement:
        challenge.completed = True
        challenge.date_completed = now
        completed = True
        logger.info(f"Challenge completed: {challenge.title} ({challenge.progress}/{challenge.requirement})")

    update_challenge_status(challenge, now)
    return completed


def create_from_template(
    template: ChallengeTemplate,
    category: ChallengeCategory,
    now: datetime,
    rng: random.Random,
    existing_ids=()
) -> Challenge:
    """New ACTIVE challenge; id is '<template>_<YYYY-MM-DD>_<n>'"""
    day = to_date_string(now)
    challenge_id = f"{template.id}_{day}_{rng.randint(0, 9999)}"
    while challenge_id in existing_ids:
        challenge_id = f"{template.id}_{day}_{rng.randint(0, 9999)}"

    return Challenge(
        id=challenge_id,
        template_id=template.id,
        title=template.title,
        description=template.description,
        category=category,
        type=template.type.value,
        window=template.window,
        area=template.area,
        requirement=template.requirement,
        xp=template.xp,
        start_date=now,
        end_date=end_date_for_category(category.value, now),
    )


def get_challenge_counts(progress: UserProgress, now: Optional[datetime] = None) -> Dict[str, any]:
    """
    Count challenges by status, overall and per category

    Returns:
        {
            'total': int, 'active': int, 'completed': int, 'claimed': int, 'expired': int,
            'by_category': {category: {'active': int, 'completed': int, 'claimed': int, 'expired': int}}
        }
    """
    result = {
        "total": 0,
        "active": 0,
        "completed": 0,
        "claimed": 0,
        "expired": 0,
        "by_category": {
            c.value: {"active": 0, "completed": 0, "claimed": 0, "expired": 0}
            for c in ChallengeCategory
        },
    }

    for challenge in progress.challenges.values():
        status = derive_status(challenge, now) if now is not None else challenge.status
        result["total"] += 1
        result[status.value] += 1
        result["by_category"][challenge.category.value][status.value] += 1

    return result


class ChallengeEngine:
    """
    Maintains one user's challenge pool.

    Keeps its own recently-used template history so separate engines
    (e.g. in tests) never share state.
    """

    def __init__(
        self,
        store: ProgressStore,
        event_bus: Optional[EventBus] = None,
        clock=now_local,
        rng: Optional[random.Random] = None,
        timeout: float = STORE_TIMEOUT_SECONDS
    ):
        self.store = store
        self.events = event_bus or EventBus()
        self.clock = clock
        self.rng = rng or random.Random()
        self.timeout = timeout
        self.recent_templates: Dict[ChallengeCategory, List[str]] = {c: [] for c in ChallengeCategory}

    # ==========================================
    # Pool maintenance (operate on a working copy)
    # ==========================================

    def _track_used(self, template_id: str, category: ChallengeCategory) -> None:
        recent = self.recent_templates[category]
        recent.append(template_id)
        limit = RECENT_TEMPLATE_WINDOW.get(category, 2)
        if len(recent) > limit:
            del recent[:-limit]

    def select_templates(self, category: ChallengeCategory, count: int) -> List[ChallengeTemplate]:
        """Pick count templates, avoiding recently used ones while possible"""
        pool = CHALLENGE_TEMPLATES.get(category, [])
        available = [t for t in pool if t.id not in self.recent_templates[category]]

        if len(available) < count:
            logger.info(f"Not enough unused {category.value} templates, using full set")
            available = list(pool)
            self.recent_templates[category] = []

        self.rng.shuffle(available)
        return available[:count]

    def expire_challenges(self, progress: UserProgress, now: datetime) -> int:
        """Mark overdue ACTIVE and unclaimed COMPLETED challenges EXPIRED"""
        expired = 0
        for challenge in progress.challenges.values():
            if challenge.status == ChallengeStatus.EXPIRED:
                continue
            if derive_status(challenge, now) == ChallengeStatus.EXPIRED:
                challenge.status = ChallengeStatus.EXPIRED
                challenge.expiry_warning = False
                expired += 1
                logger.info(f"Challenge expired: {challenge.title}")

        if expired:
            logger.info(f"Expired {expired} challenges")
        return expired

    def cycle_ended(self, progress: UserProgress, category: ChallengeCategory, now: datetime) -> bool:
        last_check = progress.last_daily_challenge_check
        if category == ChallengeCategory.DAILY:
            return crossed_day_boundary(last_check, now)
        if category == ChallengeCategory.WEEKLY:
            return crossed_week_boundary(last_check, now)
        if category == ChallengeCategory.MONTHLY:
            return crossed_month_boundary(last_check, now)
        return False

    def remove_finished_challenges(self, progress: UserProgress, category: ChallengeCategory, now: datetime) -> int:
        """Drop every challenge of category except completed ones still in their claim window"""
        stale = [
            challenge_id for challenge_id, challenge in progress.challenges.items()
            if challenge.category == category and derive_status(challenge, now) != ChallengeStatus.COMPLETED
        ]
        for challenge_id in stale:
            del progress.challenges[challenge_id]

        if stale:
            logger.info(f"Removed {len(stale)} old {category.value} challenges")
        return len(stale)

    def ensure_challenge_count(self, progress: UserProgress, now: datetime) -> int:
        """
        Top up each category's pool

        Adds challenges only if the category's cycle ended since the last
        check (after clearing the old cycle), or the category has none at
        all. Stamps last_daily_challenge_check.

        Returns:
            Number of challenges added
        """
        added = 0

        for category, target in CHALLENGE_LIMITS.items():
            ended = self.cycle_ended(progress, category, now)
            # Specials never end a cycle, so they are created once and kept
            if ended:
                self.remove_finished_challenges(progress, category, now)

            in_category = [c for c in progress.challenges.values() if c.category == category]
            ongoing = [
                c for c in in_category
                if derive_status(c, now) in (ChallengeStatus.ACTIVE, ChallengeStatus.COMPLETED)
            ]

            if ended:
                needed = max(0, target - len(ongoing))
            elif not in_category:
                needed = target
                logger.info(f"Initializing {category.value} challenges, need {needed}")
            else:
                needed = 0

            if needed <= 0:
                logger.debug(f"No new {category.value} challenges needed ({len(ongoing)}/{target} ongoing)")
                continue

            for template in self.select_templates(category, needed):
                challenge = create_from_template(template, category, now, self.rng, progress.challenges)
                progress.challenges[challenge.id] = challenge
                self._track_used(template.id, category)
                added += 1
                logger.info(f"Added new {category.value} challenge: {challenge.title}")

        progress.last_daily_challenge_check = now
        return added

    def batch_update(
        self,
        progress: UserProgress,
        history: List[ActivityRecord],
        now: datetime
    ) -> Tuple[int, List[Challenge]]:
        """
        Recompute progress and status for every open challenge

        A challenge with a malformed type is skipped; the rest still update.

        Returns:
            (number of challenges whose progress changed, newly completed challenges)
        """
        updated = 0
        completed: List[Challenge] = []

        for challenge in progress.challenges.values():
            if challenge.claimed or challenge.status == ChallengeStatus.EXPIRED:
                continue

            try:
                before = challenge.progress
                if update_progress(challenge, progress.statistics, history, now):
                    completed.append(challenge)
                if challenge.progress != before:
                    updated += 1
            except CatalogError:
                # Logged on construction; progress stays as it was
                pass

            update_challenge_status(challenge, now)

        if updated:
            logger.info(f"Updated {updated} challenges, {len(completed)} newly completed")
        return updated, completed

    # ==========================================
    # Store-backed operations
    # ==========================================

    async def update_user_challenges(self) -> List[Challenge]:
        """
        Expire, recompute progress and top up the pool in one transaction

        Returns:
            Challenges completed by this pass
        """
        now = self.clock()
        history = await load_history_safely(self.store, self.timeout)

        def mutate(progress: UserProgress):
            self.expire_challenges(progress, now)
            _, completed = self.batch_update(progress, history, now)
            self.ensure_challenge_count(progress, now)
            return [c.model_copy(deep=True) for c in completed]

        try:
            _, completed = await transactional_update(
                self.store, mutate, reason="update_user_challenges", timeout=self.timeout
            )
        except StoreError as e:
            logger.error(f"Challenge update failed: {e}")
            return []

        for challenge in completed:
            self.events.emit(ChallengeCompleted(challenge=challenge))
        return completed

    async def refresh_challenges(self) -> Dict[str, any]:
        """
        Expiry sweep, cycle-boundary cleanup and pool top-up

        Returns:
            {'success': bool, 'expired': int, 'removed': int, 'added': int}
        """
        now = self.clock()

        def mutate(progress: UserProgress):
            expired = self.expire_challenges(progress, now)
            before = len(progress.challenges)
            added = self.ensure_challenge_count(progress, now)
            removed = before + added - len(progress.challenges)
            return {"expired": expired, "removed": removed, "added": added}

        try:
            _, counts = await transactional_update(
                self.store, mutate, reason="refresh_challenges", timeout=self.timeout
            )
        except StoreError as e:
            return {"success": False, "expired": 0, "removed": 0, "added": 0, "message": e.user_message}

        return {"success": True, **counts}

    async def claim_challenge(self, challenge_id: str) -> Dict[str, any]:
        """
        Claim a completed challenge's XP

        Claims after the claim window still succeed at half XP (floor).

        Returns:
            {
                'success': bool,
                'xp_earned': int,
                'leveled_up': bool,
                'new_level': int,
                'reduced': bool,
                'message': str
            }
        """
        now = self.clock()

        def mutate(progress: UserProgress):
            challenge = progress.challenges.get(challenge_id)
            if challenge is None:
                raise InvalidOperationError("Challenge not found", operation="claim_challenge")
            if not challenge.completed:
                raise InvalidOperationError("Challenge is not completed", operation="claim_challenge")
            if challenge.claimed:
                raise InvalidOperationError("Challenge already claimed", operation="claim_challenge")

            deadline = challenge.expiry_date or claim_deadline(challenge)
            reduced = deadline is not None and now > deadline
            xp_earned = math.floor(challenge.xp * LATE_CLAIM_XP_FACTOR) if reduced else challenge.xp
            if reduced:
                logger.info(f"Late claim of {challenge.title}: XP {challenge.xp} -> {xp_earned}")

            challenge.claimed = True
            challenge.date_claimed = now
            challenge.expiry_warning = False
            challenge.history.append(ChallengeHistory(
                completed_date=challenge.date_completed or now,
                claimed_date=now,
                xp_earned=xp_earned,
            ))
            update_challenge_status(challenge, now)

            level_result = add_xp(progress, xp_earned, f"challenge:{challenge_id}", now)
            return xp_earned, reduced, level_result

        try:
            _, (xp_earned, reduced, level_result) = await transactional_update(
                self.store, mutate, reason="claim_challenge", timeout=self.timeout
            )
        except (InvalidOperationError, StoreError) as e:
            progress = await load_progress_safely(self.store, self.timeout)
            return {
                "success": False,
                "xp_earned": 0,
                "leveled_up": False,
                "new_level": progress.level,
                "reduced": False,
                "message": e.user_message,
            }

        return {
            "success": True,
            "xp_earned": xp_earned,
            "leveled_up": level_result["leveled_up"],
            "new_level": level_result["new_level"],
            "reduced": reduced,
            "message": (
                "Challenge claimed with reduced XP (expired)" if reduced
                else "Challenge claimed successfully"
            ),
        }

    # ==========================================
    # Queries
    # ==========================================

    async def get_active_challenges(self) -> Dict[str, List[Challenge]]:
        """ACTIVE challenges grouped by category"""
        now = self.clock()
        progress = await load_progress_safely(self.store, self.timeout)
        result: Dict[str, List[Challenge]] = {c.value: [] for c in ChallengeCategory}
        for challenge in progress.challenges.values():
            if derive_status(challenge, now) == ChallengeStatus.ACTIVE:
                result[challenge.category.value].append(challenge)
        return result

    async def get_claimable_challenges(self) -> List[Challenge]:
        """Completed, unclaimed challenges (late ones included)"""
        progress = await load_progress_safely(self.store, self.timeout)
        return [c for c in progress.challenges.values() if c.completed and not c.claimed]

    async def get_challenge_counts(self) -> Dict[str, any]:
        progress = await load_progress_safely(self.store, self.timeout)
        return get_challenge_counts(progress, self.clock())
