"""
Reward System

Level-gated rewards, consumable accounting and record repair.

Rewards:
- app features unlock once level >= level_required
- flex saves are a consumable: MAX_FLEX_SAVES credits, refilled once per
  calendar month; each spent credit records the covered day in applied_dates
- dark theme is re-checked on every update: if the level falls below its
  requirement the theme setting reverts to light

Repair:
- legacy ids (streak_freezes, streak_freeze, flex_save) are merged into
  flex_saves taking the MINIMUM of the two credit counts
- catalog rewards missing from a record are added (locked)
"""

from typing import Dict, List, Optional
from datetime import datetime
import logging

from stretch_progress.config import STORE_TIMEOUT_SECONDS
from stretch_progress.exceptions import InvalidOperationError, StoreError
from stretch_progress.gamification.catalog import (
    DARK_THEME_REWARD_ID,
    FLEX_SAVE_REWARD_ID,
    LEGACY_REWARD_IDS,
    MAX_FLEX_SAVES,
    REWARD_CATALOG,
    REWARDS_BY_ID,
    RewardDefinition,
)
from stretch_progress.models.progress import Reward, RewardType, UserProgress
from stretch_progress.storage.base import ProgressStore
from stretch_progress.storage.transactions import load_progress_safely, transactional_update
from stretch_progress.utils.datetime_helpers import now_local, to_date_string, to_local, yesterday_of

logger = logging.getLogger(__name__)


# ============================================
# Record helpers (operate on a working copy)
# ============================================

def build_reward(definition: RewardDefinition, unlocked: bool = False) -> Reward:
    """Per-user reward record from a catalog entry"""
    return Reward(
        id=definition.id,
        title=definition.title,
        description=definition.description,
        level_required=definition.level_required,
        unlocked=unlocked,
        type=definition.type,
        initial_uses=definition.initial_uses,
        uses=0 if definition.type == RewardType.CONSUMABLE else None,
    )


def initialize_rewards() -> Dict[str, Reward]:
    """Full catalog, all locked"""
    return {d.id: build_reward(d) for d in REWARD_CATALOG}


def _latest(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def _min_uses(a: Optional[int], b: Optional[int]) -> Optional[int]:
    if a is None:
        return b
    if b is None:
        return a
    return min(a, b)


def merge_duplicate_reward(current: Reward, legacy: Reward) -> Reward:
    """
    Merge a legacy-id record into the current one

    Takes the most recent last_used and the MINIMUM uses so a duplicate
    can never mint extra credits.
    """
    current.uses = _min_uses(current.uses, legacy.uses)
    current.last_used = _latest(current.last_used, legacy.last_used)
    current.last_refill = _latest(current.last_refill, legacy.last_refill)
    current.applied_dates = sorted(set(current.applied_dates) | set(legacy.applied_dates))
    current.unlocked = current.unlocked or legacy.unlocked
    return current


def repair_rewards(progress: UserProgress) -> bool:
    """
    Deduplicate legacy reward ids and backfill missing catalog rewards

    Returns:
        True if the record changed
    """
    changed = False
    rewards = progress.rewards

    for legacy_id, current_id in LEGACY_REWARD_IDS.items():
        if legacy_id not in rewards:
            continue

        legacy = rewards.pop(legacy_id)
        if current_id in rewards:
            merge_duplicate_reward(rewards[current_id], legacy)
            logger.warning(
                f"Merged duplicate reward '{legacy_id}' into '{current_id}' "
                f"for user {progress.user_id} (uses={rewards[current_id].uses})"
            )
        else:
            definition = REWARDS_BY_ID[current_id]
            renamed = build_reward(definition, unlocked=legacy.unlocked)
            renamed.uses = legacy.uses if legacy.uses is not None else renamed.uses
            renamed.applied_dates = sorted(set(legacy.applied_dates))
            renamed.last_refill = legacy.last_refill
            renamed.last_used = legacy.last_used
            rewards[current_id] = renamed
            logger.warning(f"Renamed legacy reward '{legacy_id}' to '{current_id}' for user {progress.user_id}")
        changed = True

    for definition in REWARD_CATALOG:
        reward = rewards.get(definition.id)
        if reward is None:
            rewards[definition.id] = build_reward(definition)
            changed = True
        elif reward.type != definition.type:
            reward.type = definition.type
            changed = True

        reward = rewards[definition.id]
        if reward.type == RewardType.CONSUMABLE and reward.uses is None:
            reward.uses = 0
            changed = True

    return changed


def apply_level_unlocks(progress: UserProgress, now: datetime) -> List[str]:
    """
    Unlock every reward whose level requirement is met

    Consumables are granted their initial uses on unlock.

    Returns:
        Ids unlocked by this call
    """
    unlocked = []
    for definition in REWARD_CATALOG:
        reward = progress.rewards.get(definition.id)
        if reward is None:
            reward = build_reward(definition)
            progress.rewards[definition.id] = reward

        if reward.unlocked or progress.level < definition.level_required:
            continue

        reward.unlocked = True
        if definition.initial_uses:
            reward.uses = definition.initial_uses
            reward.last_refill = now
        unlocked.append(definition.id)
        logger.info(f"Unlocking reward {definition.id} at level {progress.level} for user {progress.user_id}")

    return unlocked


def reconcile_gated_settings(progress: UserProgress) -> bool:
    """
    Revert settings whose reward the user no longer qualifies for

    Returns:
        True if anything was reverted
    """
    definition = REWARDS_BY_ID[DARK_THEME_REWARD_ID]
    if progress.level >= definition.level_required:
        return False

    changed = False
    if progress.settings.get("theme") == "dark":
        progress.settings["theme"] = "light"
        logger.info(f"Reverted dark theme for user {progress.user_id} at level {progress.level}")
        changed = True

    reward = progress.rewards.get(DARK_THEME_REWARD_ID)
    if reward is not None and reward.unlocked:
        reward.unlocked = False
        changed = True

    return changed


def consume_use(reward: Reward, now: datetime, day: str) -> bool:
    """
    Spend one credit to cover the YYYY-MM-DD day

    Every spent credit adds exactly one entry to applied_dates, so a day
    that is already covered cannot take a second credit.

    Returns:
        False if the reward is locked, empty or the day is already covered
    """
    if not reward.unlocked or not reward.uses or reward.uses <= 0:
        return False
    if day in reward.applied_dates:
        return False
    reward.uses -= 1
    reward.last_used = now
    reward.applied_dates = sorted(set(reward.applied_dates) | {day})
    return True


def uses_spent_since_refill(reward: Reward) -> int:
    """Credits spent on or after the last refill day"""
    if reward.last_refill is None:
        return len(reward.applied_dates)
    refill_day = to_date_string(reward.last_refill)
    return sum(1 for d in reward.applied_dates if d >= refill_day)


def needs_refill(reward: Reward, now: datetime) -> bool:
    """
    Monthly refill rule for a consumable

    - new calendar month and fewer than MAX_FLEX_SAVES left, or
    - zero credits with nothing spent since the last refill (recovery)
    """
    if not reward.unlocked or reward.type != RewardType.CONSUMABLE:
        return False

    uses = reward.uses or 0
    if reward.last_refill is None:
        new_month = True
    else:
        last = to_local(reward.last_refill)
        current = to_local(now)
        new_month = (last.year, last.month) != (current.year, current.month)

    if new_month and uses < MAX_FLEX_SAVES:
        return True
    if uses != 0 or uses_spent_since_refill(reward) > 0:
        return False
    # A credit spent after the last refill means the zero is real
    return reward.last_used is None or reward.last_refill is None or reward.last_used < reward.last_refill


def refill_consumable(reward: Reward, now: datetime) -> bool:
    """Refill reward to MAX_FLEX_SAVES if the refill rule allows it"""
    if not needs_refill(reward, now):
        return False
    logger.info(f"Refilling {reward.id}: {reward.uses} -> {MAX_FLEX_SAVES}")
    reward.uses = MAX_FLEX_SAVES
    reward.last_refill = now
    return True


class RewardManager:
    """
    Store-backed reward operations

    Reads fall back to a default record when the store is unavailable;
    writes go through transactional_update().
    """

    def __init__(self, store: ProgressStore, clock=now_local, timeout: float = STORE_TIMEOUT_SECONDS):
        self.store = store
        self.clock = clock
        self.timeout = timeout

    async def _load(self) -> UserProgress:
        return await load_progress_safely(self.store, self.timeout)

    # ==========================================
    # Queries
    # ==========================================

    async def is_unlocked(self, reward_id: str) -> bool:
        progress = await self._load()
        reward = progress.rewards.get(reward_id)
        return reward.unlocked if reward else False

    async def get_all_rewards(self) -> List[Reward]:
        """All rewards sorted by level requirement"""
        progress = await self._load()
        return sorted(progress.rewards.values(), key=lambda r: r.level_required)

    async def get_unlocked_rewards(self) -> List[Reward]:
        progress = await self._load()
        return [r for r in progress.rewards.values() if r.unlocked]

    async def get_locked_rewards(self) -> List[Reward]:
        progress = await self._load()
        return [r for r in progress.rewards.values() if not r.unlocked]

    async def get_uses(self, reward_id: str = FLEX_SAVE_REWARD_ID) -> int:
        progress = await self._load()
        reward = progress.rewards.get(reward_id)
        return (reward.uses or 0) if reward else 0

    async def was_applied_for(self, day: str, reward_id: str = FLEX_SAVE_REWARD_ID) -> bool:
        """True if a credit of reward_id covered the YYYY-MM-DD day"""
        progress = await self._load()
        reward = progress.rewards.get(reward_id)
        return reward is not None and day in reward.applied_dates

    # ==========================================
    # Mutations
    # ==========================================

    async def update_rewards(self) -> Dict[str, any]:
        """
        Apply level-gated unlocks and gated-setting downgrades

        Returns:
            {'success': bool, 'unlocked': [reward ids], 'reverted': bool}
        """
        now = self.clock()

        def mutate(progress: UserProgress):
            unlocked = apply_level_unlocks(progress, now)
            reverted = reconcile_gated_settings(progress)
            return unlocked, reverted

        try:
            _, (unlocked, reverted) = await transactional_update(
                self.store, mutate, reason="update_rewards", timeout=self.timeout
            )
        except StoreError as e:
            return {"success": False, "unlocked": [], "reverted": False, "message": e.user_message}

        return {"success": True, "unlocked": unlocked, "reverted": reverted}

    async def unlock_reward(self, reward_id: str) -> Dict[str, any]:
        """Manually unlock a reward regardless of level"""
        now = self.clock()

        def mutate(progress: UserProgress):
            reward = progress.rewards.get(reward_id)
            if reward is None:
                raise InvalidOperationError(f"Reward with ID '{reward_id}' not found", operation="unlock_reward")
            if reward.unlocked:
                raise InvalidOperationError(f"Reward '{reward.title}' is already unlocked", operation="unlock_reward")
            reward.unlocked = True
            if reward.initial_uses:
                reward.uses = reward.initial_uses
                reward.last_refill = now
            return reward.title

        try:
            _, title = await transactional_update(self.store, mutate, reason="unlock_reward", timeout=self.timeout)
        except (InvalidOperationError, StoreError) as e:
            return {"success": False, "message": e.message}

        logger.info(f"Manually unlocked reward {reward_id}")
        return {"success": True, "message": f"Reward '{title}' manually unlocked"}

    async def use_reward(self, reward_id: str, day: Optional[str] = None) -> bool:
        """
        Spend one credit of a consumable on a covered day

        Args:
            reward_id: Consumable reward id
            day: YYYY-MM-DD day the credit covers (default: yesterday)

        Returns:
            False if locked, empty or the day is already covered
        """
        now = self.clock()
        covered_day = day or yesterday_of(to_date_string(now))

        def mutate(progress: UserProgress):
            reward = progress.rewards.get(reward_id)
            if reward is None or not consume_use(reward, now, covered_day):
                raise InvalidOperationError(f"No uses left for reward {reward_id}", operation="use_reward")
            return reward.uses

        try:
            _, remaining = await transactional_update(self.store, mutate, reason="use_reward", timeout=self.timeout)
        except (InvalidOperationError, StoreError):
            return False

        logger.info(f"Used reward {reward_id} for {covered_day}, {remaining} uses remaining")
        return True

    async def refill(self, reward_id: str = FLEX_SAVE_REWARD_ID) -> bool:
        """Monthly refill of a consumable; True if credits were added"""
        now = self.clock()

        current = (await self._load()).rewards.get(reward_id)
        if current is None or not needs_refill(current, now):
            return False

        def mutate(progress: UserProgress):
            reward = progress.rewards.get(reward_id)
            return reward is not None and refill_consumable(reward, now)

        try:
            _, refilled = await transactional_update(self.store, mutate, reason="refill", timeout=self.timeout)
        except StoreError as e:
            logger.error(f"Refill of {reward_id} failed: {e}")
            return False
        return refilled

    async def repair(self) -> bool:
        """Persist a repaired reward map (dedup + catalog backfill)"""
        try:
            await transactional_update(self.store, repair_rewards, reason="repair_rewards", timeout=self.timeout)
        except StoreError:
            return False
        return True
