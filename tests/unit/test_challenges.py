"""Unit tests for Challenge System (stretch_progress/gamification/challenges.py)"""
import random
import pytest
from datetime import datetime, timedelta, timezone

from stretch_progress.exceptions import CatalogError
from stretch_progress.gamification.catalog import CHALLENGE_TEMPLATES
from stretch_progress.gamification.challenges import (
    ChallengeEngine,
    compute_progress,
    create_from_template,
    derive_status,
    get_challenge_counts,
    update_challenge_status,
    update_progress,
)
from stretch_progress.gamification.events import ChallengeCompleted
from stretch_progress.models.progress import (
    ActivityRecord,
    Challenge,
    ChallengeCategory,
    ChallengeStatus,
    ChallengeType,
    ProgressWindow,
    Statistics,
)


def utc(year, month, day, hour=10, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)


def make_challenge(now, **overrides):
    data = dict(
        id="test_challenge",
        title="Test Challenge",
        category=ChallengeCategory.DAILY,
        type=ChallengeType.ROUTINE_COUNT.value,
        window=ProgressWindow.TODAY,
        requirement=1,
        xp=100,
        start_date=now - timedelta(hours=1),
        end_date=now + timedelta(hours=10),
    )
    data.update(overrides)
    return Challenge(**data)


def completed_challenge(now, hours_ago=1, **overrides):
    done = now - timedelta(hours=hours_ago)
    return make_challenge(
        now,
        completed=True,
        progress=1,
        date_completed=done,
        status=ChallengeStatus.COMPLETED,
        **overrides,
    )


@pytest.fixture
def history():
    """Wednesday 2024-01-03 plus earlier sessions"""
    return [
        ActivityRecord(date=utc(2023, 12, 30), duration_minutes=4, area="neck"),
        ActivityRecord(date=utc(2024, 1, 1), duration_minutes=3, area="hips"),
        ActivityRecord(date=utc(2024, 1, 3, 8), duration_minutes=5, area="neck"),
        ActivityRecord(date=utc(2024, 1, 3, 19), duration_minutes=10, area="back"),
    ]


# ============================================================================
# Status Tests
# ============================================================================

def test_derive_status_active():
    """Test open challenge before its end date is active"""
    now = utc(2024, 1, 3)
    assert derive_status(make_challenge(now), now) == ChallengeStatus.ACTIVE


def test_derive_status_expired_without_completion():
    """Test open challenge past its end date is expired"""
    now = utc(2024, 1, 3)
    challenge = make_challenge(now, end_date=now - timedelta(minutes=1))
    assert derive_status(challenge, now) == ChallengeStatus.EXPIRED


def test_derive_status_completed_inside_claim_window():
    """Test daily challenge completed 11 hours ago is still claimable"""
    now = utc(2024, 1, 3)
    assert derive_status(completed_challenge(now, hours_ago=11), now) == ChallengeStatus.COMPLETED


def test_derive_status_completed_after_claim_window():
    """Test daily challenge completed 13 hours ago is expired"""
    now = utc(2024, 1, 3)
    assert derive_status(completed_challenge(now, hours_ago=13), now) == ChallengeStatus.EXPIRED


def test_derive_status_claimed():
    """Test claimed wins over everything else"""
    now = utc(2024, 1, 3)
    challenge = completed_challenge(now, hours_ago=100, claimed=True)
    assert derive_status(challenge, now) == ChallengeStatus.CLAIMED


def test_update_challenge_status_sets_expiry_and_warning():
    """Test completed challenge gets expiry_date and a warning near the deadline"""
    now = utc(2024, 1, 3, 20)
    challenge = completed_challenge(now, hours_ago=10)

    update_challenge_status(challenge, now)

    assert challenge.expiry_date == now + timedelta(hours=2)
    assert challenge.expiry_warning is True
    assert challenge.status == ChallengeStatus.COMPLETED


def test_update_challenge_status_active_warning_thresholds():
    """Test active warning is 1 day for daily and 2 days for other categories"""
    now = utc(2024, 1, 3)
    daily = make_challenge(now, end_date=now + timedelta(hours=5))
    weekly = make_challenge(now, category=ChallengeCategory.WEEKLY, end_date=now + timedelta(days=3))
    monthly = make_challenge(now, category=ChallengeCategory.MONTHLY, end_date=now + timedelta(days=1))

    assert update_challenge_status(daily, now).expiry_warning is True
    assert update_challenge_status(weekly, now).expiry_warning is False
    assert update_challenge_status(monthly, now).expiry_warning is True


# ============================================================================
# Progress Tests
# ============================================================================

@pytest.mark.parametrize("challenge_type,window,area,expected", [
    (ChallengeType.ROUTINE_COUNT, ProgressWindow.TODAY, None, 2),
    (ChallengeType.ROUTINE_COUNT, ProgressWindow.MORNING, None, 1),
    (ChallengeType.ROUTINE_COUNT, ProgressWindow.AFTERNOON, None, 0),
    (ChallengeType.ROUTINE_COUNT, ProgressWindow.EVENING, None, 1),
    (ChallengeType.ROUTINE_COUNT, ProgressWindow.NIGHT, None, 0),
    (ChallengeType.ROUTINE_COUNT, ProgressWindow.WEEK, None, 3),
    (ChallengeType.ROUTINE_COUNT, ProgressWindow.MONTH, None, 3),
    (ChallengeType.ROUTINE_COUNT, ProgressWindow.ALL_TIME, None, 12),
    (ChallengeType.DAILY_MINUTES, ProgressWindow.TODAY, None, 15),
    (ChallengeType.TOTAL_MINUTES, ProgressWindow.WEEK, None, 18),
    (ChallengeType.TOTAL_MINUTES, ProgressWindow.ALL_TIME, None, 90),
    (ChallengeType.STREAK, ProgressWindow.ALL_TIME, None, 4),
    (ChallengeType.WEEKLY_CONSISTENCY, ProgressWindow.WEEK, None, 2),
    (ChallengeType.AREA_VARIETY, ProgressWindow.WEEK, None, 3),
    (ChallengeType.AREA_VARIETY, ProgressWindow.ALL_TIME, None, 4),
    (ChallengeType.SPECIFIC_AREA, ProgressWindow.ALL_TIME, "neck", 2),
    (ChallengeType.SPECIFIC_AREA, ProgressWindow.TODAY, "back", 1),
    (ChallengeType.SPECIFIC_AREA, ProgressWindow.ALL_TIME, None, 2),
])
def test_compute_progress(history, challenge_type, window, area, expected):
    """Test each challenge type counts its window"""
    now = utc(2024, 1, 3, 20)
    stats = Statistics(current_streak=4, total_routines=12, total_minutes=90, unique_areas=["legs"])
    challenge = make_challenge(now, type=challenge_type.value, window=window, area=area)

    assert compute_progress(challenge, stats, history, now) == expected


def test_compute_progress_unknown_type_raises(history):
    """Test malformed challenge type surfaces as CatalogError"""
    now = utc(2024, 1, 3)
    challenge = make_challenge(now, type="jumping_jacks")

    with pytest.raises(CatalogError):
        compute_progress(challenge, Statistics(), history, now)


def test_update_progress_completes_challenge(history):
    """Test reaching the requirement completes the challenge once"""
    now = utc(2024, 1, 3, 20)
    challenge = make_challenge(now, requirement=2)

    assert update_progress(challenge, Statistics(), history, now) is True
    assert challenge.completed is True
    assert challenge.date_completed == now
    assert challenge.status == ChallengeStatus.COMPLETED
    assert challenge.expiry_date == now + timedelta(hours=12)

    assert update_progress(challenge, Statistics(), history, now) is False


def test_update_progress_skips_expired(history):
    """Test expired challenges are not updated"""
    now = utc(2024, 1, 3, 20)
    challenge = make_challenge(now, end_date=now - timedelta(hours=1))

    assert update_progress(challenge, Statistics(), history, now) is False
    assert challenge.progress == 0


# ============================================================================
# Template Tests
# ============================================================================

def test_create_from_template():
    """Test challenge instance copies the template and gets a cycle end date"""
    now = utc(2024, 1, 3)
    template = CHALLENGE_TEMPLATES[ChallengeCategory.WEEKLY][0]

    challenge = create_from_template(template, ChallengeCategory.WEEKLY, now, random.Random(1))

    assert challenge.id.startswith(f"{template.id}_2024-01-03_")
    assert challenge.template_id == template.id
    assert challenge.type == template.type.value
    assert challenge.window == template.window
    assert challenge.requirement == template.requirement
    assert challenge.status == ChallengeStatus.ACTIVE
    assert challenge.end_date == datetime(2024, 1, 6, 23, 59, 59, 999999, tzinfo=timezone.utc)


def test_create_from_template_avoids_id_collision():
    """Test a clashing id is regenerated"""
    now = utc(2024, 1, 3)
    template = CHALLENGE_TEMPLATES[ChallengeCategory.DAILY][0]
    taken = create_from_template(template, ChallengeCategory.DAILY, now, random.Random(7)).id

    challenge = create_from_template(template, ChallengeCategory.DAILY, now, random.Random(7), {taken})

    assert challenge.id != taken


# ============================================================================
# Engine Tests
# ============================================================================

@pytest.mark.asyncio
async def test_initial_pool_fills_every_category(clock, rng, store):
    """Test the first pass creates the full pool"""
    engine = ChallengeEngine(store, clock=clock, rng=rng)

    result = await engine.refresh_challenges()

    assert result["success"] is True
    assert result["added"] == 8
    counts = get_challenge_counts(await store.load(), clock())
    assert {c: v["active"] for c, v in counts["by_category"].items()} == {
        "daily": 3, "weekly": 2, "monthly": 2, "special": 1
    }


@pytest.mark.asyncio
async def test_claiming_does_not_regenerate_within_cycle(clock, rng, store):
    """Test claimed daily challenges are only replaced after the day rolls over"""
    engine = ChallengeEngine(store, clock=clock, rng=rng)
    await engine.refresh_challenges()

    progress = await store.load()
    first_ids = set()
    for challenge in progress.challenges.values():
        if challenge.category == ChallengeCategory.DAILY:
            challenge.completed = True
            challenge.claimed = True
            challenge.date_completed = clock()
            challenge.date_claimed = clock()
            challenge.status = ChallengeStatus.CLAIMED
            first_ids.add(challenge.id)
    await store.save(progress)

    clock.advance(hours=2)
    await engine.refresh_challenges()
    active = await engine.get_active_challenges()
    assert active["daily"] == []

    clock.set(utc(2024, 1, 4))
    await engine.refresh_challenges()
    active = await engine.get_active_challenges()
    assert len(active["daily"]) == 3
    assert not first_ids & {c.id for c in active["daily"]}


@pytest.mark.asyncio
async def test_cycle_boundary_keeps_unclaimed_completed(clock, rng, progress_factory, store_factory):
    """Test a completed, unclaimed challenge survives the day boundary"""
    clock.set(utc(2024, 1, 3, 20))
    progress = progress_factory()
    pending = completed_challenge(clock(), hours_ago=1, id="pending")
    progress.challenges[pending.id] = pending
    progress.last_daily_challenge_check = clock()
    store = store_factory(progress)
    engine = ChallengeEngine(store, clock=clock, rng=rng)

    clock.set(utc(2024, 1, 4, 0, 30))
    await engine.refresh_challenges()

    stored = await store.load()
    assert "pending" in stored.challenges
    daily = [c for c in stored.challenges.values() if c.category == ChallengeCategory.DAILY]
    assert len(daily) == 3


@pytest.mark.asyncio
async def test_update_user_challenges_emits_completion(clock, rng, event_bus, progress_factory, store_factory, sessions_factory):
    """Test newly completed challenges are returned and announced once"""
    progress = progress_factory()
    challenge = make_challenge(clock(), id="daily_stretch_test")
    progress.challenges[challenge.id] = challenge
    progress.last_daily_challenge_check = clock()
    store = store_factory(progress, sessions_factory("2024-01-03"))
    engine = ChallengeEngine(store, event_bus=event_bus, clock=clock, rng=rng)
    received = []
    event_bus.on(ChallengeCompleted, received.append)

    completed = await engine.update_user_challenges()
    again = await engine.update_user_challenges()

    assert [c.id for c in completed] == ["daily_stretch_test"]
    assert again == []
    assert [e.challenge.id for e in received] == ["daily_stretch_test"]
    stored = await store.load()
    assert stored.challenges["daily_stretch_test"].status == ChallengeStatus.COMPLETED


@pytest.mark.asyncio
async def test_unknown_type_does_not_block_batch(clock, rng, progress_factory, store_factory, sessions_factory):
    """Test one malformed challenge leaves the others updating"""
    progress = progress_factory()
    bad = make_challenge(clock(), id="bad", type="jumping_jacks")
    good = make_challenge(clock(), id="good")
    progress.challenges.update({bad.id: bad, good.id: good})
    progress.last_daily_challenge_check = clock()
    store = store_factory(progress, sessions_factory("2024-01-03"))
    engine = ChallengeEngine(store, clock=clock, rng=rng)

    completed = await engine.update_user_challenges()

    assert [c.id for c in completed] == ["good"]
    stored = await store.load()
    assert stored.challenges["bad"].progress == 0
    assert stored.challenges["bad"].completed is False


@pytest.mark.asyncio
async def test_update_user_challenges_expires_overdue(clock, rng, progress_factory, store_factory):
    """Test an overdue active challenge is marked expired"""
    progress = progress_factory()
    overdue = make_challenge(
        clock(),
        id="overdue",
        category=ChallengeCategory.WEEKLY,
        window=ProgressWindow.WEEK,
        requirement=5,
        end_date=clock() - timedelta(hours=1),
    )
    progress.challenges[overdue.id] = overdue
    progress.last_daily_challenge_check = clock()
    store = store_factory(progress)
    engine = ChallengeEngine(store, clock=clock, rng=rng)

    await engine.update_user_challenges()

    stored = await store.load()
    assert stored.challenges["overdue"].status == ChallengeStatus.EXPIRED


# ============================================================================
# Claim Tests
# ============================================================================

@pytest.mark.asyncio
async def test_claim_challenge_full_xp(clock, progress_factory, store_factory):
    """Test claiming inside the claim window awards full XP"""
    progress = progress_factory()
    progress.challenges["c1"] = completed_challenge(clock(), hours_ago=1, id="c1")
    store = store_factory(progress)
    engine = ChallengeEngine(store, clock=clock)

    result = await engine.claim_challenge("c1")

    assert result["success"] is True
    assert result["xp_earned"] == 100
    assert result["reduced"] is False
    assert result["leveled_up"] is False
    stored = await store.load()
    assert stored.total_xp == 100
    claimed = stored.challenges["c1"]
    assert claimed.claimed is True
    assert claimed.status == ChallengeStatus.CLAIMED
    assert claimed.history[0].xp_earned == 100


@pytest.mark.asyncio
async def test_claim_challenge_after_expiry_halves_xp(clock, progress_factory, store_factory):
    """Test claiming after expiry_date awards floor(xp / 2)"""
    progress = progress_factory()
    late = completed_challenge(clock(), hours_ago=13, id="late", xp=75)
    late.expiry_date = late.date_completed + timedelta(hours=12)
    progress.challenges["late"] = late
    store = store_factory(progress)
    engine = ChallengeEngine(store, clock=clock)

    result = await engine.claim_challenge("late")

    assert result["success"] is True
    assert result["xp_earned"] == 37
    assert result["reduced"] is True


@pytest.mark.asyncio
async def test_claim_challenge_level_up(clock, progress_factory, store_factory):
    """Test claim reports a level-up"""
    progress = progress_factory(total_xp=150)
    progress.challenges["c1"] = completed_challenge(clock(), id="c1")
    store = store_factory(progress)
    engine = ChallengeEngine(store, clock=clock)

    result = await engine.claim_challenge("c1")

    assert result["leveled_up"] is True
    assert result["new_level"] == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("challenge_id,claimed,completed,message", [
    ("missing", False, True, "Challenge not found"),
    ("c1", True, True, "Challenge already claimed"),
    ("c1", False, False, "Challenge is not completed"),
])
async def test_claim_challenge_invalid(clock, progress_factory, store_factory, challenge_id, claimed, completed, message):
    """Test invalid claims fail without touching the store"""
    progress = progress_factory()
    progress.challenges["c1"] = make_challenge(clock(), id="c1", claimed=claimed, completed=completed)
    store = store_factory(progress)
    version = store.stored_version
    engine = ChallengeEngine(store, clock=clock)

    result = await engine.claim_challenge(challenge_id)

    assert result["success"] is False
    assert result["xp_earned"] == 0
    assert result["message"] == message
    assert store.stored_version == version


@pytest.mark.asyncio
async def test_get_claimable_challenges(clock, progress_factory, store_factory):
    """Test claimable includes late completions but not claimed ones"""
    progress = progress_factory()
    progress.challenges["fresh"] = completed_challenge(clock(), hours_ago=1, id="fresh")
    progress.challenges["late"] = completed_challenge(clock(), hours_ago=20, id="late")
    progress.challenges["done"] = completed_challenge(clock(), hours_ago=1, id="done", claimed=True)
    store = store_factory(progress)
    engine = ChallengeEngine(store, clock=clock)

    claimable = await engine.get_claimable_challenges()

    assert sorted(c.id for c in claimable) == ["fresh", "late"]


@pytest.mark.asyncio
async def test_get_active_challenges_grouped(clock, rng, store):
    """Test active challenges are grouped by category"""
    engine = ChallengeEngine(store, clock=clock, rng=rng)
    await engine.refresh_challenges()

    active = await engine.get_active_challenges()
    counts = await engine.get_challenge_counts()

    assert {c: len(v) for c, v in active.items()} == {"daily": 3, "weekly": 2, "monthly": 2, "special": 1}
    assert all(ch.category.value == c for c, v in active.items() for ch in v)
    assert counts["total"] == 8
    assert counts["active"] == 8


def weekly_or_monthly(category, now, end_date):
    """Open, completed-unclaimed and claimed challenges of one category"""
    window = ProgressWindow.WEEK if category == ChallengeCategory.WEEKLY else ProgressWindow.MONTH
    return [
        make_challenge(now, id="open", category=category, window=window, requirement=50, end_date=end_date),
        completed_challenge(now, id="pending", category=category, window=window, end_date=end_date),
        completed_challenge(now, id="claimed", category=category, window=window, end_date=end_date, claimed=True),
    ]


def ids_in(progress, category):
    return {c.id for c in progress.challenges.values() if c.category == category}


@pytest.mark.asyncio
@pytest.mark.parametrize("category,before_boundary,after_boundary,end_date", [
    (ChallengeCategory.WEEKLY, utc(2024, 1, 6, 23), utc(2024, 1, 7, 0, 30), utc(2024, 1, 6, 23, 59)),
    (ChallengeCategory.MONTHLY, utc(2024, 1, 31, 23), utc(2024, 2, 1, 0, 30), utc(2024, 1, 31, 23, 59)),
])
async def test_pool_regenerates_only_after_period_boundary(
    clock, rng, progress_factory, store_factory, category, before_boundary, after_boundary, end_date
):
    """Test weekly/monthly pools are cleared and refilled only once the period rolls over"""
    clock.set(before_boundary - timedelta(hours=3))
    progress = progress_factory()
    for challenge in weekly_or_monthly(category, clock(), end_date):
        progress.challenges[challenge.id] = challenge
    progress.last_daily_challenge_check = clock()
    store = store_factory(progress)
    engine = ChallengeEngine(store, clock=clock, rng=rng)

    # Late in the same period: nothing removed or added
    clock.set(before_boundary)
    await engine.refresh_challenges()
    assert ids_in(await store.load(), category) == {"open", "claimed", "pending"}

    # First pass of the new period
    clock.set(after_boundary)
    await engine.refresh_challenges()

    stored = await store.load()
    remaining = ids_in(stored, category)
    assert "pending" in remaining
    assert "open" not in remaining
    assert "claimed" not in remaining
    assert len(remaining) == 2
    new = [stored.challenges[i] for i in remaining - {"pending"}]
    assert new[0].start_date == after_boundary
    assert derive_status(stored.challenges["pending"], after_boundary) == ChallengeStatus.COMPLETED


@pytest.mark.asyncio
@pytest.mark.parametrize("claimed", [True, False])
async def test_special_challenge_is_never_replaced(clock, rng, store, claimed):
    """Test a special stays in place after it is claimed or lapses"""
    engine = ChallengeEngine(store, clock=clock, rng=rng)
    await engine.refresh_challenges()

    progress = await store.load()
    special_ids = ids_in(progress, ChallengeCategory.SPECIAL)
    assert len(special_ids) == 1
    if claimed:
        special = progress.challenges[next(iter(special_ids))]
        special.completed = True
        special.claimed = True
        special.progress = special.requirement
        special.date_completed = clock()
        await store.save(progress)

    clock.advance(days=20)
    await engine.refresh_challenges()

    stored = await store.load()
    assert ids_in(stored, ChallengeCategory.SPECIAL) == special_ids
    expected = ChallengeStatus.CLAIMED if claimed else ChallengeStatus.EXPIRED
    assert derive_status(stored.challenges[next(iter(special_ids))], clock()) == expected
