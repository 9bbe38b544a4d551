"""Unit tests for XP System (stretch_progress/gamification/xp_system.py)"""
import pytest
from datetime import datetime, timezone

from stretch_progress.gamification.xp_system import add_xp, calculate_level, get_level_info


# ============================================================================
# Level Calculation Tests
# ============================================================================

@pytest.mark.parametrize("total_xp,expected_level", [
    (0, 1),
    (199, 1),
    (200, 2),
    (999, 3),
    (1000, 4),
    (14999, 9),
    (15000, 10),
    (99999, 10),
])
def test_calculate_level(total_xp, expected_level):
    """Test level thresholds"""
    assert calculate_level(total_xp)["level"] == expected_level


def test_calculate_level_progress():
    """Test progress towards the next level"""
    info = calculate_level(350)

    assert info["xp_for_current_level"] == 200
    assert info["xp_for_next_level"] == 500
    assert info["progress"] == 0.5


def test_calculate_level_max():
    """Test max level has no next threshold"""
    info = calculate_level(20000)

    assert info["xp_for_next_level"] is None
    assert info["progress"] == 1.0


# ============================================================================
# XP Award Tests
# ============================================================================

def test_add_xp_levels_up(progress_factory):
    """Test crossing a threshold levels up and records history"""
    progress = progress_factory()
    now = datetime(2024, 1, 3, tzinfo=timezone.utc)

    result = add_xp(progress, 250, "challenge:test", now)

    assert result == {"new_xp": 250, "old_level": 1, "new_level": 2, "leveled_up": True}
    assert progress.level == 2
    assert progress.xp_history[-1].amount == 250
    assert progress.xp_history[-1].source == "challenge:test"
    assert progress.xp_history[-1].timestamp == now


def test_add_xp_without_level_up(progress_factory):
    """Test small award keeps the level"""
    progress = progress_factory()

    result = add_xp(progress, 50)

    assert result["leveled_up"] is False
    assert progress.total_xp == 50


def test_add_xp_ignores_non_positive(progress_factory):
    """Test zero or negative awards change nothing"""
    progress = progress_factory(total_xp=100)

    result = add_xp(progress, 0)

    assert result["new_xp"] == 100
    assert progress.xp_history == []


def test_get_level_info(progress_factory):
    """Test level summary for display"""
    progress = progress_factory(level=2, total_xp=350)

    info = get_level_info(progress)

    assert info["level"] == 2
    assert info["xp_to_next_level"] == 150
    assert info["percent_to_next_level"] == 50
