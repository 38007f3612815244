from datetime import date, datetime, timezone

import pytest

from reading_core.domain.models.entitlement import ReadingLimitDecision, TierPolicy
from reading_core.domain.rules.achievement_rules import AchievementFacts, AchievementRules
from reading_core.domain.rules.limit_rules import CounterView, LimitRules
from reading_core.domain.rules.progress_rules import ProgressRules
from reading_core.domain.rules.streak_rules import StreakRules


def test_progress_is_offset_over_scrollable_height():
    assert ProgressRules.compute_progress(0, 1000, 3000) == 0.0
    assert ProgressRules.compute_progress(1000, 1000, 3000) == 0.5
    assert ProgressRules.compute_progress(2000, 1000, 3000) == 1.0
    # Overscroll bounce
    assert ProgressRules.compute_progress(2300, 1000, 3000) == 1.0
    assert ProgressRules.compute_progress(-40, 1000, 3000) == 0.0


def test_content_shorter_than_viewport_is_fully_read():
    assert ProgressRules.compute_progress(0, 1000, 800) == 1.0
    assert ProgressRules.compute_progress(0, 1000, 1000) == 1.0


def test_offset_for_progress_inverts_compute():
    assert ProgressRules.offset_for_progress(0.3, 1000, 2000) == pytest.approx(300)
    assert ProgressRules.offset_for_progress(0.5, 1000, 500) == 0.0


def test_restore_needs_threshold_and_both_measurements():
    assert ProgressRules.should_restore(0.5, 1000, 3000, 0.05) is True
    assert ProgressRules.should_restore(0.05, 1000, 3000, 0.05) is False
    assert ProgressRules.should_restore(0.5, 0, 3000, 0.05) is False
    assert ProgressRules.should_restore(0.5, 1000, 0, 0.05) is False


def test_exceeds_tolerates_float_noise():
    assert ProgressRules.exceeds(0.30000000000000004, 0.3) is False
    assert ProgressRules.exceeds(0.31, 0.3) is True


def test_full_decision_must_allow_everything():
    assert ReadingLimitDecision.full().max_progress_allowed == 1.0
    with pytest.raises(ValueError):
        ReadingLimitDecision(can_read_full=True, max_progress_allowed=0.5)


def test_ai_limit_prefers_daily_then_lifetime():
    daily = TierPolicy(daily_ai_limit=2, lifetime_ai_limit=5)
    assert LimitRules.evaluate_ai(daily, CounterView(ai_lifetime=9, ai_today=1, audio_month=0)).can_generate is True
    blocked = LimitRules.evaluate_ai(daily, CounterView(ai_lifetime=0, ai_today=2, audio_month=0))
    assert blocked.can_generate is False
    assert blocked.limit == 2

    lifetime = TierPolicy(lifetime_ai_limit=2)
    result = LimitRules.evaluate_ai(lifetime, CounterView(ai_lifetime=2, ai_today=0, audio_month=0))
    assert result.can_generate is False
    assert "Upgrade" in result.reason

    unbounded = TierPolicy()
    assert unbounded.unlimited_ai
    assert LimitRules.evaluate_ai(unbounded, CounterView(100, 100, 0)).can_generate is True


def test_audio_limit_zero_means_not_allowed():
    result = LimitRules.evaluate_audio(TierPolicy(monthly_audio_limit=0), CounterView(0, 0, 0))
    assert result.can_generate is False


def test_counters_reset_on_new_day_and_month():
    today = date(2026, 3, 10)
    view = LimitRules.view_counters(today, 4, 2, date(2026, 3, 9), 3, date(2026, 2, 27))
    assert view.ai_lifetime == 4
    assert view.ai_today == 0
    assert view.audio_month == 0

    same = LimitRules.view_counters(today, 4, 2, today, 3, date(2026, 3, 1))
    assert same.ai_today == 2
    assert same.audio_month == 3


def test_reset_times_follow_user_timezone():
    zone = LimitRules.resolve_zone("Asia/Taipei")
    now = datetime(2026, 3, 10, 20, 0, tzinfo=timezone.utc)  # 04:00 on the 11th in Taipei
    assert LimitRules.local_today(now, zone) == date(2026, 3, 11)
    assert LimitRules.next_daily_reset(now, zone) == datetime(2026, 3, 11, 16, 0, tzinfo=timezone.utc)
    assert LimitRules.next_monthly_reset(now, zone) == datetime(2026, 3, 31, 16, 0, tzinfo=timezone.utc)
    assert LimitRules.resolve_zone("Not/AZone").key == "UTC"


def test_current_streak_walks_back_from_today():
    today = date(2026, 3, 10)
    days = [date(2026, 3, 10), date(2026, 3, 9), date(2026, 3, 8), date(2026, 3, 6)]
    assert StreakRules.current_streak(days, today) == 3
    assert StreakRules.current_streak(days[1:], today) == 0
    assert StreakRules.longest_streak(days) == 3
    assert StreakRules.last_active(days) == today


def test_streak_qualification():
    assert StreakRules.is_qualifying(True, False, 0, 300) is True
    assert StreakRules.is_qualifying(False, True, 300, 300) is True
    assert StreakRules.is_qualifying(False, True, 299, 300) is False
    # Open sessions never qualify on duration alone
    assert StreakRules.is_qualifying(False, False, 900, 300) is False


def test_achievement_predicates():
    facts = AchievementFacts(
        completed_stories=10,
        current_streak=7,
        total_reading_seconds=10 * 3600,
        session_local_hour=21,
        categories_read={"animals", "fantasy", "space", "ocean", "friendship"},
    )
    assert AchievementRules.earned(facts) == [
        "first_story",
        "week_streak",
        "story_lover",
        "night_owl",
        "bookworm",
        "explorer",
    ]
    assert AchievementRules.earned(AchievementFacts(session_local_hour=19)) == []
    assert AchievementRules.is_known("night_owl")
    assert not AchievementRules.is_known("speed_reader")
