import itertools
import json
from datetime import timedelta

import pytest

from conftest import NOW, FixedClock
from momentum_sync.core.config import STREAK_KEY
from momentum_sync.core.errors import DecodeError
from momentum_sync.core.models import (
    CardioSession,
    CardioType,
    DailyTask,
    HealthMetrics,
    MilestoneType,
    Streak,
    TaskCategory,
    Workout,
    WorkoutType,
)
from momentum_sync.sync.streak import StreakEngine, transition

YESTERDAY = NOW - timedelta(days=1)


@pytest.fixture
def engine(db, clock):
    return StreakEngine(db, clock)


class TestTransition:
    def test_already_active_today_is_unchanged(self):
        streak = Streak(current_streak=3, longest_streak=5, last_active_date=NOW - timedelta(hours=2))

        for active in (True, False):
            updated, changed = transition(streak, active, NOW)
            assert updated is streak
            assert changed is False

    def test_active_after_yesterday_increments(self):
        started = NOW - timedelta(days=3)
        streak = Streak(current_streak=3, longest_streak=3, last_active_date=YESTERDAY, streak_start_date=started)

        updated, changed = transition(streak, True, NOW)

        assert changed is True
        assert updated.current_streak == 4
        assert updated.longest_streak == 4
        assert updated.last_active_date == NOW
        assert updated.streak_start_date == started

    def test_active_after_gap_restarts_at_one(self):
        streak = Streak(
            current_streak=5, longest_streak=8,
            last_active_date=NOW - timedelta(days=3),
            streak_start_date=NOW - timedelta(days=8),
        )

        updated, changed = transition(streak, True, NOW)

        assert changed is True
        assert updated.current_streak == 1
        assert updated.longest_streak == 8
        assert updated.streak_start_date == NOW

    def test_first_activity_starts_streak(self):
        updated, changed = transition(Streak(), True, NOW)

        assert changed is True
        assert (updated.current_streak, updated.longest_streak) == (1, 1)
        assert updated.streak_start_date == NOW
        assert updated.last_active_date == NOW

    def test_inactive_after_gap_breaks_streak(self):
        last_active = NOW - timedelta(days=3)
        streak = Streak(
            current_streak=10, longest_streak=10,
            last_active_date=last_active,
            streak_start_date=NOW - timedelta(days=12),
        )

        updated, changed = transition(streak, False, NOW)

        assert changed is True
        assert updated.current_streak == 0
        assert updated.longest_streak == 10
        assert updated.streak_start_date is None
        assert updated.last_active_date == last_active

    @pytest.mark.parametrize("last_active", [None, YESTERDAY])
    def test_inactive_otherwise_is_unchanged(self, last_active):
        streak = Streak(current_streak=2 if last_active else 0, longest_streak=2, last_active_date=last_active)

        updated, changed = transition(streak, False, NOW)

        assert updated is streak
        assert changed is False

    def test_day_boundary_uses_calendar_days(self):
        late = NOW.replace(hour=23, minute=59) - timedelta(days=1)
        early = NOW.replace(hour=0, minute=1)
        streak = Streak(current_streak=1, longest_streak=1, last_active_date=late)

        updated, _ = transition(streak, True, early)

        assert updated.current_streak == 2

    def test_clock_moved_back_still_counts(self):
        streak = Streak(current_streak=2, longest_streak=2, last_active_date=NOW + timedelta(days=2))

        updated, changed = transition(streak, True, NOW)

        assert changed is True
        assert updated.current_streak == 3

    def test_week_adds_one_milestone(self):
        streak = Streak(current_streak=6, longest_streak=6, last_active_date=YESTERDAY)

        updated, _ = transition(streak, True, NOW)

        assert updated.current_streak == 7
        assert len(updated.milestones) == 1
        milestone = updated.milestones[0]
        assert milestone.days == 7
        assert milestone.type == MilestoneType.CURRENT
        assert milestone.achieved_date == NOW

    def test_two_weeks_of_activity(self):
        streak = Streak()
        day = NOW
        for _ in range(14):
            streak, _ = transition(streak, True, day)
            day += timedelta(days=1)

        assert streak.current_streak == 14
        assert [m.days for m in streak.milestones] == [7, 14]

    @pytest.mark.parametrize("pattern", list(itertools.product([True, False], repeat=6)))
    def test_longest_never_decreases(self, pattern):
        streak = Streak()
        day = NOW
        for active in pattern:
            before = streak.longest_streak
            streak, _ = transition(streak, active, day)
            assert streak.longest_streak >= before
            assert 0 <= streak.current_streak <= streak.longest_streak
            day += timedelta(days=1)


class TestActivitySignal:
    def test_completed_task_counts(self, engine, db):
        db.save_daily_task(DailyTask(title="Drink water", category=TaskCategory.HYDRATION, date=NOW, is_completed=True))

        assert engine.is_active_today() is True

    def test_open_task_does_not_count(self, engine, db):
        db.save_daily_task(DailyTask(title="Drink water", category=TaskCategory.HYDRATION, date=NOW))

        assert engine.is_active_today() is False

    def test_workout_today_counts(self, engine, db):
        db.insert_workout(Workout(date=NOW - timedelta(hours=1), type=WorkoutType.STRENGTH))

        assert engine.is_active_today() is True

    def test_workout_yesterday_does_not_count(self, engine, db):
        db.insert_workout(Workout(date=YESTERDAY, type=WorkoutType.STRENGTH))

        assert engine.is_active_today() is False

    def test_cardio_session_does_not_count(self, engine, db):
        db.insert_cardio_session(CardioSession(date=NOW - timedelta(hours=1), type=CardioType.RUNNING, distance=3.0))

        assert engine.is_active_today() is False

    @pytest.mark.parametrize("steps, expected", [(999, False), (1000, True), (12000, True)])
    def test_step_threshold(self, engine, db, steps, expected):
        db.upsert_health_metrics(HealthMetrics(date=NOW.date(), steps=steps))

        assert engine.is_active_today() is expected


class TestStreakEngine:
    def test_first_completed_task_starts_streak(self, engine, db):
        db.save_daily_task(DailyTask(title="Drink water", category=TaskCategory.HYDRATION, date=NOW, is_completed=True))

        streak = engine.update_streak()

        assert streak.current_streak == 1
        assert streak.longest_streak == 1
        assert streak.streak_start_date == NOW
        assert streak.milestones == []
        assert engine.get_current_streak().current_streak == 1

    def test_no_activity_persists_nothing(self, engine, db):
        streak = engine.update_streak()

        assert streak.current_streak == 0
        assert db.get_state(STREAK_KEY) is None

    def test_consecutive_days(self, db):
        clock = FixedClock()
        engine = StreakEngine(db, clock)
        for _ in range(3):
            db.upsert_health_metrics(HealthMetrics(date=clock.now.date(), steps=5000))
            engine.update_streak()
            clock.advance(days=1)

        assert engine.get_current_streak().current_streak == 3
        assert engine.streak_message() == "Building momentum!"

    def test_missed_days_break_streak(self, db):
        clock = FixedClock()
        engine = StreakEngine(db, clock)
        db.upsert_health_metrics(HealthMetrics(date=clock.now.date(), steps=5000))
        engine.update_streak()
        clock.advance(days=3)

        streak = engine.update_streak()

        assert streak.current_streak == 0
        assert streak.longest_streak == 1

    def test_round_trip(self, engine):
        streak, _ = transition(Streak(current_streak=6, longest_streak=6, last_active_date=YESTERDAY), True, NOW)
        engine.save_streak(streak)

        assert engine.get_current_streak() == streak

    @pytest.mark.parametrize("blob", [
        "not json",
        json.dumps({"current_streak": 5, "longest_streak": 3, "milestones": []}),
        json.dumps({"current_streak": -1, "longest_streak": 3, "milestones": []}),
        json.dumps({"longest_streak": 3}),
        json.dumps({
            "current_streak": 7, "longest_streak": 7,
            "milestones": [{"id": "m", "days": 7, "achieved_date": "2026-03-10T00:00:00", "type": "weekly"}],
        }),
    ])
    def test_corrupt_record_fails_loudly(self, engine, db, blob):
        db.set_state(STREAK_KEY, blob)

        with pytest.raises(DecodeError):
            engine.get_current_streak()

    @pytest.mark.parametrize("days, expected", [(6, False), (7, True), (8, False), (14, True), (100, True)])
    def test_should_celebrate_milestone(self, engine, days, expected):
        engine.save_streak(Streak(current_streak=days, longest_streak=days))

        assert engine.should_celebrate_milestone() is expected

    def test_reset_keeps_longest(self, engine):
        engine.save_streak(Streak(current_streak=5, longest_streak=9, last_active_date=NOW, streak_start_date=NOW))

        streak = engine.reset_streak()

        assert streak.current_streak == 0
        assert streak.longest_streak == 9
        assert streak.streak_start_date is None
        assert engine.get_current_streak() == streak


@pytest.mark.parametrize("days, message", [
    (0, "Start your streak today!"),
    (1, "Great start! Keep it going!"),
    (7, "One week strong!"),
    (10, "You're on fire!"),
    (30, "30 days! You're a legend!"),
    (45, "Amazing consistency!"),
])
def test_motivational_message(days, message):
    assert Streak(current_streak=days, longest_streak=days).motivational_message == message
