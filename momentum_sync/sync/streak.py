"""Daily activity streak"""
import dataclasses
import json
from datetime import datetime
from typing import Callable, Optional, Tuple

from ..core.config import (
    CELEBRATION_MILESTONES,
    STEP_ACTIVITY_THRESHOLD,
    STREAK_KEY,
    STREAK_MILESTONE_INTERVAL,
)
from ..core.database import Database
from ..core.errors import DecodeError
from ..core.logging_setup import get_logger
from ..core.models import MilestoneType, Streak, StreakMilestone
from ..transforms.datetime_utils import calendar_days_between, day_bounds


def _increment(streak: Streak, now: datetime) -> Streak:
    current = streak.current_streak + 1
    milestones = list(streak.milestones)
    if current % STREAK_MILESTONE_INTERVAL == 0:
        milestones.append(StreakMilestone(days=current, achieved_date=now, type=MilestoneType.CURRENT))
    return dataclasses.replace(
        streak,
        current_streak=current,
        longest_streak=max(streak.longest_streak, current),
        last_active_date=now,
        streak_start_date=streak.streak_start_date or now,
        milestones=milestones,
    )


def _reset(streak: Streak) -> Streak:
    # last_active_date is kept so a broken streak stays broken until activity
    return dataclasses.replace(streak, current_streak=0, streak_start_date=None)


def transition(streak: Streak, active_today: bool, now: datetime) -> Tuple[Streak, bool]:
    """
    Apply one day's activity to a streak.

    Returns (new_streak, changed). The first matching row wins:

        last active today                  -> unchanged
        active, last active yesterday      -> increment
        active, last active 2+ days ago    -> reset then increment
        active, never active               -> increment from zero
        inactive, last active 2+ days ago  -> reset
        inactive, otherwise                -> unchanged
    """
    days = None
    if streak.last_active_date is not None:
        days = calendar_days_between(streak.last_active_date, now)

    if active_today:
        if days == 0:
            return (streak, False)
        if days == 1:
            return (_increment(streak, now), True)
        if days is not None and days > 1:
            return (_increment(_reset(streak), now), True)
        return (_increment(streak, now), True)

    if days is not None and days > 1:
        return (_reset(streak), True)
    return (streak, False)


class StreakEngine:
    """Derives the streak from tasks, workouts and steps in the local store"""

    def __init__(self, db: Database, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.clock = clock
        self.logger = get_logger()

    def get_current_streak(self) -> Streak:
        blob = self.db.get_state(STREAK_KEY)
        if blob is None:
            return Streak()
        try:
            data = json.loads(blob)
        except ValueError as e:
            raise DecodeError(f"Invalid streak record: {e}") from e
        return Streak.from_dict(data)

    def save_streak(self, streak: Streak) -> None:
        self.db.set_state(STREAK_KEY, json.dumps(streak.to_dict()))

    def is_active_today(self, now: Optional[datetime] = None) -> bool:
        """Completed task today, any workout today, or enough steps"""
        now = now or self.clock()
        start, end = day_bounds(now)

        if self.db.fetch_tasks_between(start, end, completed=True):
            return True
        if self.db.fetch_workouts_between(start, end):
            return True
        metrics = self.db.get_health_metrics(now.date())
        return metrics is not None and metrics.steps >= STEP_ACTIVITY_THRESHOLD

    def update_streak(self) -> Streak:
        now = self.clock()
        streak = self.get_current_streak()
        active = self.is_active_today(now)

        updated, changed = transition(streak, active, now)
        if changed:
            self.save_streak(updated)
            self.logger.sync(
                f"Streak updated: {streak.current_streak} -> {updated.current_streak} "
                f"(longest {updated.longest_streak})"
            )
            if len(updated.milestones) > len(streak.milestones):
                self.logger.sync(f"Milestone reached: {updated.current_streak} days")
        else:
            self.logger.debug(f"Streak unchanged at {streak.current_streak} (active today: {active})")
        return updated

    def reset_streak(self) -> Streak:
        streak = _reset(self.get_current_streak())
        self.save_streak(streak)
        self.logger.sync("Streak reset")
        return streak

    def should_celebrate_milestone(self) -> bool:
        return self.get_current_streak().current_streak in CELEBRATION_MILESTONES

    def streak_message(self) -> str:
        return self.get_current_streak().motivational_message
