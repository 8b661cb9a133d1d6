import logging
from datetime import datetime, timedelta

import pytest

from momentum_sync.core.database import Database
from momentum_sync.core.logging_setup import LOGGER_NAME
from momentum_sync.health.memory import InMemoryHealthSource
from momentum_sync.health.source import ActivityType, ExternalWorkout, HealthDataType

NOW = datetime(2026, 3, 10, 15, 30)


class FixedClock:
    """Controllable clock for day-boundary tests"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_workout(
    workout_id: str,
    activity_type: str = ActivityType.RUNNING,
    start: datetime = NOW - timedelta(hours=3),
    duration: float = 1800,
    calories: float = 310.7,
    meters: float = 8046.7,
) -> ExternalWorkout:
    statistics = {}
    if calories is not None:
        statistics[HealthDataType.ACTIVE_ENERGY] = calories
    if meters is not None:
        statistics[HealthDataType.DISTANCE_WALKING_RUNNING] = meters
    return ExternalWorkout(
        workout_id=workout_id,
        activity_type=activity_type,
        start=start,
        end=start + timedelta(seconds=duration),
        duration=duration,
        statistics=statistics,
    )


def seed_today(source: InMemoryHealthSource, day_start: datetime) -> None:
    """Typical day of samples, all before NOW"""
    source.add_sample(HealthDataType.STEP_COUNT, day_start + timedelta(hours=9), 4000)
    source.add_sample(HealthDataType.STEP_COUNT, day_start + timedelta(hours=12), 1500)
    source.add_sample(HealthDataType.DISTANCE_WALKING_RUNNING, day_start + timedelta(hours=12), 3218.68)
    source.add_sample(HealthDataType.ACTIVE_ENERGY, day_start + timedelta(hours=12), 250.6)
    source.add_sample(HealthDataType.BASAL_ENERGY, day_start + timedelta(hours=12), 1400.2)
    source.add_sample(HealthDataType.EXERCISE_TIME, day_start + timedelta(hours=12), 1830)
    source.add_sample(HealthDataType.HEART_RATE, day_start + timedelta(hours=9), 60)
    source.add_sample(HealthDataType.HEART_RATE, day_start + timedelta(hours=10), 90)
    source.add_sample(HealthDataType.HEART_RATE, day_start + timedelta(hours=11), 120)
    source.add_sample(HealthDataType.RESTING_HEART_RATE, day_start + timedelta(hours=8), 55)
    source.add_sample(HealthDataType.RESTING_HEART_RATE, day_start + timedelta(hours=7), 58)
    source.add_sample(HealthDataType.FLIGHTS_CLIMBED, day_start + timedelta(hours=12), 4)
    # Yesterday, outside today's window
    source.add_sample(HealthDataType.STEP_COUNT, day_start - timedelta(hours=2), 9999)


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "momentum.db")
    database.init_schema()
    yield database
    database.close()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def source():
    return InMemoryHealthSource()


@pytest.fixture
def seeded_source(source):
    seed_today(source, datetime(2026, 3, 10))
    return source


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
