"""Sync engines, review queue, streak and coordinator"""
from .metrics import MetricSyncEngine
from .workouts import WorkoutSyncEngine, WORKOUT_TYPE_MAP, map_activity_type
from .review import ReviewQueue
from .streak import StreakEngine, transition
from .coordinator import SyncCoordinator, SyncState
