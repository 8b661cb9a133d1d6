"""Workout sync: incremental and time-range fetches staged for review"""
import dataclasses
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Union

from ..core.config import RECENT_WORKOUT_DAYS, WORKOUT_ANCHOR_KEY
from ..core.database import Database
from ..core.errors import HealthSourceError
from ..core.logging_setup import get_logger
from ..core.models import CardioSession, Workout, WorkoutReviewItem, WorkoutType
from ..health.source import ActivityType, ExternalWorkout, HealthDataType, HealthSource
from ..transforms.units import meters_to_miles, pace_min_per_mile

# External activity type -> domain workout type.
# Anything not listed is dropped before it reaches the review queue.
WORKOUT_TYPE_MAP = {
    ActivityType.RUNNING: WorkoutType.RUNNING,
    ActivityType.WALKING: WorkoutType.WALKING,
    ActivityType.CYCLING: WorkoutType.CYCLING,
    ActivityType.SWIMMING: WorkoutType.SWIMMING,
    ActivityType.HIKING: WorkoutType.HIKING,
    ActivityType.TRADITIONAL_STRENGTH_TRAINING: WorkoutType.STRENGTH,
    ActivityType.FUNCTIONAL_STRENGTH_TRAINING: WorkoutType.STRENGTH,
    ActivityType.HIGH_INTENSITY_INTERVAL_TRAINING: WorkoutType.HIIT,
    ActivityType.YOGA: WorkoutType.YOGA,
    ActivityType.PILATES: WorkoutType.PILATES,
    ActivityType.STAIR_CLIMBING: WorkoutType.STAIR_CLIMBING,
    ActivityType.ROWING: WorkoutType.ROWING,
    ActivityType.ELLIPTICAL: WorkoutType.ELLIPTICAL,
    ActivityType.SOCCER: WorkoutType.SOCCER,
    ActivityType.PICKLEBALL: WorkoutType.PICKLEBALL,
    ActivityType.BASKETBALL: WorkoutType.BASKETBALL,
    ActivityType.TENNIS: WorkoutType.TENNIS,
    ActivityType.VOLLEYBALL: WorkoutType.VOLLEYBALL,
}


def map_activity_type(activity_type: str) -> Optional[WorkoutType]:
    return WORKOUT_TYPE_MAP.get(activity_type)


class WorkoutSyncEngine:
    """
    Converts external workouts into review items.

    fetch_new_workouts() is incremental: the anchor is persisted as soon
    as the source answers, before any conversion, so each workout is
    delivered at most once. fetch_recent_workouts() scans a time window
    and never touches the anchor.
    """

    def __init__(
        self,
        db: Database,
        source: HealthSource,
        clock: Callable[[], datetime] = datetime.now,
        enrich: bool = False,
        dedupe: bool = False,
    ):
        self.db = db
        self.source = source
        self.clock = clock
        self.enrich_items = enrich
        self.dedupe = dedupe
        self.logger = get_logger()

    # -- Fetching ------------------------------------------------------------

    async def fetch_new_workouts(self) -> List[WorkoutReviewItem]:
        sync_id = self.db.create_sync_log("workouts", self.clock())
        try:
            anchor = self.db.get_state(WORKOUT_ANCHOR_KEY)
            records, new_anchor = await self.source.incremental_changes(HealthDataType.WORKOUT, anchor)

            self.db.set_state(WORKOUT_ANCHOR_KEY, new_anchor)
            self.logger.debug(f"Workout anchor advanced: {anchor} -> {new_anchor}")

            items = await self._convert_all(records)
            self.db.finish_sync_log(sync_id, self.clock(), records_found=len(items))
        except Exception as e:
            self.db.finish_sync_log(sync_id, self.clock(), status="failed", error_message=str(e))
            raise

        self.logger.sync(f"Found {len(items)} new workout(s) to review")
        return items

    async def fetch_recent_workouts(self, days: int = RECENT_WORKOUT_DAYS) -> List[WorkoutReviewItem]:
        """Workouts started in the last `days` days, newest first"""
        end = self.clock()
        start = end - timedelta(days=days)

        sync_id = self.db.create_sync_log("recent_workouts", end)
        try:
            records = await self.source.range_query(HealthDataType.WORKOUT, start, end)
            records = sorted(records, key=lambda r: r.start, reverse=True)
            items = await self._convert_all(records)
            self.db.finish_sync_log(sync_id, self.clock(), records_found=len(items))
        except Exception as e:
            self.db.finish_sync_log(sync_id, self.clock(), status="failed", error_message=str(e))
            raise

        self.logger.sync(f"Found {len(items)} workout(s) from last {days} days")
        return items

    # -- Conversion ----------------------------------------------------------

    def convert(self, record: ExternalWorkout, now: Optional[datetime] = None) -> Optional[WorkoutReviewItem]:
        """Build a review item, or None if the activity type is unsupported"""
        workout_type = map_activity_type(record.activity_type)
        if workout_type is None:
            return None

        calories = record.statistic(HealthDataType.ACTIVE_ENERGY)
        meters = record.statistic(HealthDataType.DISTANCE_WALKING_RUNNING)

        return WorkoutReviewItem(
            external_workout_id=record.workout_id,
            date=record.start,
            type=workout_type,
            duration=max(record.duration, 0.0),
            calories=int(calories) if calories is not None else None,
            distance=meters_to_miles(meters),
            detected_at=now or self.clock(),
        )

    async def enrich(self, item: WorkoutReviewItem, record: ExternalWorkout) -> WorkoutReviewItem:
        """
        Add heart rate over the workout window and average pace.
        Fields stay None if the secondary query fails.
        """
        average_hr = max_hr = None
        try:
            samples = await self.source.samples(HealthDataType.HEART_RATE, record.start, record.end)
            if samples:
                values = [s.value for s in samples]
                average_hr = int(sum(values) / len(values))
                max_hr = int(max(values))
        except HealthSourceError as e:
            self.logger.debug(f"No heart rate for workout {record.workout_id}: {e}")

        return dataclasses.replace(
            item,
            average_heart_rate=average_hr,
            max_heart_rate=max_hr,
            average_pace=pace_min_per_mile(item.duration, item.distance),
        )

    async def _convert_all(self, records: Iterable[ExternalWorkout]) -> List[WorkoutReviewItem]:
        now = self.clock()
        items = []
        dropped = 0
        for record in records:
            item = self.convert(record, now)
            if item is None:
                dropped += 1
                continue
            if self.enrich_items:
                item = await self.enrich(item, record)
            items.append(item)
        if dropped:
            self.logger.debug(f"Dropped {dropped} workout(s) with unsupported activity types")
        return items

    # -- Review decisions ----------------------------------------------------

    def approve(self, item: WorkoutReviewItem) -> Optional[Union[Workout, CardioSession]]:
        """
        Commit a review item to the local store.

        Cardio items with a distance become a CardioSession, everything
        else an approved Workout. With dedupe enabled, returns None and
        inserts nothing if the external workout was already committed.
        """
        if self.dedupe:
            existing = self.db.find_by_external_id(item.external_workout_id)
            if existing:
                self.logger.info(
                    f"Skipped {item.type.value}: already saved in {existing['table']} ({existing['id']})"
                )
                return None

        now = self.clock()
        if item.is_cardio and item.distance is not None:
            session = item.to_cardio_session(now)
            self.db.insert_cardio_session(session)
            self.logger.sync(f"Approved cardio workout: {item.type.value} ({item.distance_formatted})")
            return session

        workout = item.to_workout(now)
        self.db.insert_workout(workout)
        self.logger.sync(f"Approved workout: {item.type.value} ({item.duration_formatted})")
        return workout

    def ignore(self, item: WorkoutReviewItem) -> None:
        # Anchor was already advanced at fetch time
        self.logger.sync(f"Ignored workout: {item.type.value}")
