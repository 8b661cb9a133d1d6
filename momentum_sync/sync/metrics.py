"""Daily activity metric sync"""
import asyncio
from datetime import datetime
from typing import Callable, Optional, Tuple

from ..core.conflicts import log_changes
from ..core.database import Database
from ..core.errors import HealthSourceError, NoData, QueryFailed, SyncFailure
from ..core.logging_setup import get_logger
from ..core.models import HealthMetrics, MetricSource
from ..health.source import HealthDataType, HealthSource
from ..transforms.datetime_utils import start_of_day
from ..transforms.units import meters_to_miles, seconds_to_minutes

HeartRate = Tuple[Optional[int], Optional[int], Optional[int]]


class MetricSyncEngine:
    """
    Pulls today's cumulative activity metrics and upserts them by day.

    Steps, distance, calories and active minutes are required: if any of
    them cannot be retrieved the sync aborts with SyncFailure and nothing
    is written. Heart rate and flights climbed are optional and resolve
    to None on failure.
    """

    SYNC_KIND = "metrics"

    def __init__(
        self,
        db: Database,
        source: HealthSource,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db = db
        self.source = source
        self.clock = clock
        self.logger = get_logger()

    async def sync_today_metrics(self) -> HealthMetrics:
        now = self.clock()
        start = start_of_day(now)
        self.logger.sync(f"Syncing metrics for {start.date().isoformat()}")

        sync_id = self.db.create_sync_log(self.SYNC_KIND, now)
        try:
            steps, meters, active, exercise_seconds, basal = await asyncio.gather(
                self._required("steps", HealthDataType.STEP_COUNT, start, now),
                self._required("distance", HealthDataType.DISTANCE_WALKING_RUNNING, start, now),
                self._required("active_calories", HealthDataType.ACTIVE_ENERGY, start, now),
                self._required("active_minutes", HealthDataType.EXERCISE_TIME, start, now),
                self._basal_energy(start, now),
            )
            average_hr, resting_hr, max_hr = await self._heart_rate(start, now)
            flights = await self._flights_climbed(start, now)

            active_calories = int(active)
            total_calories = active_calories + int(basal) if basal is not None else active_calories

            metrics = HealthMetrics(
                date=now.date(),
                steps=int(steps),
                distance=meters_to_miles(meters),
                active_calories=active_calories,
                total_calories=total_calories,
                active_minutes=seconds_to_minutes(exercise_seconds),
                average_heart_rate=average_hr,
                resting_heart_rate=resting_hr,
                max_heart_rate=max_hr,
                flights_climbed=flights,
                last_synced=now,
                source=MetricSource.PLATFORM_HEALTH,
            )

            inserted, changes = self.db.upsert_health_metrics(metrics)
            log_changes(f"health_metrics {metrics.date.isoformat()}", changes)
            self.db.finish_sync_log(sync_id, self.clock(), records_found=1)
        except Exception as e:
            self.db.finish_sync_log(sync_id, self.clock(), status="failed", error_message=str(e))
            raise

        self.logger.info(f"       Steps:          {metrics.steps}")
        self.logger.info(f"       Distance:       {metrics.distance:.2f} mi")
        self.logger.info(f"       Calories:       {metrics.active_calories} active / {metrics.total_calories} total")
        self.logger.info(f"       Active minutes: {metrics.active_minutes}")
        self.logger.sync(
            f"Metrics sync complete ({'inserted' if inserted else 'updated'}): "
            f"{metrics.steps} steps, {metrics.active_calories} cal"
        )
        return metrics

    async def _required(
        self, metric: str, data_type: HealthDataType, start: datetime, end: datetime
    ) -> float:
        try:
            return await self.source.cumulative_sum(data_type, start, end)
        except (QueryFailed, NoData) as e:
            raise SyncFailure(metric, e) from e

    async def _basal_energy(self, start: datetime, end: datetime) -> Optional[float]:
        """Basal energy, None when the source has none (total then equals active)"""
        try:
            return await self.source.cumulative_sum(HealthDataType.BASAL_ENERGY, start, end)
        except NoData:
            self.logger.debug("No basal energy data, total calories = active calories")
            return None
        except QueryFailed as e:
            raise SyncFailure("total_calories", e) from e

    async def _heart_rate(self, start: datetime, end: datetime) -> HeartRate:
        """(average, resting, max) bpm, all None on any failure"""
        try:
            samples = await self.source.samples(HealthDataType.HEART_RATE, start, end)
            if not samples:
                return (None, None, None)

            values = [s.value for s in samples]
            average = int(sum(values) / len(values))
            maximum = int(max(values))

            resting = None
            resting_samples = await self.source.samples(HealthDataType.RESTING_HEART_RATE, start, end)
            if resting_samples:
                resting = int(resting_samples[-1].value)

            return (average, resting, maximum)
        except HealthSourceError as e:
            self.logger.warning(f"Heart rate not available: {e}")
            return (None, None, None)

    async def _flights_climbed(self, start: datetime, end: datetime) -> Optional[int]:
        try:
            value = await self.source.cumulative_sum(HealthDataType.FLIGHTS_CLIMBED, start, end)
        except HealthSourceError as e:
            self.logger.warning(f"Flights climbed not available: {e}")
            return None
        return int(value) if value > 0 else None
