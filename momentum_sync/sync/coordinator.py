"""Sync coordinator: authorization, syncs, review decisions, background delivery"""
import asyncio
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from ..core.config import RECENT_WORKOUT_DAYS
from ..core.database import Database
from ..core.errors import BatchError, HealthSourceError, MomentumError, NotFound, SourceUnavailable
from ..core.logging_setup import get_logger
from ..core.models import BatchResult, CardioSession, HealthMetrics, Workout, WorkoutReviewItem
from ..health.permissions import READ_TYPES, WRITE_TYPES, PermissionStatus, permission_summary
from ..health.source import (
    Acknowledge,
    AuthorizationStatus,
    DeliveryFrequency,
    HealthDataType,
    HealthSource,
)
from ..transforms.datetime_utils import to_iso
from .metrics import MetricSyncEngine
from .review import ReviewQueue
from .workouts import WorkoutSyncEngine

# Per-item failures a bulk review operation collects instead of raising
ITEM_ERRORS = (MomentumError, sqlite3.Error)


@dataclass
class SyncState:
    """Snapshot of coordinator state for display"""
    is_authorized: bool
    permission_status: PermissionStatus
    pending_workouts: List[WorkoutReviewItem]
    last_sync_date: Optional[datetime]
    last_error: Optional[str]
    is_syncing: bool
    background_running: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authorized": self.is_authorized,
            "permission": self.permission_status.value,
            "pending": len(self.pending_workouts),
            "last_sync": to_iso(self.last_sync_date),
            "last_error": self.last_error,
            "syncing": self.is_syncing,
            "background": self.background_running,
        }


class SyncCoordinator:
    """
    Single owner of sync state for the process.

    Metric and incremental workout syncs are serialized by one lock so the
    anchor cannot be advanced twice and the per-day metrics upsert never
    races. Background "new data" signals are queued and drained by a
    consumer task that runs sync_workouts().
    """

    def __init__(
        self,
        db: Database,
        source: HealthSource,
        clock: Callable[[], datetime] = datetime.now,
        metric_engine: Optional[MetricSyncEngine] = None,
        workout_engine: Optional[WorkoutSyncEngine] = None,
        queue: Optional[ReviewQueue] = None,
    ):
        self.db = db
        self.source = source
        self.clock = clock
        self.metric_engine = metric_engine or MetricSyncEngine(db, source, clock)
        self.workout_engine = workout_engine or WorkoutSyncEngine(db, source, clock)
        self.queue = queue or ReviewQueue()
        self.logger = get_logger()

        self.is_authorized = False
        self.permission_status = PermissionStatus.NOT_AUTHORIZED
        self.last_sync_date: Optional[datetime] = db.last_successful_sync()
        self.last_error: Optional[str] = None

        self._lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._events: Optional[asyncio.Queue] = None
        self._consumer: Optional[asyncio.Task] = None
        self._subscribed = False

        self.check_authorization_status()

    # -- Authorization -------------------------------------------------------

    def check_authorization_status(self) -> PermissionStatus:
        steps = self.source.authorization_status(HealthDataType.STEP_COUNT)
        workouts = self.source.authorization_status(HealthDataType.WORKOUT)
        self.is_authorized = AuthorizationStatus.AUTHORIZED in (steps, workouts)
        self.permission_status = permission_summary(self.source)
        return self.permission_status

    async def request_authorization(self) -> bool:
        """
        Request access, then enable background delivery and run the
        initial sync. Failures after authorization are logged, not raised.
        """
        if not self.source.is_available():
            error = SourceUnavailable()
            self._record_error(error)
            raise error

        success = await self.source.request_authorization(READ_TYPES, WRITE_TYPES)
        self.check_authorization_status()
        self.logger.sync(f"Authorization: {self.permission_status.description}")

        if success:
            await self.enable_background_delivery()
            self.start()
            try:
                await self.perform_initial_sync()
            except MomentumError as e:
                self.logger.warning(f"Initial sync failed: {e}")

        return success

    async def enable_background_delivery(
        self, frequency: DeliveryFrequency = DeliveryFrequency.IMMEDIATE
    ) -> bool:
        try:
            enabled = await self.source.enable_background_delivery(HealthDataType.WORKOUT, frequency)
        except HealthSourceError as e:
            self.logger.warning(f"Failed to enable background delivery: {e}")
            return False
        if enabled:
            self.logger.info(f"Background delivery enabled for workouts ({frequency.value})")
        return enabled

    # -- Syncs ---------------------------------------------------------------

    async def perform_initial_sync(self) -> None:
        """Sync today's metrics, then replace pending items with new workouts"""
        self.logger.sync("Performing initial sync...")
        async with self._lock:
            try:
                await self.metric_engine.sync_today_metrics()
                items = await self.workout_engine.fetch_new_workouts()
            except MomentumError as e:
                self._record_error(e)
                raise
            self.queue.replace(items)
            self._synced()
        self.logger.sync("Initial sync complete")

    async def sync_today_metrics(self) -> HealthMetrics:
        async with self._lock:
            try:
                metrics = await self.metric_engine.sync_today_metrics()
            except MomentumError as e:
                self._record_error(e)
                raise
            self._synced()
        return metrics

    async def refresh_today_metrics(self) -> Optional[HealthMetrics]:
        """Sync today's metrics, falling back to the stored record on failure"""
        try:
            return await self.sync_today_metrics()
        except MomentumError as e:
            self.logger.warning(f"Metrics sync failed, showing cached metrics: {e}")
            return self.db.get_health_metrics(self.clock().date())

    async def sync_workouts(self) -> List[WorkoutReviewItem]:
        """Fetch new workouts incrementally and append them to the queue"""
        async with self._lock:
            try:
                items = await self.workout_engine.fetch_new_workouts()
            except MomentumError as e:
                self._record_error(e)
                raise
            self.queue.extend(items)
            self._synced()
        if items:
            self.logger.sync(f"{len(items)} new workout(s) detected")
        return items

    async def fetch_recent_workouts(self, days: int = RECENT_WORKOUT_DAYS) -> List[WorkoutReviewItem]:
        """Replace pending items with every workout from the last `days` days"""
        async with self._lock:
            try:
                items = await self.workout_engine.fetch_recent_workouts(days)
            except MomentumError as e:
                self._record_error(e)
                raise
            self.queue.replace(items)
        return items

    # -- Review --------------------------------------------------------------

    @property
    def pending_workouts(self) -> List[WorkoutReviewItem]:
        return self.queue.sorted_for_display()

    @property
    def has_pending_workouts(self) -> bool:
        return len(self.queue) > 0

    def approve_workout(self, item_id: str) -> Optional[Union[Workout, CardioSession]]:
        """Commit a pending item and remove it from the queue"""
        item = self._pending(item_id)
        try:
            record = self.workout_engine.approve(item)
        except ITEM_ERRORS as e:
            self._record_error(e)
            raise
        self.queue.remove(item_id)
        return record

    def ignore_workout(self, item_id: str) -> None:
        item = self._pending(item_id)
        self.workout_engine.ignore(item)
        self.queue.remove(item_id)

    def approve_all(self, strict: bool = False) -> BatchResult:
        """
        Approve every pending item independently.

        Items that fail stay in the queue and are reported in the result.
        With strict=True a BatchError carrying the result is raised when
        anything failed.
        """
        result = BatchResult()
        for item in self.queue.snapshot():
            try:
                record = self.workout_engine.approve(item)
            except ITEM_ERRORS as e:
                self.logger.warning(f"Failed to approve {item.type.value} ({item.id}): {e}")
                result.failed.append((item.id, str(e)))
                continue
            self.queue.remove(item.id)
            if record is None:
                result.skipped += 1
            else:
                result.approved += 1

        self.logger.sync(f"Bulk approve: {result}")
        return self._finish_batch(result, strict)

    def ignore_all(self, strict: bool = False) -> BatchResult:
        result = BatchResult()
        for item in self.queue.snapshot():
            try:
                self.workout_engine.ignore(item)
            except ITEM_ERRORS as e:
                self.logger.warning(f"Failed to ignore {item.type.value} ({item.id}): {e}")
                result.failed.append((item.id, str(e)))
                continue
            self.queue.remove(item.id)
            result.ignored += 1

        self.logger.sync(f"Bulk ignore: {result}")
        return self._finish_batch(result, strict)

    def clear_pending_workouts(self) -> None:
        self.queue.clear()

    # -- State ---------------------------------------------------------------

    def state(self) -> SyncState:
        return SyncState(
            is_authorized=self.is_authorized,
            permission_status=self.permission_status,
            pending_workouts=self.pending_workouts,
            last_sync_date=self.last_sync_date,
            last_error=self.last_error,
            is_syncing=self._lock.locked(),
            background_running=self._consumer is not None and not self._consumer.done(),
        )

    # -- Background delivery -------------------------------------------------

    def start(self) -> None:
        """Subscribe to workout signals and start the consumer task"""
        self._loop = asyncio.get_running_loop()
        if self._events is None:
            self._events = asyncio.Queue()
        if not self._subscribed:
            self.source.subscribe(HealthDataType.WORKOUT, self._on_signal)
            self._subscribed = True
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.create_task(self._consume())

    async def stop(self) -> None:
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None
        # The queue is bound to this loop; start() builds a fresh one
        self._events = None
        self._loop = None
        await self.source.close()

    async def wait_idle(self) -> None:
        """Wait until every queued signal has been processed"""
        if self._events is not None:
            await self._events.join()

    def _on_signal(self, acknowledge: Acknowledge) -> None:
        """
        Observer callback. Only enqueues; fetching happens in the consumer,
        so the source is acknowledged immediately.
        """
        try:
            if self._loop is None or self._events is None:
                self.logger.warning("Workout signal received before coordinator start, dropped")
                return
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is self._loop:
                self._events.put_nowait(self.clock())
            else:
                self._loop.call_soon_threadsafe(self._events.put_nowait, self.clock())
        finally:
            acknowledge()

    async def _consume(self) -> None:
        while True:
            await self._events.get()
            received = 1
            # Coalesce signals that arrived while we were busy
            while not self._events.empty():
                self._events.get_nowait()
                received += 1
            try:
                await self.sync_workouts()
            except Exception as e:
                self.logger.warning(f"Background workout sync failed: {e}")
            finally:
                for _ in range(received):
                    self._events.task_done()

    # -- Internals -----------------------------------------------------------

    def _pending(self, item_id: str) -> WorkoutReviewItem:
        item = self.queue.get(item_id)
        if item is None:
            raise NotFound(f"No pending workout with id {item_id}")
        return item

    def _finish_batch(self, result: BatchResult, strict: bool) -> BatchResult:
        if result.failed:
            self.last_error = f"{len(result.failed)} workout(s) could not be processed"
            if strict:
                raise BatchError(result)
        return result

    def _record_error(self, error: Exception) -> None:
        self.last_error = str(error)
        self.logger.debug(f"Recorded sync error: {error}")

    def _synced(self) -> None:
        self.last_sync_date = self.clock()
        self.last_error = None
