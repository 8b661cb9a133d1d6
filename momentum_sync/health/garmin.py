"""Garmin Connect backed health source"""
import asyncio
import json
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from garminconnect import Garmin

from ..core.config import ACK_DEADLINE_SECONDS, GARMIN_TOKEN_DIR, POLL_INTERVALS
from ..core.errors import NoData, NotAuthorized, QueryFailed
from ..core.logging_setup import get_logger
from ..transforms.datetime_utils import from_epoch_ms, parse_garmin_datetime
from .source import (
    ActivityType,
    AuthorizationStatus,
    DeliveryFrequency,
    ExternalWorkout,
    HealthDataType,
    HealthSource,
    Sample,
    SignalHandler,
)

# Daily stats field per summable data type
STATS_FIELDS = {
    HealthDataType.STEP_COUNT: "totalSteps",
    HealthDataType.DISTANCE_WALKING_RUNNING: "totalDistanceMeters",
    HealthDataType.ACTIVE_ENERGY: "activeKilocalories",
    HealthDataType.BASAL_ENERGY: "bmrKilocalories",
    HealthDataType.FLIGHTS_CLIMBED: "floorsAscended",
}

# Garmin activityType.typeKey -> external activity taxonomy
GARMIN_ACTIVITY_TYPES = {
    "running": ActivityType.RUNNING,
    "treadmill_running": ActivityType.RUNNING,
    "trail_running": ActivityType.RUNNING,
    "track_running": ActivityType.RUNNING,
    "walking": ActivityType.WALKING,
    "casual_walking": ActivityType.WALKING,
    "speed_walking": ActivityType.WALKING,
    "cycling": ActivityType.CYCLING,
    "road_biking": ActivityType.CYCLING,
    "indoor_cycling": ActivityType.CYCLING,
    "mountain_biking": ActivityType.CYCLING,
    "gravel_cycling": ActivityType.CYCLING,
    "lap_swimming": ActivityType.SWIMMING,
    "open_water_swimming": ActivityType.SWIMMING,
    "hiking": ActivityType.HIKING,
    "strength_training": ActivityType.TRADITIONAL_STRENGTH_TRAINING,
    "indoor_cardio": ActivityType.FUNCTIONAL_STRENGTH_TRAINING,
    "hiit": ActivityType.HIGH_INTENSITY_INTERVAL_TRAINING,
    "yoga": ActivityType.YOGA,
    "pilates": ActivityType.PILATES,
    "stair_climbing": ActivityType.STAIR_CLIMBING,
    "indoor_rowing": ActivityType.ROWING,
    "rowing": ActivityType.ROWING,
    "elliptical": ActivityType.ELLIPTICAL,
    "soccer": ActivityType.SOCCER,
    "pickleball": ActivityType.PICKLEBALL,
    "basketball": ActivityType.BASKETBALL,
    "tennis": ActivityType.TENNIS,
    "volleyball": ActivityType.VOLLEYBALL,
}

# Activities fetched per page when walking back to the anchor
PAGE_SIZE = 20
# First incremental fetch (no anchor) stops after this many activities
INITIAL_ACTIVITY_LIMIT = 100


def translate_activity(activity: Dict[str, Any]) -> Optional[ExternalWorkout]:
    """
    Convert a Garmin activity summary to an ExternalWorkout.

    Unknown type keys pass through unchanged. Returns None when the
    activity has no id or no parseable start time.
    """
    activity_id = activity.get("activityId")
    start = parse_garmin_datetime(activity.get("startTimeLocal"))
    if activity_id is None or start is None:
        return None

    type_key = (activity.get("activityType") or {}).get("typeKey") or ActivityType.OTHER
    duration = float(activity.get("duration") or 0)

    statistics: Dict[HealthDataType, float] = {}
    calories = activity.get("calories")
    if calories is not None:
        statistics[HealthDataType.ACTIVE_ENERGY] = float(calories)
    distance = activity.get("distance")
    if distance:
        statistics[HealthDataType.DISTANCE_WALKING_RUNNING] = float(distance)

    return ExternalWorkout(
        workout_id=str(activity_id),
        activity_type=GARMIN_ACTIVITY_TYPES.get(type_key, type_key),
        start=start,
        end=start + timedelta(seconds=duration),
        duration=duration,
        statistics=statistics,
    )


def encode_anchor(last_activity_id: int) -> str:
    return json.dumps({"last_activity_id": last_activity_id})


def decode_anchor(anchor: Optional[str]) -> Optional[int]:
    if anchor is None:
        return None
    try:
        return int(json.loads(anchor)["last_activity_id"])
    except (ValueError, KeyError, TypeError) as e:
        raise QueryFailed(HealthDataType.WORKOUT, f"invalid anchor {anchor!r}") from e


def _days_in(start: datetime, end: datetime) -> List[date]:
    """Calendar days touched by the half-open window [start, end)"""
    last = (end - timedelta(microseconds=1)).date()
    day = start.date()
    days = []
    while day <= last:
        days.append(day)
        day += timedelta(days=1)
    return days


class GarminHealthSource(HealthSource):
    """
    Health source reading daily stats, heart rate and activities from
    Garmin Connect.

    Background delivery is emulated by polling for a newer activity and
    signalling subscribers when one appears.
    """

    def __init__(
        self,
        client: Optional[Garmin] = None,
        token_dir: Optional[Path] = None,
        poll_intervals: Optional[Dict[str, float]] = None,
    ):
        self.client = client
        self.token_dir = Path(token_dir) if token_dir else GARMIN_TOKEN_DIR
        self.poll_intervals = poll_intervals or POLL_INTERVALS
        self._subscribers: Dict[HealthDataType, List[SignalHandler]] = {}
        self._poll_task: Optional[asyncio.Task] = None
        self._last_seen_id: Optional[int] = None

    # -- Session -------------------------------------------------------------

    def is_logged_in(self) -> bool:
        """Check if we have a valid session, restoring it from the token dir"""
        if self.client is not None:
            return True
        if not self.token_dir.exists():
            return False
        try:
            client = Garmin()
            client.login(str(self.token_dir))
            client.get_full_name()
            self.client = client
            return True
        except Exception as e:
            get_logger().debug(f"Stored Garmin session rejected: {e}")
            return False

    def login(self, email: str, password: str) -> bool:
        """Login to Garmin Connect and persist the session tokens"""
        try:
            self.token_dir.mkdir(parents=True, exist_ok=True)
            client = Garmin(email, password)
            client.login()
            client.garth.dump(str(self.token_dir))
            self.client = client
            return True
        except Exception as e:
            raise NotAuthorized(f"Garmin login failed: {e}") from e

    def get_user_name(self) -> str:
        return self._require_client().get_full_name()

    # -- HealthSource --------------------------------------------------------

    def is_available(self) -> bool:
        return True

    async def request_authorization(
        self,
        read_types: Iterable[HealthDataType],
        write_types: Iterable[HealthDataType],
    ) -> bool:
        return await asyncio.to_thread(self.is_logged_in)

    def authorization_status(self, data_type: HealthDataType) -> AuthorizationStatus:
        if self.client is None:
            return AuthorizationStatus.NOT_DETERMINED
        return AuthorizationStatus.AUTHORIZED

    async def cumulative_sum(
        self, data_type: HealthDataType, start: datetime, end: datetime
    ) -> float:
        if data_type == HealthDataType.EXERCISE_TIME:
            return await self._intensity_seconds(start, end)

        field = STATS_FIELDS.get(data_type)
        if field is None:
            raise QueryFailed(data_type, "not available as a daily total")

        total = 0.0
        seen = False
        for day in _days_in(start, end):
            stats = await self._call(data_type, self._require_client().get_stats, day.isoformat())
            value = (stats or {}).get(field)
            if value is not None:
                seen = True
                total += float(value)
        if not seen and data_type == HealthDataType.BASAL_ENERGY:
            raise NoData(data_type)
        return total

    async def samples(
        self, data_type: HealthDataType, start: datetime, end: datetime
    ) -> List[Sample]:
        if data_type not in (HealthDataType.HEART_RATE, HealthDataType.RESTING_HEART_RATE):
            raise QueryFailed(data_type, "samples not available")

        results: List[Sample] = []
        for day in _days_in(start, end):
            hr = await self._call(data_type, self._require_client().get_heart_rates, day.isoformat())
            if not hr:
                continue
            if data_type == HealthDataType.RESTING_HEART_RATE:
                resting = hr.get("restingHeartRate")
                if resting is not None:
                    results.append(Sample(datetime.combine(day, datetime.min.time()), float(resting)))
                continue
            for pair in hr.get("heartRateValues") or []:
                if not isinstance(pair, (list, tuple)) or len(pair) != 2:
                    continue
                ts_ms, bpm = pair
                if ts_ms is None or bpm is None:
                    continue
                timestamp = from_epoch_ms(ts_ms)
                if start <= timestamp < end:
                    results.append(Sample(timestamp, float(bpm)))
        return sorted(results, key=lambda s: s.timestamp)

    async def incremental_changes(
        self, record_type: HealthDataType, anchor: Optional[str]
    ) -> Tuple[List[ExternalWorkout], str]:
        last_id = decode_anchor(anchor)
        client = self._require_client()

        newer: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page = await self._call(record_type, client.get_activities, offset, PAGE_SIZE) or []
            for activity in page:
                activity_id = activity.get("activityId")
                if activity_id is None:
                    continue
                if last_id is not None and activity_id <= last_id:
                    break
                newer.append(activity)
            else:
                # Whole page was newer than the anchor
                offset += PAGE_SIZE
                if len(page) == PAGE_SIZE and (last_id is not None or len(newer) < INITIAL_ACTIVITY_LIMIT):
                    continue
            break

        if last_id is None:
            newer = newer[:INITIAL_ACTIVITY_LIMIT]

        ids = [a["activityId"] for a in newer]
        if last_id is not None:
            ids.append(last_id)
        new_anchor = encode_anchor(max(ids)) if ids else (anchor or encode_anchor(0))

        workouts = [w for w in (translate_activity(a) for a in reversed(newer)) if w]
        return (workouts, new_anchor)

    async def range_query(
        self, record_type: HealthDataType, start: datetime, end: datetime
    ) -> List[ExternalWorkout]:
        last_day = (end - timedelta(microseconds=1)).date()
        activities = await self._call(
            record_type,
            self._require_client().get_activities_by_date,
            start.date().isoformat(),
            last_day.isoformat(),
        ) or []
        workouts = [w for w in (translate_activity(a) for a in activities) if w]
        return sorted((w for w in workouts if start <= w.start < end), key=lambda w: w.start)

    def subscribe(self, record_type: HealthDataType, on_signal: SignalHandler) -> None:
        self._subscribers.setdefault(record_type, []).append(on_signal)

    async def enable_background_delivery(
        self, record_type: HealthDataType, frequency: DeliveryFrequency
    ) -> bool:
        if record_type != HealthDataType.WORKOUT:
            return False
        if self._poll_task is None or self._poll_task.done():
            interval = self.poll_intervals[frequency.value]
            self._poll_task = asyncio.create_task(self._poll_loop(interval))
        return True

    async def close(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

    # -- Internals -----------------------------------------------------------

    def _require_client(self) -> Garmin:
        if self.client is None:
            raise NotAuthorized("Not logged in to Garmin Connect")
        return self.client

    async def _call(self, data_type: HealthDataType, fn: Callable, *args):
        """Run a blocking client call in a worker thread"""
        try:
            return await asyncio.to_thread(fn, *args)
        except Exception as e:
            raise QueryFailed(data_type, str(e)) from e

    async def _intensity_seconds(self, start: datetime, end: datetime) -> float:
        total = 0.0
        for day in _days_in(start, end):
            stats = await self._call(
                HealthDataType.EXERCISE_TIME, self._require_client().get_stats, day.isoformat()
            ) or {}
            minutes = (stats.get("moderateIntensityMinutes") or 0) + (stats.get("vigorousIntensityMinutes") or 0)
            total += float(minutes) * 60
        return total

    async def check_for_new_activity(self) -> bool:
        """Signal workout subscribers if a newer activity than last seen exists"""
        latest = await self._call(HealthDataType.WORKOUT, self._require_client().get_activities, 0, 1) or []
        if not latest:
            return False
        latest_id = latest[0].get("activityId")
        if latest_id is None:
            return False
        if self._last_seen_id is not None and latest_id <= self._last_seen_id:
            return False
        first_poll = self._last_seen_id is None
        self._last_seen_id = latest_id
        if first_poll:
            return False
        await self._signal(HealthDataType.WORKOUT)
        return True

    async def _signal(self, record_type: HealthDataType) -> None:
        logger = get_logger()
        for handler in list(self._subscribers.get(record_type, [])):
            acknowledged = asyncio.Event()
            handler(acknowledged.set)
            try:
                await asyncio.wait_for(acknowledged.wait(), ACK_DEADLINE_SECONDS)
            except asyncio.TimeoutError:
                logger.warning(f"Observer for {record_type.value} did not acknowledge within {ACK_DEADLINE_SECONDS}s")

    async def _poll_loop(self, interval: float) -> None:
        logger = get_logger()
        logger.debug(f"Polling Garmin for new activities every {interval}s")
        while True:
            try:
                await self.check_for_new_activity()
            except Exception as e:
                logger.warning(f"Background activity poll failed: {e}")
            await asyncio.sleep(interval)
