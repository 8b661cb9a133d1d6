"""External health source contract and value types"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple


class HealthDataType(str, Enum):
    STEP_COUNT = "step_count"
    DISTANCE_WALKING_RUNNING = "distance_walking_running"  # meters
    ACTIVE_ENERGY = "active_energy"  # kcal
    BASAL_ENERGY = "basal_energy"  # kcal
    EXERCISE_TIME = "exercise_time"  # seconds
    HEART_RATE = "heart_rate"  # bpm
    RESTING_HEART_RATE = "resting_heart_rate"  # bpm
    FLIGHTS_CLIMBED = "flights_climbed"
    WORKOUT = "workout"


class AuthorizationStatus(str, Enum):
    AUTHORIZED = "authorized"
    DENIED = "denied"
    NOT_DETERMINED = "not_determined"


class DeliveryFrequency(str, Enum):
    IMMEDIATE = "immediate"
    HOURLY = "hourly"
    DAILY = "daily"


class ActivityType:
    """External activity taxonomy (string constants as reported by the source)"""
    RUNNING = "running"
    WALKING = "walking"
    CYCLING = "cycling"
    SWIMMING = "swimming"
    HIKING = "hiking"
    TRADITIONAL_STRENGTH_TRAINING = "traditional_strength_training"
    FUNCTIONAL_STRENGTH_TRAINING = "functional_strength_training"
    HIGH_INTENSITY_INTERVAL_TRAINING = "high_intensity_interval_training"
    YOGA = "yoga"
    PILATES = "pilates"
    STAIR_CLIMBING = "stair_climbing"
    ROWING = "rowing"
    ELLIPTICAL = "elliptical"
    SOCCER = "soccer"
    PICKLEBALL = "pickleball"
    BASKETBALL = "basketball"
    TENNIS = "tennis"
    VOLLEYBALL = "volleyball"
    OTHER = "other"


@dataclass(frozen=True)
class Sample:
    timestamp: datetime
    value: float


@dataclass(frozen=True)
class ExternalWorkout:
    """
    Raw workout record as delivered by the source.

    statistics maps a HealthDataType to the workout's cumulative sum
    for that type (e.g. ACTIVE_ENERGY in kcal, DISTANCE_WALKING_RUNNING
    in meters). Types the source does not expose are absent.
    """
    workout_id: str
    activity_type: str
    start: datetime
    end: datetime
    duration: float  # seconds
    statistics: Dict[HealthDataType, float] = field(default_factory=dict)

    def statistic(self, data_type: HealthDataType) -> Optional[float]:
        return self.statistics.get(data_type)


# on_signal receives an acknowledge callable it must invoke once handled
Acknowledge = Callable[[], None]
SignalHandler = Callable[[Acknowledge], None]


class HealthSource(ABC):
    """
    Platform health data service.

    Query methods raise HealthSourceError subclasses: SourceUnavailable when
    the service is absent, NotAuthorized when access was not granted,
    QueryFailed on a failed query and NoData when the source has no data
    of the requested type at all. A cumulative sum over a window with no
    samples is 0, not NoData.
    """

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the health service exists on this device"""

    @abstractmethod
    async def request_authorization(
        self,
        read_types: Iterable[HealthDataType],
        write_types: Iterable[HealthDataType],
    ) -> bool:
        """Ask for access; True if the request completed"""

    @abstractmethod
    def authorization_status(self, data_type: HealthDataType) -> AuthorizationStatus:
        pass

    @abstractmethod
    async def cumulative_sum(
        self, data_type: HealthDataType, start: datetime, end: datetime
    ) -> float:
        """Total of a statistic over [start, end)"""

    @abstractmethod
    async def samples(
        self, data_type: HealthDataType, start: datetime, end: datetime
    ) -> List[Sample]:
        """Individual samples in [start, end), oldest first"""

    @abstractmethod
    async def incremental_changes(
        self, record_type: HealthDataType, anchor: Optional[str]
    ) -> Tuple[List[ExternalWorkout], str]:
        """
        Records added since anchor, plus the advanced anchor.
        A None anchor returns everything.
        """

    @abstractmethod
    async def range_query(
        self, record_type: HealthDataType, start: datetime, end: datetime
    ) -> List[ExternalWorkout]:
        """Records starting in [start, end)"""

    @abstractmethod
    def subscribe(self, record_type: HealthDataType, on_signal: SignalHandler) -> None:
        """Register a handler called whenever new records may exist"""

    @abstractmethod
    async def enable_background_delivery(
        self, record_type: HealthDataType, frequency: DeliveryFrequency
    ) -> bool:
        pass

    async def close(self) -> None:
        """Release background resources"""
        return None
