"""Domain models for Momentum sync"""
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from .errors import DecodeError
from ..transforms.datetime_utils import (
    is_same_day,
    parse_iso_datetime,
    to_iso,
)
from ..transforms.units import (
    format_duration_clock,
    format_duration_short,
    format_pace,
)

E = TypeVar("E", bound=Enum)


def new_id() -> str:
    """Generate a new record identifier"""
    return str(uuid.uuid4())


def decode_enum(enum_cls: Type[E], value: Any, context: str = "") -> E:
    """Decode a persisted enum value, failing loudly on unknown values"""
    try:
        return enum_cls(value)
    except ValueError:
        where = f" in {context}" if context else ""
        raise DecodeError(f"Unknown {enum_cls.__name__} value {value!r}{where}") from None


class MetricSource(str, Enum):
    PLATFORM_HEALTH = "platform_health"
    MANUAL = "manual"
    WEARABLE = "wearable"


class WorkoutSource(str, Enum):
    MANUAL = "manual"
    PLATFORM_HEALTH = "platform_health"
    WEARABLE = "wearable"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    IGNORED = "ignored"


class WorkoutType(str, Enum):
    STRENGTH = "strength"
    CARDIO = "cardio"
    HIIT = "hiit"
    YOGA = "yoga"
    PILATES = "pilates"
    RUNNING = "running"
    WALKING = "walking"
    CYCLING = "cycling"
    SWIMMING = "swimming"
    HIKING = "hiking"
    STAIR_CLIMBING = "stair_climbing"
    ROWING = "rowing"
    ELLIPTICAL = "elliptical"
    SOCCER = "soccer"
    PICKLEBALL = "pickleball"
    BASKETBALL = "basketball"
    TENNIS = "tennis"
    VOLLEYBALL = "volleyball"
    SPORTS = "sports"


class CardioType(str, Enum):
    RUNNING = "running"
    WALKING = "walking"
    CYCLING = "cycling"
    HIKING = "hiking"
    SWIMMING = "swimming"
    ROWING = "rowing"
    ELLIPTICAL = "elliptical"
    STAIR_CLIMBING = "stair_climbing"


# Workout types committed as cardio sessions when they carry a distance
CARDIO_TYPES = frozenset(WorkoutType(t.value) for t in CardioType)


class MilestoneType(str, Enum):
    CURRENT = "current"
    LONGEST = "longest"
    SPECIAL = "special"


class TaskCategory(str, Enum):
    FITNESS = "fitness"
    NUTRITION = "nutrition"
    WELLNESS = "wellness"
    HYDRATION = "hydration"
    SLEEP = "sleep"
    MINDFULNESS = "mindfulness"


@dataclass
class HealthMetrics:
    """Daily activity metrics, one record per calendar day"""
    date: date
    steps: int = 0
    distance: float = 0.0  # miles
    active_calories: int = 0
    total_calories: int = 0
    active_minutes: int = 0
    average_heart_rate: Optional[int] = None
    resting_heart_rate: Optional[int] = None
    max_heart_rate: Optional[int] = None
    flights_climbed: Optional[int] = None
    last_synced: Optional[datetime] = None
    source: MetricSource = MetricSource.PLATFORM_HEALTH
    id: str = field(default_factory=new_id)

    def comparable(self) -> Dict[str, Any]:
        """Metric values without identity and sync metadata"""
        return {
            "date": self.date,
            "steps": self.steps,
            "distance": self.distance,
            "active_calories": self.active_calories,
            "total_calories": self.total_calories,
            "active_minutes": self.active_minutes,
            "average_heart_rate": self.average_heart_rate,
            "resting_heart_rate": self.resting_heart_rate,
            "max_heart_rate": self.max_heart_rate,
            "flights_climbed": self.flights_climbed,
            "source": self.source,
        }


@dataclass
class ExerciseSet:
    reps: int = 0
    weight: Optional[float] = None
    duration: Optional[float] = None
    completed: bool = False
    id: str = field(default_factory=new_id)


@dataclass
class Exercise:
    name: str
    sets: List[ExerciseSet] = field(default_factory=list)
    notes: Optional[str] = None
    id: str = field(default_factory=new_id)


@dataclass
class Workout:
    """Strength/general workout record"""
    date: datetime
    type: WorkoutType
    duration: float = 0.0  # seconds
    calories: Optional[int] = None
    notes: Optional[str] = None
    exercises: List[Exercise] = field(default_factory=list)
    source: WorkoutSource = WorkoutSource.MANUAL
    external_workout_id: Optional[str] = None
    review_status: ReviewStatus = ReviewStatus.APPROVED
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=new_id)

    @property
    def duration_formatted(self) -> str:
        return format_duration_short(self.duration)

    def is_today(self, now: datetime) -> bool:
        return is_same_day(self.date, now)

    @property
    def needs_review(self) -> bool:
        return self.review_status == ReviewStatus.PENDING and self.source == WorkoutSource.PLATFORM_HEALTH


@dataclass
class CardioSession:
    """Distance/pace based activity record"""
    date: datetime
    type: CardioType
    duration: float = 0.0  # seconds
    distance: Optional[float] = None  # miles
    calories: Optional[int] = None
    average_pace: Optional[float] = None  # min/mile
    average_speed: Optional[float] = None  # mph
    average_heart_rate: Optional[int] = None
    max_heart_rate: Optional[int] = None
    elevation_gain: Optional[float] = None  # feet
    route_data: Optional[bytes] = None
    source: WorkoutSource = WorkoutSource.MANUAL
    external_workout_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=new_id)

    @property
    def duration_formatted(self) -> str:
        return format_duration_clock(self.duration)

    @property
    def distance_formatted(self) -> Optional[str]:
        if self.distance is None:
            return None
        return f"{self.distance:.2f} mi"

    @property
    def pace_formatted(self) -> Optional[str]:
        return format_pace(self.average_pace)

    def is_today(self, now: datetime) -> bool:
        return is_same_day(self.date, now)


@dataclass(frozen=True)
class WorkoutReviewItem:
    """
    Workout detected in the health source, awaiting user review.

    Never persisted. Approval converts it into a Workout or CardioSession.
    """
    external_workout_id: str
    date: datetime
    type: WorkoutType
    duration: float  # seconds
    calories: Optional[int] = None
    distance: Optional[float] = None  # miles
    average_pace: Optional[float] = None
    average_heart_rate: Optional[int] = None
    max_heart_rate: Optional[int] = None
    elevation_gain: Optional[float] = None
    route_data: Optional[bytes] = None
    detected_at: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=new_id)

    @property
    def has_route(self) -> bool:
        return self.route_data is not None

    @property
    def is_cardio(self) -> bool:
        return self.type in CARDIO_TYPES

    @property
    def duration_formatted(self) -> str:
        return format_duration_short(self.duration)

    @property
    def distance_formatted(self) -> Optional[str]:
        if self.distance is None:
            return None
        return f"{self.distance:.2f} mi"

    @property
    def calories_formatted(self) -> Optional[str]:
        if self.calories is None:
            return None
        return f"{self.calories} cal"

    def to_workout(self, now: Optional[datetime] = None) -> Workout:
        """Convert to an approved Workout record"""
        now = now or datetime.now()
        return Workout(
            date=self.date,
            type=self.type,
            duration=self.duration,
            calories=self.calories,
            source=WorkoutSource.PLATFORM_HEALTH,
            external_workout_id=self.external_workout_id,
            review_status=ReviewStatus.APPROVED,
            created_at=now,
            updated_at=now,
        )

    def to_cardio_session(self, now: Optional[datetime] = None) -> Optional[CardioSession]:
        """Convert to a CardioSession, None if the type is not a cardio type"""
        if not self.is_cardio:
            return None
        now = now or datetime.now()
        return CardioSession(
            date=self.date,
            type=CardioType(self.type.value),
            duration=self.duration,
            distance=self.distance,
            calories=self.calories,
            average_pace=self.average_pace,
            average_heart_rate=self.average_heart_rate,
            max_heart_rate=self.max_heart_rate,
            elevation_gain=self.elevation_gain,
            route_data=self.route_data,
            source=WorkoutSource.PLATFORM_HEALTH,
            external_workout_id=self.external_workout_id,
            created_at=now,
            updated_at=now,
        )

    def summary(self) -> Dict[str, Any]:
        """Compact dict for display"""
        return {
            "id": self.id,
            "date": to_iso(self.date),
            "type": self.type.value,
            "duration": self.duration_formatted,
            "distance": self.distance_formatted,
            "calories": self.calories_formatted,
            "cardio": self.is_cardio,
        }


@dataclass
class DailyTask:
    title: str
    category: TaskCategory
    date: datetime
    description: Optional[str] = None
    is_completed: bool = False
    scheduled_time: Optional[datetime] = None
    reminder_enabled: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)

    def toggle(self, now: Optional[datetime] = None) -> None:
        """Flip completion, stamping or clearing completed_at"""
        self.is_completed = not self.is_completed
        self.completed_at = (now or datetime.now()) if self.is_completed else None

    def is_overdue(self, now: datetime) -> bool:
        if self.scheduled_time is None or self.is_completed:
            return False
        return self.scheduled_time < now


@dataclass
class StreakMilestone:
    days: int
    achieved_date: datetime
    type: MilestoneType
    id: str = field(default_factory=new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "days": self.days,
            "achieved_date": to_iso(self.achieved_date),
            "type": self.type.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreakMilestone":
        try:
            return cls(
                id=data["id"],
                days=int(data["days"]),
                achieved_date=parse_iso_datetime(data["achieved_date"]),
                type=decode_enum(MilestoneType, data["type"], "streak milestone"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Invalid streak milestone: {e}") from e


@dataclass
class Streak:
    """Consecutive active-day streak, persisted as a single blob"""
    current_streak: int = 0
    longest_streak: int = 0
    last_active_date: Optional[datetime] = None
    streak_start_date: Optional[datetime] = None
    milestones: List[StreakMilestone] = field(default_factory=list)

    @property
    def motivational_message(self) -> str:
        days = self.current_streak
        if days == 0:
            return "Start your streak today!"
        if days == 1:
            return "Great start! Keep it going!"
        if days <= 6:
            return "Building momentum!"
        if days == 7:
            return "One week strong!"
        if days <= 13:
            return "You're on fire!"
        if days == 14:
            return "Two weeks! Incredible!"
        if days <= 29:
            return "Unstoppable! Keep pushing!"
        if days == 30:
            return "30 days! You're a legend!"
        return "Amazing consistency!"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_active_date": to_iso(self.last_active_date),
            "streak_start_date": to_iso(self.streak_start_date),
            "milestones": [m.to_dict() for m in self.milestones],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Streak":
        try:
            current = int(data["current_streak"])
            longest = int(data["longest_streak"])
            streak = cls(
                current_streak=current,
                longest_streak=longest,
                last_active_date=parse_iso_datetime(data.get("last_active_date")),
                streak_start_date=parse_iso_datetime(data.get("streak_start_date")),
                milestones=[StreakMilestone.from_dict(m) for m in data.get("milestones", [])],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"Invalid streak record: {e}") from e

        if current < 0 or longest < current:
            raise DecodeError(
                f"Invalid streak record: current={current}, longest={longest}"
            )
        return streak


@dataclass
class BatchResult:
    """Result of a bulk review operation"""
    approved: int = 0
    ignored: int = 0
    skipped: int = 0
    failed: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def __str__(self) -> str:
        return (
            f"Approved: {self.approved}, "
            f"Ignored: {self.ignored}, "
            f"Skipped: {self.skipped}, "
            f"Failed: {len(self.failed)}"
        )
