"""In-process health source backed by plain lists"""
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..core.errors import NotAuthorized, QueryFailed, SourceUnavailable
from ..core.logging_setup import get_logger
from .permissions import READ_TYPES
from .source import (
    AuthorizationStatus,
    DeliveryFrequency,
    ExternalWorkout,
    HealthDataType,
    HealthSource,
    Sample,
    SignalHandler,
)


class InMemoryHealthSource(HealthSource):
    """
    Offline health source.

    Quantity samples are kept per data type. Workouts live in an
    append-only change log; the anchor token is the log position.
    Subscribers are signalled as soon as a workout is added, provided
    background delivery was enabled for workouts.
    """

    def __init__(self, available: bool = True, authorized: bool = True):
        self.available = available
        self._grants: Dict[HealthDataType, AuthorizationStatus] = {}
        if authorized:
            self.grant(READ_TYPES)
        self._samples: Dict[HealthDataType, List[Sample]] = defaultdict(list)
        self._workouts: List[ExternalWorkout] = []
        self._failures: Dict[HealthDataType, Exception] = {}
        self._subscribers: Dict[HealthDataType, List[SignalHandler]] = defaultdict(list)
        self._background: Dict[HealthDataType, DeliveryFrequency] = {}
        self.signals_sent = 0
        self.acknowledgements = 0
        self.queries: List[HealthDataType] = []

    # -- Test controls -------------------------------------------------------

    def grant(self, data_types: Iterable[HealthDataType]) -> None:
        for data_type in data_types:
            self._grants[data_type] = AuthorizationStatus.AUTHORIZED

    def deny(self, data_types: Iterable[HealthDataType]) -> None:
        for data_type in data_types:
            self._grants[data_type] = AuthorizationStatus.DENIED

    def fail(self, data_type: HealthDataType, error: Optional[Exception] = None) -> None:
        """Make every query for data_type raise error (QueryFailed by default)"""
        self._failures[data_type] = error or QueryFailed(data_type, "injected failure")

    def recover(self, data_type: Optional[HealthDataType] = None) -> None:
        if data_type is None:
            self._failures.clear()
        else:
            self._failures.pop(data_type, None)

    def add_sample(self, data_type: HealthDataType, timestamp: datetime, value: float) -> None:
        self._samples[data_type].append(Sample(timestamp, value))

    def add_workout(self, workout: ExternalWorkout) -> None:
        """Append to the change log and signal workout subscribers"""
        self._workouts.append(workout)
        if HealthDataType.WORKOUT in self._background:
            self._signal(HealthDataType.WORKOUT)

    @property
    def workouts(self) -> List[ExternalWorkout]:
        return list(self._workouts)

    # -- HealthSource --------------------------------------------------------

    def is_available(self) -> bool:
        return self.available

    async def request_authorization(
        self,
        read_types: Iterable[HealthDataType],
        write_types: Iterable[HealthDataType],
    ) -> bool:
        if not self.available:
            raise SourceUnavailable()
        requested: Set[HealthDataType] = set(read_types) | set(write_types)
        for data_type in requested:
            # Denied types stay denied, as on the platform
            if self._grants.get(data_type) != AuthorizationStatus.DENIED:
                self._grants[data_type] = AuthorizationStatus.AUTHORIZED
        return True

    def authorization_status(self, data_type: HealthDataType) -> AuthorizationStatus:
        return self._grants.get(data_type, AuthorizationStatus.NOT_DETERMINED)

    async def cumulative_sum(
        self, data_type: HealthDataType, start: datetime, end: datetime
    ) -> float:
        self._check(data_type)
        return float(sum(s.value for s in self._window(data_type, start, end)))

    async def samples(
        self, data_type: HealthDataType, start: datetime, end: datetime
    ) -> List[Sample]:
        self._check(data_type)
        return sorted(self._window(data_type, start, end), key=lambda s: s.timestamp)

    async def incremental_changes(
        self, record_type: HealthDataType, anchor: Optional[str]
    ) -> Tuple[List[ExternalWorkout], str]:
        self._check(record_type)
        if anchor is None:
            position = 0
        else:
            try:
                position = int(anchor)
            except ValueError:
                raise QueryFailed(record_type, f"invalid anchor {anchor!r}") from None
        new_records = self._workouts[position:]
        return (list(new_records), str(len(self._workouts)))

    async def range_query(
        self, record_type: HealthDataType, start: datetime, end: datetime
    ) -> List[ExternalWorkout]:
        self._check(record_type)
        return sorted(
            (w for w in self._workouts if start <= w.start < end),
            key=lambda w: w.start,
        )

    def subscribe(self, record_type: HealthDataType, on_signal: SignalHandler) -> None:
        self._subscribers[record_type].append(on_signal)

    async def enable_background_delivery(
        self, record_type: HealthDataType, frequency: DeliveryFrequency
    ) -> bool:
        if not self.available:
            raise SourceUnavailable()
        self._background[record_type] = frequency
        return True

    # -- Internals -----------------------------------------------------------

    def _check(self, data_type: HealthDataType) -> None:
        self.queries.append(data_type)
        if not self.available:
            raise SourceUnavailable()
        if self.authorization_status(data_type) != AuthorizationStatus.AUTHORIZED:
            raise NotAuthorized(f"Health data access not authorized for {data_type.value}")
        failure = self._failures.get(data_type)
        if failure is not None:
            raise failure

    def _window(self, data_type: HealthDataType, start: datetime, end: datetime) -> List[Sample]:
        return [s for s in self._samples[data_type] if start <= s.timestamp < end]

    def _signal(self, record_type: HealthDataType) -> None:
        logger = get_logger()
        for handler in list(self._subscribers[record_type]):
            self.signals_sent += 1
            try:
                handler(self._acknowledge)
            except Exception as e:
                logger.warning(f"Observer for {record_type.value} raised: {e}")

    def _acknowledge(self) -> None:
        self.acknowledgements += 1
