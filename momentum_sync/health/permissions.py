"""Health data access: requested types and permission summary"""
from enum import Enum

from .source import AuthorizationStatus, HealthDataType, HealthSource

# Types read from the health source
READ_TYPES = frozenset({
    HealthDataType.STEP_COUNT,
    HealthDataType.DISTANCE_WALKING_RUNNING,
    HealthDataType.ACTIVE_ENERGY,
    HealthDataType.BASAL_ENERGY,
    HealthDataType.EXERCISE_TIME,
    HealthDataType.HEART_RATE,
    HealthDataType.RESTING_HEART_RATE,
    HealthDataType.FLIGHTS_CLIMBED,
    HealthDataType.WORKOUT,
})

# Types written back (workouts only)
WRITE_TYPES = frozenset({HealthDataType.WORKOUT})


class PermissionStatus(str, Enum):
    NOT_AUTHORIZED = "not_authorized"
    PARTIALLY_AUTHORIZED = "partially_authorized"
    FULLY_AUTHORIZED = "fully_authorized"

    @property
    def description(self) -> str:
        return self.value.replace("_", " ").title()


def permission_summary(source: HealthSource) -> PermissionStatus:
    """Summarize access from step count and workout authorization"""
    steps = source.authorization_status(HealthDataType.STEP_COUNT) == AuthorizationStatus.AUTHORIZED
    workouts = source.authorization_status(HealthDataType.WORKOUT) == AuthorizationStatus.AUTHORIZED

    if steps and workouts:
        return PermissionStatus.FULLY_AUTHORIZED
    if steps or workouts:
        return PermissionStatus.PARTIALLY_AUTHORIZED
    return PermissionStatus.NOT_AUTHORIZED
