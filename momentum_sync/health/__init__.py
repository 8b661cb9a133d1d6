"""External health data sources"""
from momentum_sync.health.source import (
    ActivityType, AuthorizationStatus, DeliveryFrequency, ExternalWorkout,
    HealthDataType, HealthSource, Sample,
)
from momentum_sync.health.permissions import READ_TYPES, WRITE_TYPES, PermissionStatus, permission_summary
from momentum_sync.health.memory import InMemoryHealthSource
from momentum_sync.health.garmin import GarminHealthSource, translate_activity

__all__ = [
    'ActivityType', 'AuthorizationStatus', 'DeliveryFrequency', 'ExternalWorkout',
    'HealthDataType', 'HealthSource', 'Sample',
    'READ_TYPES', 'WRITE_TYPES', 'PermissionStatus', 'permission_summary',
    'InMemoryHealthSource',
    'GarminHealthSource', 'translate_activity',
]
