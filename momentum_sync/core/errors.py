"""Exceptions raised by the sync pipeline"""
from typing import Optional


class MomentumError(Exception):
    """Base class for all Momentum sync errors"""


class HealthSourceError(MomentumError):
    """Failure reported by the external health source"""


class SourceUnavailable(HealthSourceError):
    """Health data service is not available on this device"""

    def __init__(self, message: str = "Health data is not available on this device"):
        super().__init__(message)


class NotAuthorized(HealthSourceError):
    """Access to health data has not been granted"""

    def __init__(self, message: str = "Health data access not authorized"):
        super().__init__(message)


class QueryFailed(HealthSourceError):
    """A query for a specific data type failed"""

    def __init__(self, data_type=None, reason: Optional[str] = None):
        self.data_type = data_type
        label = getattr(data_type, "value", data_type) or "unknown"
        message = f"Failed to query {label}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class NoData(HealthSourceError):
    """A query succeeded but returned nothing"""

    def __init__(self, data_type=None):
        self.data_type = data_type
        label = getattr(data_type, "value", data_type) or "unknown"
        super().__init__(f"No {label} data found")


class SyncFailure(MomentumError):
    """A required metric could not be retrieved, nothing was persisted"""

    def __init__(self, metric: str, cause: Optional[BaseException] = None):
        self.metric = metric
        self.cause = cause
        message = f"Required metric '{metric}' could not be retrieved"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class DecodeError(MomentumError):
    """A persisted value could not be decoded"""


class NotFound(MomentumError):
    """Requested item does not exist"""


class BatchError(MomentumError):
    """One or more items in a bulk review operation failed"""

    def __init__(self, result):
        self.result = result
        super().__init__(f"{len(result.failed)} item(s) failed: {result}")
