"""Data transformation utilities"""
from .units import (
    meters_to_miles, seconds_to_minutes,
    pace_min_per_mile,
    format_duration_short, format_duration_clock, format_pace,
)
from .datetime_utils import (
    start_of_day,
    day_bounds,
    calendar_days_between,
    is_same_day,
    to_iso,
    parse_iso_datetime,
    parse_iso_date,
    parse_garmin_datetime,
    from_epoch_ms,
)
