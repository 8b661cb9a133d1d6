"""Unit conversion and formatting utilities

Storage and display use imperial distance (miles), kilocalories and seconds.
"""
import math
from typing import Optional

METERS_PER_MILE = 1609.34
SECONDS_PER_MINUTE = 60


def meters_to_miles(meters: Optional[float]) -> Optional[float]:
    """Convert meters to miles"""
    if meters is None:
        return None
    return meters / METERS_PER_MILE


def seconds_to_minutes(seconds: Optional[float]) -> Optional[int]:
    """Convert seconds to whole minutes (floor)"""
    if seconds is None:
        return None
    return int(math.floor(seconds / SECONDS_PER_MINUTE))


def pace_min_per_mile(duration_seconds: Optional[float], distance_miles: Optional[float]) -> Optional[float]:
    """
    Average pace in decimal minutes per mile.

    Examples:
        (1800, 3.0) -> 10.0
        (1800, 0) -> None
    """
    if not duration_seconds or not distance_miles:
        return None
    return (duration_seconds / SECONDS_PER_MINUTE) / distance_miles


def format_duration_short(seconds: float) -> str:
    """
    Format duration as hours and minutes.

    Examples:
        3900 -> "1h 5m"
        1800 -> "30m"
    """
    hours = int(seconds) // 3600
    minutes = int(seconds) // 60 % 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_duration_clock(seconds: float) -> str:
    """
    Format duration as H:MM:SS or M:SS.

    Examples:
        3725 -> "1:02:05"
        1805 -> "30:05"
    """
    hours = int(seconds) // 3600
    minutes = int(seconds) // 60 % 60
    secs = int(seconds) % 60
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_pace(pace: Optional[float]) -> Optional[str]:
    """
    Format decimal min/mile pace as M:SS/mi.

    Examples:
        9.5 -> "9:30/mi"
        None -> None
    """
    if pace is None:
        return None
    minutes = int(pace)
    seconds = int((pace - minutes) * 60)
    return f"{minutes}:{seconds:02d}/mi"
