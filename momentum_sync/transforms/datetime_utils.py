"""Date and time utilities

All timestamps are naive local datetimes; calendar days follow local time.
"""
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple


def start_of_day(value) -> datetime:
    """Midnight at the start of the calendar day containing value"""
    if isinstance(value, datetime):
        value = value.date()
    return datetime.combine(value, time.min)


def day_bounds(value) -> Tuple[datetime, datetime]:
    """Half-open [start, end) bounds of the calendar day containing value"""
    start = start_of_day(value)
    return (start, start + timedelta(days=1))


def calendar_days_between(earlier, later) -> int:
    """
    Number of calendar-day boundaries between two dates.

    Same day -> 0, yesterday -> 1. Negative if earlier is after later.
    """
    if isinstance(earlier, datetime):
        earlier = earlier.date()
    if isinstance(later, datetime):
        later = later.date()
    return (later - earlier).days


def is_same_day(a: Optional[datetime], b: datetime) -> bool:
    """Check whether two datetimes fall on the same calendar day"""
    if a is None:
        return False
    return calendar_days_between(a, b) == 0


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime (or date) to ISO 8601, None passes through"""
    if value is None:
        return None
    return value.isoformat()


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 datetime, None and empty strings give None"""
    if not value:
        return None
    return datetime.fromisoformat(value)


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    """Parse a YYYY-MM-DD date, None and empty strings give None"""
    if not value:
        return None
    return date.fromisoformat(value[:10])


def parse_garmin_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """
    Parse a Garmin Connect timestamp.

    Input: "2025-11-24 16:00:58", "2025-11-24T16:00:58.0" or "2025-11-24"
    Output: datetime, or None if unparseable
    """
    if not dt_str or dt_str.strip() == "":
        return None

    dt_str = dt_str.strip()

    formats = [
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%dT%H:%M:%S.%f",
        "%Y-%m-%dT%H:%M:%S",
        "%Y-%m-%d",
    ]
    for fmt in formats:
        try:
            return datetime.strptime(dt_str, fmt)
        except ValueError:
            continue

    return None


def from_epoch_ms(ts_ms: int) -> datetime:
    """Convert epoch milliseconds to a naive local datetime"""
    return datetime.fromtimestamp(ts_ms / 1000)
