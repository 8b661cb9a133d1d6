"""Change detection between stored and freshly synced records"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import sqlite3

from .logging_setup import get_logger


@dataclass
class FieldChange:
    """A single field whose value changed between syncs"""
    field: str
    existing: Any
    new: Any


# Tolerance values for comparing numeric fields
TOLERANCES = {
    "distance": 0.001,
    "active_calories": 1,
    "total_calories": 1,
}

# Tables holding records committed from review items
EXTERNAL_ID_TABLES = ("workouts", "cardio_sessions")


def values_match(field: str, existing: Any, new: Any) -> bool:
    """Check if two values match, accounting for tolerances"""
    if existing is None and new is None:
        return True
    if existing is None or new is None:
        return False

    # Check if field has a tolerance
    tolerance = TOLERANCES.get(field)
    if tolerance is not None:
        try:
            return abs(float(existing) - float(new)) < tolerance
        except (ValueError, TypeError):
            pass

    return existing == new


def diff_fields(
    existing: Dict[str, Any],
    new: Dict[str, Any],
    skip_fields: Optional[set] = None
) -> List[FieldChange]:
    """
    Compare two records field by field.

    Only fields present in both records are compared.
    Returns the list of fields whose values differ.
    """
    skip_fields = skip_fields or {"id", "last_synced"}
    changes = []
    for field, new_value in new.items():
        if field in skip_fields or field not in existing:
            continue
        if not values_match(field, existing[field], new_value):
            changes.append(FieldChange(field, existing[field], new_value))
    return changes


def log_changes(label: str, changes: List[FieldChange]) -> None:
    """Log field changes at debug level"""
    logger = get_logger()
    if not changes:
        logger.debug(f"{label}: unchanged")
        return
    logger.debug(f"{label}: {len(changes)} field(s) changed")
    for change in changes:
        logger.debug(f"       {change.field}: {change.existing} -> {change.new}")


class DuplicateDetector:
    """Finds committed records that came from the same external workout"""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def find_existing(self, external_workout_id: str) -> Optional[Dict[str, Any]]:
        """
        Look up a committed workout or cardio session by external id.
        Returns {table, id} for the first match or None.
        """
        for table in EXTERNAL_ID_TABLES:
            row = self.conn.execute(
                f"SELECT id FROM {table} WHERE external_workout_id = ? LIMIT 1",
                (external_workout_id,)
            ).fetchone()
            if row:
                return {"table": table, "id": row["id"]}
        return None
