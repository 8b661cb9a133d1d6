"""SQLite local store for Momentum records and sync state"""
import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .config import DEFAULT_DB_PATH
from .conflicts import DuplicateDetector, FieldChange, diff_fields
from .errors import DecodeError
from .models import (
    CardioSession,
    CardioType,
    DailyTask,
    Exercise,
    ExerciseSet,
    HealthMetrics,
    MetricSource,
    ReviewStatus,
    TaskCategory,
    Workout,
    WorkoutSource,
    WorkoutType,
    decode_enum,
)
from ..transforms.datetime_utils import parse_iso_date, parse_iso_datetime, to_iso

SCHEMA_PATH = Path(__file__).parent / "schema.sql"


class Database:
    """SQLite database manager"""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        return self._conn

    def init_schema(self) -> None:
        """Initialize database schema from schema.sql"""
        if not SCHEMA_PATH.exists():
            raise FileNotFoundError(f"Schema file not found: {SCHEMA_PATH}")

        schema_sql = SCHEMA_PATH.read_text()
        self.conn.executescript(schema_sql)
        self.conn.commit()

    # -- Health metrics ------------------------------------------------------

    def upsert_health_metrics(self, metrics: HealthMetrics) -> Tuple[bool, List[FieldChange]]:
        """
        Insert or overwrite the metrics record for metrics.date.

        At most one record exists per calendar day; an existing record keeps
        its id and has every metric field replaced in a single statement.

        Returns:
            (inserted, changes) - changes is empty for inserts
        """
        day = metrics.date.isoformat()
        existing = self.conn.execute(
            "SELECT * FROM health_metrics WHERE date = ?", (day,)
        ).fetchone()

        data = {
            "steps": metrics.steps,
            "distance": metrics.distance,
            "active_calories": metrics.active_calories,
            "total_calories": metrics.total_calories,
            "active_minutes": metrics.active_minutes,
            "average_heart_rate": metrics.average_heart_rate,
            "resting_heart_rate": metrics.resting_heart_rate,
            "max_heart_rate": metrics.max_heart_rate,
            "flights_climbed": metrics.flights_climbed,
            "last_synced": to_iso(metrics.last_synced),
            "source": metrics.source.value,
        }

        with self.conn:
            if existing is None:
                data["id"] = metrics.id
                data["date"] = day
                columns = ", ".join(data.keys())
                placeholders = ", ".join("?" for _ in data)
                self.conn.execute(
                    f"INSERT INTO health_metrics ({columns}) VALUES ({placeholders})",
                    tuple(data.values())
                )
                return (True, [])

            changes = diff_fields(dict(existing), data)
            assignments = ", ".join(f"{k} = ?" for k in data)
            self.conn.execute(
                f"UPDATE health_metrics SET {assignments} WHERE date = ?",
                tuple(data.values()) + (day,)
            )
            metrics.id = existing["id"]
            return (False, changes)

    def get_health_metrics(self, day: date) -> Optional[HealthMetrics]:
        """Get the metrics record for a calendar day"""
        row = self.conn.execute(
            "SELECT * FROM health_metrics WHERE date = ?", (day.isoformat(),)
        ).fetchone()
        return self._row_to_metrics(row) if row else None

    def fetch_health_metrics(self, start_day: date, end_day: date) -> List[HealthMetrics]:
        """Metrics records with start_day <= date < end_day, newest first"""
        rows = self.conn.execute(
            """SELECT * FROM health_metrics
               WHERE date >= ? AND date < ?
               ORDER BY date DESC""",
            (start_day.isoformat(), end_day.isoformat())
        ).fetchall()
        return [self._row_to_metrics(r) for r in rows]

    def count_health_metrics(self, day: date) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) AS n FROM health_metrics WHERE date = ?", (day.isoformat(),)
        ).fetchone()
        return row["n"]

    # -- Workouts ------------------------------------------------------------

    def insert_workout(self, workout: Workout) -> None:
        """Insert a workout with its exercises and sets"""
        with self.conn:
            self.conn.execute(
                """INSERT INTO workouts (
                    id, date, type, duration, calories, notes, source,
                    external_workout_id, review_status, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    workout.id,
                    to_iso(workout.date),
                    workout.type.value,
                    workout.duration,
                    workout.calories,
                    workout.notes,
                    workout.source.value,
                    workout.external_workout_id,
                    workout.review_status.value,
                    to_iso(workout.created_at),
                    to_iso(workout.updated_at),
                )
            )
            for position, exercise in enumerate(workout.exercises):
                self.conn.execute(
                    """INSERT INTO exercises (id, workout_id, position, name, notes)
                       VALUES (?, ?, ?, ?, ?)""",
                    (exercise.id, workout.id, position, exercise.name, exercise.notes)
                )
                for set_position, exercise_set in enumerate(exercise.sets):
                    self.conn.execute(
                        """INSERT INTO exercise_sets (
                            id, exercise_id, position, reps, weight, duration, completed
                        ) VALUES (?, ?, ?, ?, ?, ?, ?)""",
                        (
                            exercise_set.id,
                            exercise.id,
                            set_position,
                            exercise_set.reps,
                            exercise_set.weight,
                            exercise_set.duration,
                            int(exercise_set.completed),
                        )
                    )

    def fetch_workouts(self, limit: int = 50) -> List[Workout]:
        """Most recent workouts, newest first"""
        rows = self.conn.execute(
            "SELECT * FROM workouts ORDER BY date DESC LIMIT ?", (limit,)
        ).fetchall()
        return [self._row_to_workout(r) for r in rows]

    def fetch_workouts_between(self, start: datetime, end: datetime) -> List[Workout]:
        """Workouts with start <= date < end, newest first"""
        rows = self.conn.execute(
            """SELECT * FROM workouts
               WHERE date >= ? AND date < ?
               ORDER BY date DESC""",
            (to_iso(start), to_iso(end))
        ).fetchall()
        return [self._row_to_workout(r) for r in rows]

    def get_workout(self, workout_id: str) -> Optional[Workout]:
        row = self.conn.execute(
            "SELECT * FROM workouts WHERE id = ?", (workout_id,)
        ).fetchone()
        return self._row_to_workout(row) if row else None

    def delete_workout(self, workout_id: str) -> bool:
        """Delete a workout (exercises and sets cascade)"""
        with self.conn:
            cursor = self.conn.execute("DELETE FROM workouts WHERE id = ?", (workout_id,))
        return cursor.rowcount > 0

    # -- Cardio sessions -----------------------------------------------------

    def insert_cardio_session(self, session: CardioSession) -> None:
        with self.conn:
            self.conn.execute(
                """INSERT INTO cardio_sessions (
                    id, date, type, duration, distance, calories, average_pace,
                    average_speed, average_heart_rate, max_heart_rate, elevation_gain,
                    route_data, source, external_workout_id, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    session.id,
                    to_iso(session.date),
                    session.type.value,
                    session.duration,
                    session.distance,
                    session.calories,
                    session.average_pace,
                    session.average_speed,
                    session.average_heart_rate,
                    session.max_heart_rate,
                    session.elevation_gain,
                    session.route_data,
                    session.source.value,
                    session.external_workout_id,
                    to_iso(session.created_at),
                    to_iso(session.updated_at),
                )
            )

    def fetch_cardio_sessions(self, limit: int = 50) -> List[CardioSession]:
        rows = self.conn.execute(
            "SELECT * FROM cardio_sessions ORDER BY date DESC LIMIT ?", (limit,)
        ).fetchall()
        return [self._row_to_cardio(r) for r in rows]

    def fetch_cardio_sessions_between(self, start: datetime, end: datetime) -> List[CardioSession]:
        rows = self.conn.execute(
            """SELECT * FROM cardio_sessions
               WHERE date >= ? AND date < ?
               ORDER BY date DESC""",
            (to_iso(start), to_iso(end))
        ).fetchall()
        return [self._row_to_cardio(r) for r in rows]

    def delete_cardio_session(self, session_id: str) -> bool:
        with self.conn:
            cursor = self.conn.execute("DELETE FROM cardio_sessions WHERE id = ?", (session_id,))
        return cursor.rowcount > 0

    def find_by_external_id(self, external_workout_id: str) -> Optional[Dict[str, Any]]:
        """Committed workout or cardio session for an external workout id"""
        return DuplicateDetector(self.conn).find_existing(external_workout_id)

    # -- Daily tasks ---------------------------------------------------------

    def save_daily_task(self, task: DailyTask) -> None:
        """Insert a task or update the existing one with the same id"""
        with self.conn:
            self.conn.execute(
                """INSERT INTO daily_tasks (
                    id, title, description, category, is_completed, date,
                    scheduled_time, reminder_enabled, created_at, completed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    description = excluded.description,
                    category = excluded.category,
                    is_completed = excluded.is_completed,
                    completed_at = excluded.completed_at""",
                (
                    task.id,
                    task.title,
                    task.description,
                    task.category.value,
                    int(task.is_completed),
                    to_iso(task.date),
                    to_iso(task.scheduled_time),
                    int(task.reminder_enabled),
                    to_iso(task.created_at),
                    to_iso(task.completed_at),
                )
            )

    def get_task(self, task_id: str) -> Optional[DailyTask]:
        row = self.conn.execute(
            "SELECT * FROM daily_tasks WHERE id = ?", (task_id,)
        ).fetchone()
        return self._row_to_task(row) if row else None

    def fetch_tasks_between(
        self,
        start: datetime,
        end: datetime,
        completed: Optional[bool] = None
    ) -> List[DailyTask]:
        """Tasks with start <= date < end in creation order, optionally by completion"""
        query = "SELECT * FROM daily_tasks WHERE date >= ? AND date < ?"
        params: List[Any] = [to_iso(start), to_iso(end)]
        if completed is not None:
            query += " AND is_completed = ?"
            params.append(int(completed))
        query += " ORDER BY created_at ASC"
        rows = self.conn.execute(query, tuple(params)).fetchall()
        return [self._row_to_task(r) for r in rows]

    def delete_task(self, task_id: str) -> bool:
        with self.conn:
            cursor = self.conn.execute("DELETE FROM daily_tasks WHERE id = ?", (task_id,))
        return cursor.rowcount > 0

    # -- Key-value state -----------------------------------------------------

    def get_state(self, key: str) -> Optional[str]:
        row = self.conn.execute(
            "SELECT value FROM app_state WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def set_state(self, key: str, value: str) -> None:
        with self.conn:
            self.conn.execute(
                """INSERT INTO app_state (key, value, updated_at)
                   VALUES (?, ?, datetime('now', 'localtime'))
                   ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value,
                       updated_at = excluded.updated_at""",
                (key, value)
            )

    def delete_state(self, key: str) -> None:
        with self.conn:
            self.conn.execute("DELETE FROM app_state WHERE key = ?", (key,))

    # -- Sync log ------------------------------------------------------------

    def create_sync_log(self, kind: str, started_at: datetime) -> int:
        """Create new sync log entry, return ID"""
        cursor = self.conn.execute(
            """INSERT INTO sync_log (kind, started_at, status)
               VALUES (?, ?, 'running')""",
            (kind, to_iso(started_at))
        )
        self.conn.commit()
        return cursor.lastrowid

    def finish_sync_log(
        self,
        sync_id: int,
        finished_at: datetime,
        records_found: int = 0,
        status: str = "completed",
        error_message: Optional[str] = None
    ) -> None:
        """Update sync log with final status"""
        self.conn.execute(
            """UPDATE sync_log SET
                finished_at = ?,
                records_found = ?,
                status = ?,
                error_message = ?
               WHERE id = ?""",
            (to_iso(finished_at), records_found, status, error_message, sync_id)
        )
        self.conn.commit()

    def fetch_sync_log(self, limit: int = 20) -> List[Dict[str, Any]]:
        rows = self.conn.execute(
            "SELECT * FROM sync_log ORDER BY id DESC LIMIT ?", (limit,)
        ).fetchall()
        return [dict(r) for r in rows]

    def last_successful_sync(self, kind: Optional[str] = None) -> Optional[datetime]:
        """Finish time of the latest completed sync, optionally of one kind"""
        query = "SELECT MAX(finished_at) AS t FROM sync_log WHERE status = 'completed'"
        params: Tuple = ()
        if kind:
            query += " AND kind = ?"
            params = (kind,)
        row = self.conn.execute(query, params).fetchone()
        return parse_iso_datetime(row["t"]) if row and row["t"] else None

    # -- Row decoding --------------------------------------------------------

    def _row_to_metrics(self, row: sqlite3.Row) -> HealthMetrics:
        context = f"health_metrics {row['id']}"
        return HealthMetrics(
            id=row["id"],
            date=self._decode_day(row["date"], context),
            steps=row["steps"],
            distance=row["distance"],
            active_calories=row["active_calories"],
            total_calories=row["total_calories"],
            active_minutes=row["active_minutes"],
            average_heart_rate=row["average_heart_rate"],
            resting_heart_rate=row["resting_heart_rate"],
            max_heart_rate=row["max_heart_rate"],
            flights_climbed=row["flights_climbed"],
            last_synced=self._decode_datetime(row["last_synced"], context),
            source=decode_enum(MetricSource, row["source"], context),
        )

    def _row_to_workout(self, row: sqlite3.Row) -> Workout:
        context = f"workouts {row['id']}"
        return Workout(
            id=row["id"],
            date=self._decode_datetime(row["date"], context),
            type=decode_enum(WorkoutType, row["type"], context),
            duration=row["duration"],
            calories=row["calories"],
            notes=row["notes"],
            exercises=self._fetch_exercises(row["id"]),
            source=decode_enum(WorkoutSource, row["source"], context),
            external_workout_id=row["external_workout_id"],
            review_status=decode_enum(ReviewStatus, row["review_status"], context),
            created_at=self._decode_datetime(row["created_at"], context),
            updated_at=self._decode_datetime(row["updated_at"], context),
        )

    def _fetch_exercises(self, workout_id: str) -> List[Exercise]:
        exercises = []
        rows = self.conn.execute(
            "SELECT * FROM exercises WHERE workout_id = ? ORDER BY position",
            (workout_id,)
        ).fetchall()
        for row in rows:
            set_rows = self.conn.execute(
                "SELECT * FROM exercise_sets WHERE exercise_id = ? ORDER BY position",
                (row["id"],)
            ).fetchall()
            sets = [
                ExerciseSet(
                    id=s["id"],
                    reps=s["reps"],
                    weight=s["weight"],
                    duration=s["duration"],
                    completed=bool(s["completed"]),
                )
                for s in set_rows
            ]
            exercises.append(Exercise(id=row["id"], name=row["name"], sets=sets, notes=row["notes"]))
        return exercises

    def _row_to_cardio(self, row: sqlite3.Row) -> CardioSession:
        context = f"cardio_sessions {row['id']}"
        return CardioSession(
            id=row["id"],
            date=self._decode_datetime(row["date"], context),
            type=decode_enum(CardioType, row["type"], context),
            duration=row["duration"],
            distance=row["distance"],
            calories=row["calories"],
            average_pace=row["average_pace"],
            average_speed=row["average_speed"],
            average_heart_rate=row["average_heart_rate"],
            max_heart_rate=row["max_heart_rate"],
            elevation_gain=row["elevation_gain"],
            route_data=row["route_data"],
            source=decode_enum(WorkoutSource, row["source"], context),
            external_workout_id=row["external_workout_id"],
            created_at=self._decode_datetime(row["created_at"], context),
            updated_at=self._decode_datetime(row["updated_at"], context),
        )

    def _row_to_task(self, row: sqlite3.Row) -> DailyTask:
        context = f"daily_tasks {row['id']}"
        return DailyTask(
            id=row["id"],
            title=row["title"],
            description=row["description"],
            category=decode_enum(TaskCategory, row["category"], context),
            is_completed=bool(row["is_completed"]),
            date=self._decode_datetime(row["date"], context),
            scheduled_time=self._decode_datetime(row["scheduled_time"], context),
            reminder_enabled=bool(row["reminder_enabled"]),
            created_at=self._decode_datetime(row["created_at"], context),
            completed_at=self._decode_datetime(row["completed_at"], context),
        )

    @staticmethod
    def _decode_datetime(value: Optional[str], context: str) -> Optional[datetime]:
        try:
            return parse_iso_datetime(value)
        except ValueError as e:
            raise DecodeError(f"Invalid timestamp {value!r} in {context}") from e

    @staticmethod
    def _decode_day(value: str, context: str) -> date:
        try:
            return parse_iso_date(value)
        except ValueError as e:
            raise DecodeError(f"Invalid date {value!r} in {context}") from e

    def close(self) -> None:
        """Close database connection"""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
