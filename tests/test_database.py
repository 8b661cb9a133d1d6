from datetime import date, datetime

import pytest

from momentum_sync.core.errors import DecodeError
from momentum_sync.core.models import (
    CardioSession,
    CardioType,
    DailyTask,
    Exercise,
    ExerciseSet,
    HealthMetrics,
    ReviewStatus,
    TaskCategory,
    Workout,
    WorkoutSource,
    WorkoutType,
)


def test_init_schema_is_idempotent(db):
    db.init_schema()
    db.init_schema()
    assert db.fetch_workouts() == []


class TestHealthMetrics:
    def test_insert_then_update_reports_changes(self, db):
        day = date(2026, 3, 10)
        inserted, changes = db.upsert_health_metrics(HealthMetrics(date=day, steps=1000, active_calories=50, total_calories=1500))
        assert inserted is True
        assert changes == []

        inserted, changes = db.upsert_health_metrics(HealthMetrics(date=day, steps=2500, active_calories=50, total_calories=1500))
        assert inserted is False
        assert [c.field for c in changes] == ["steps"]
        assert changes[0].existing == 1000
        assert changes[0].new == 2500
        assert db.count_health_metrics(day) == 1

    def test_update_keeps_original_id(self, db):
        day = date(2026, 3, 10)
        first = HealthMetrics(date=day, steps=10)
        db.upsert_health_metrics(first)
        second = HealthMetrics(date=day, steps=20)
        db.upsert_health_metrics(second)

        assert second.id == first.id
        assert db.get_health_metrics(day).steps == 20

    def test_fetch_range_is_half_open(self, db):
        for d in (9, 10, 11):
            db.upsert_health_metrics(HealthMetrics(date=date(2026, 3, d), steps=d))

        rows = db.fetch_health_metrics(date(2026, 3, 9), date(2026, 3, 11))

        assert [m.date.day for m in rows] == [10, 9]

    def test_unknown_source_fails_loudly(self, db):
        db.upsert_health_metrics(HealthMetrics(date=date(2026, 3, 10)))
        db.conn.execute("UPDATE health_metrics SET source = 'fitbit'")

        with pytest.raises(DecodeError, match="fitbit"):
            db.get_health_metrics(date(2026, 3, 10))


class TestWorkouts:
    def test_workout_with_exercises_round_trips(self, db):
        workout = Workout(
            date=datetime(2026, 3, 10, 7, 0),
            type=WorkoutType.STRENGTH,
            duration=3600,
            calories=400,
            exercises=[
                Exercise(name="Squat", sets=[ExerciseSet(reps=5, weight=225.0, completed=True), ExerciseSet(reps=5, weight=235.0)]),
                Exercise(name="Bench", sets=[ExerciseSet(reps=8, weight=155.0)]),
            ],
        )
        db.insert_workout(workout)

        stored = db.get_workout(workout.id)

        assert stored.type == WorkoutType.STRENGTH
        assert stored.source == WorkoutSource.MANUAL
        assert stored.review_status == ReviewStatus.APPROVED
        assert [e.name for e in stored.exercises] == ["Squat", "Bench"]
        assert [s.weight for s in stored.exercises[0].sets] == [225.0, 235.0]
        assert stored.exercises[0].sets[0].completed is True
        assert stored.exercises[0].sets[1].completed is False

    def test_delete_cascades_to_exercises(self, db):
        workout = Workout(
            date=datetime(2026, 3, 10, 7, 0),
            type=WorkoutType.STRENGTH,
            exercises=[Exercise(name="Row", sets=[ExerciseSet(reps=10)])],
        )
        db.insert_workout(workout)

        assert db.delete_workout(workout.id) is True
        assert db.conn.execute("SELECT COUNT(*) FROM exercises").fetchone()[0] == 0
        assert db.conn.execute("SELECT COUNT(*) FROM exercise_sets").fetchone()[0] == 0
        assert db.delete_workout(workout.id) is False

    def test_fetch_between_is_half_open(self, db):
        for hour in (0, 12, 23):
            db.insert_workout(Workout(date=datetime(2026, 3, 10, hour), type=WorkoutType.YOGA))
        db.insert_workout(Workout(date=datetime(2026, 3, 11, 0), type=WorkoutType.YOGA))

        rows = db.fetch_workouts_between(datetime(2026, 3, 10), datetime(2026, 3, 11))

        assert [w.date.hour for w in rows] == [23, 12, 0]

    def test_unknown_workout_type_fails_loudly(self, db):
        workout = Workout(date=datetime(2026, 3, 10, 7), type=WorkoutType.HIIT)
        db.insert_workout(workout)
        db.conn.execute("UPDATE workouts SET type = 'dance'")

        with pytest.raises(DecodeError):
            db.fetch_workouts()


class TestCardioSessions:
    def test_insert_and_fetch(self, db):
        session = CardioSession(
            date=datetime(2026, 3, 10, 6, 30),
            type=CardioType.CYCLING,
            duration=2700,
            distance=12.5,
            route_data=b"\x01\x02",
            source=WorkoutSource.PLATFORM_HEALTH,
            external_workout_id="ext-1",
        )
        db.insert_cardio_session(session)

        stored = db.fetch_cardio_sessions()[0]

        assert stored.id == session.id
        assert stored.type == CardioType.CYCLING
        assert stored.distance == 12.5
        assert stored.route_data == b"\x01\x02"
        assert db.delete_cardio_session(session.id) is True
        assert db.fetch_cardio_sessions() == []

    def test_fetch_between_is_half_open(self, db):
        for day, hour in ((9, 23), (10, 0), (10, 18), (11, 0)):
            db.insert_cardio_session(CardioSession(date=datetime(2026, 3, day, hour), type=CardioType.WALKING))

        rows = db.fetch_cardio_sessions_between(datetime(2026, 3, 10), datetime(2026, 3, 11))

        assert [s.date for s in rows] == [datetime(2026, 3, 10, 18), datetime(2026, 3, 10, 0)]

    def test_find_by_external_id(self, db):
        db.insert_cardio_session(CardioSession(
            date=datetime(2026, 3, 10), type=CardioType.RUNNING, external_workout_id="run-1"
        ))
        db.insert_workout(Workout(
            date=datetime(2026, 3, 10), type=WorkoutType.YOGA, external_workout_id="yoga-1"
        ))

        assert db.find_by_external_id("run-1")["table"] == "cardio_sessions"
        assert db.find_by_external_id("yoga-1")["table"] == "workouts"
        assert db.find_by_external_id("missing") is None


class TestDailyTasks:
    def test_save_is_upsert_by_id(self, db):
        task = DailyTask(title="Drink water", category=TaskCategory.HYDRATION, date=datetime(2026, 3, 10, 8))
        db.save_daily_task(task)
        task.toggle(now=datetime(2026, 3, 10, 9))
        db.save_daily_task(task)

        stored = db.get_task(task.id)

        assert stored.is_completed is True
        assert stored.completed_at == datetime(2026, 3, 10, 9)
        assert len(db.fetch_tasks_between(datetime(2026, 3, 10), datetime(2026, 3, 11))) == 1

    def test_fetch_by_completion(self, db):
        done = DailyTask(title="Stretch", category=TaskCategory.FITNESS, date=datetime(2026, 3, 10, 8), is_completed=True)
        todo = DailyTask(title="Meditate", category=TaskCategory.MINDFULNESS, date=datetime(2026, 3, 10, 9))
        db.save_daily_task(done)
        db.save_daily_task(todo)

        completed = db.fetch_tasks_between(datetime(2026, 3, 10), datetime(2026, 3, 11), completed=True)
        open_tasks = db.fetch_tasks_between(datetime(2026, 3, 10), datetime(2026, 3, 11), completed=False)

        assert [t.title for t in completed] == ["Stretch"]
        assert [t.title for t in open_tasks] == ["Meditate"]
        assert db.delete_task(todo.id) is True


class TestState:
    def test_get_set_delete(self, db):
        assert db.get_state("workout_anchor") is None
        db.set_state("workout_anchor", "3")
        db.set_state("workout_anchor", "5")
        assert db.get_state("workout_anchor") == "5"
        db.delete_state("workout_anchor")
        assert db.get_state("workout_anchor") is None

    def test_state_survives_reopen(self, db):
        db.set_state("user_streak", "{}")
        path = db.db_path
        db.close()

        from momentum_sync.core.database import Database
        with Database(path) as reopened:
            assert reopened.get_state("user_streak") == "{}"


class TestSyncLog:
    def test_lifecycle(self, db):
        started = datetime(2026, 3, 10, 15, 0)
        sync_id = db.create_sync_log("metrics", started)
        assert db.fetch_sync_log()[0]["status"] == "running"
        assert db.last_successful_sync() is None

        db.finish_sync_log(sync_id, datetime(2026, 3, 10, 15, 1), records_found=1)

        entry = db.fetch_sync_log()[0]
        assert entry["status"] == "completed"
        assert entry["records_found"] == 1
        assert db.last_successful_sync("metrics") == datetime(2026, 3, 10, 15, 1)
        assert db.last_successful_sync("workouts") is None

    def test_failed_sync_records_error(self, db):
        sync_id = db.create_sync_log("workouts", datetime(2026, 3, 10, 15, 0))
        db.finish_sync_log(sync_id, datetime(2026, 3, 10, 15, 0), status="failed", error_message="boom")

        entry = db.fetch_sync_log()[0]
        assert entry["status"] == "failed"
        assert entry["error_message"] == "boom"
        assert db.last_successful_sync() is None
