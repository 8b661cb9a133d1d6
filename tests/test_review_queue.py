import sqlite3
import threading
from datetime import timedelta

import pytest

from conftest import NOW, make_workout
from momentum_sync.core.errors import BatchError, NotFound
from momentum_sync.sync.coordinator import SyncCoordinator
from momentum_sync.sync.review import ReviewQueue
from momentum_sync.sync.workouts import WorkoutSyncEngine


class FlakyEngine(WorkoutSyncEngine):
    """Fails to commit one external workout id"""

    def __init__(self, *args, broken_id="w2", **kwargs):
        super().__init__(*args, **kwargs)
        self.broken_id = broken_id

    def approve(self, item):
        if item.external_workout_id == self.broken_id:
            raise sqlite3.IntegrityError("disk says no")
        return super().approve(item)


def items_for(engine, *ids):
    return [
        engine.convert(make_workout(ext_id, start=NOW - timedelta(hours=i + 1)))
        for i, ext_id in enumerate(ids)
    ]


@pytest.fixture
def engine(db, source, clock):
    return WorkoutSyncEngine(db, source, clock)


@pytest.fixture
def coordinator(db, source, clock, engine):
    return SyncCoordinator(db, source, clock, workout_engine=engine)


class TestReviewQueue:
    def test_extend_replace_remove(self, engine):
        queue = ReviewQueue()
        a, b, c = items_for(engine, "a", "b", "c")

        assert queue.extend([a, b]) == 2
        assert len(queue) == 2
        assert queue.remove(a.id) is a
        assert queue.remove(a.id) is None

        queue.replace([c])
        assert queue.snapshot() == [c]
        queue.clear()
        assert not queue

    def test_sorted_for_display_is_newest_first(self, engine):
        queue = ReviewQueue()
        newest, middle, oldest = items_for(engine, "newest", "middle", "oldest")
        queue.extend([middle, oldest, newest])

        assert queue.sorted_for_display() == [newest, middle, oldest]

    def test_concurrent_extend_and_remove(self, engine):
        queue = ReviewQueue()
        items = items_for(engine, *[f"w{i}" for i in range(200)])
        queue.extend(items[:100])

        def add():
            for item in items[100:]:
                queue.extend([item])

        def drop():
            for item in items[:100]:
                queue.remove(item.id)

        threads = [threading.Thread(target=add), threading.Thread(target=drop)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert {i.id for i in queue.snapshot()} == {i.id for i in items[100:]}


class TestSingleDecisions:
    def test_approve_removes_item(self, coordinator, engine, db):
        item = items_for(engine, "w1")[0]
        coordinator.queue.extend([item])

        coordinator.approve_workout(item.id)

        assert not coordinator.has_pending_workouts
        assert len(db.fetch_cardio_sessions()) == 1

    def test_ignore_removes_item_without_saving(self, coordinator, engine, db):
        item = items_for(engine, "w1")[0]
        coordinator.queue.extend([item])

        coordinator.ignore_workout(item.id)

        assert coordinator.pending_workouts == []
        assert db.fetch_cardio_sessions() == []

    def test_unknown_id_raises_not_found(self, coordinator):
        with pytest.raises(NotFound):
            coordinator.approve_workout("missing")
        with pytest.raises(NotFound):
            coordinator.ignore_workout("missing")

    def test_failed_approval_keeps_item(self, db, source, clock):
        engine = FlakyEngine(db, source, clock, broken_id="w1")
        coordinator = SyncCoordinator(db, source, clock, workout_engine=engine)
        item = items_for(engine, "w1")[0]
        coordinator.queue.extend([item])

        with pytest.raises(sqlite3.IntegrityError):
            coordinator.approve_workout(item.id)

        assert coordinator.queue.get(item.id) is item
        assert coordinator.last_error == "disk says no"


class TestBulkDecisions:
    def test_approve_all(self, coordinator, engine, db):
        coordinator.queue.extend(items_for(engine, "w1", "w2", "w3"))

        result = coordinator.approve_all()

        assert result.approved == 3
        assert result.ok
        assert not coordinator.has_pending_workouts
        assert len(db.fetch_cardio_sessions()) == 3

    def test_partial_failure_is_reported(self, db, source, clock):
        engine = FlakyEngine(db, source, clock)
        coordinator = SyncCoordinator(db, source, clock, workout_engine=engine)
        items = items_for(engine, "w1", "w2", "w3")
        coordinator.queue.extend(items)

        result = coordinator.approve_all()

        assert result.approved == 2
        assert result.failed == [(items[1].id, "disk says no")]
        assert [i.id for i in coordinator.queue.snapshot()] == [items[1].id]
        assert len(db.fetch_cardio_sessions()) == 2
        assert coordinator.last_error is not None

    def test_strict_raises_with_result(self, db, source, clock):
        engine = FlakyEngine(db, source, clock)
        coordinator = SyncCoordinator(db, source, clock, workout_engine=engine)
        coordinator.queue.extend(items_for(engine, "w1", "w2", "w3"))

        with pytest.raises(BatchError) as exc_info:
            coordinator.approve_all(strict=True)

        assert exc_info.value.result.approved == 2
        assert len(exc_info.value.result.failed) == 1
        assert len(coordinator.queue) == 1

    def test_dedupe_counts_skipped(self, db, source, clock):
        engine = WorkoutSyncEngine(db, source, clock, dedupe=True)
        coordinator = SyncCoordinator(db, source, clock, workout_engine=engine)
        item = items_for(engine, "w1")[0]
        engine.approve(item)
        coordinator.queue.extend([item])

        result = coordinator.approve_all()

        assert result.skipped == 1
        assert result.approved == 0
        assert len(db.fetch_cardio_sessions()) == 1

    def test_ignore_all(self, coordinator, engine, db):
        coordinator.queue.extend(items_for(engine, "w1", "w2"))

        result = coordinator.ignore_all()

        assert result.ignored == 2
        assert len(coordinator.queue) == 0
        assert db.fetch_cardio_sessions() == []
        assert db.fetch_workouts() == []

    def test_empty_queue_is_a_no_op(self, coordinator):
        assert coordinator.approve_all().approved == 0
        assert coordinator.ignore_all().ignored == 0
