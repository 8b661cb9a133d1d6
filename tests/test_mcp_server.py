import asyncio
from datetime import date

from conftest import NOW, make_workout
from momentum_sync.core.errors import NotFound
from momentum_sync.core.models import BatchResult, HealthMetrics, Streak
from momentum_sync.mcp.server import batch_to_dict, create_server, metrics_to_dict, run_tool, streak_to_dict
from momentum_sync.sync.coordinator import SyncCoordinator
from momentum_sync.sync.streak import StreakEngine


def test_registers_tools(db, source, clock):
    server = create_server(SyncCoordinator(db, source, clock), StreakEngine(db, clock))

    tools = asyncio.run(server.list_tools())

    assert {t.name for t in tools} == {
        "sync_status",
        "sync_metrics",
        "sync_workouts",
        "fetch_recent_workouts",
        "pending_workouts",
        "approve_workout",
        "ignore_workout",
        "approve_all_workouts",
        "ignore_all_workouts",
        "streak_status",
        "update_streak",
    }


class TestRunTool:
    def test_sync_result(self):
        assert asyncio.run(run_tool("t", {}, lambda: {"ok": True})) == {"ok": True}

    def test_async_result(self):
        async def body():
            return {"ok": 1}

        assert asyncio.run(run_tool("t", {"days": 3}, body)) == {"ok": 1}

    def test_domain_error_becomes_error_dict(self):
        def body():
            raise NotFound("No pending workout with id x")

        assert asyncio.run(run_tool("t", {}, body)) == {"error": "No pending workout with id x"}

    def test_unexpected_error_becomes_error_dict(self):
        def body():
            raise RuntimeError("boom")

        assert asyncio.run(run_tool("t", {}, body)) == {"error": "boom"}


def test_metrics_to_dict():
    metrics = HealthMetrics(date=date(2026, 3, 10), steps=5500, distance=2.0049, last_synced=NOW)

    data = metrics_to_dict(metrics)

    assert data["date"] == "2026-03-10"
    assert data["distance"] == 2.0
    assert data["last_synced"] == "2026-03-10T15:30:00"
    assert data["avg_hr"] is None
    assert metrics_to_dict(None) is None


def test_streak_and_batch_to_dict():
    streak = Streak(current_streak=7, longest_streak=9, last_active_date=NOW)

    assert streak_to_dict(streak, True)["message"] == "One week strong!"
    assert streak_to_dict(streak, True)["started"] is None
    assert batch_to_dict(BatchResult(approved=2, failed=[("abc", "disk full")])) == {
        "approved": 2,
        "ignored": 0,
        "skipped": 0,
        "failed": [{"id": "abc", "error": "disk full"}],
    }


def test_review_item_summary(db, source, clock):
    coordinator = SyncCoordinator(db, source, clock)
    source.add_workout(make_workout("w1"))
    asyncio.run(coordinator.sync_workouts())

    summary = coordinator.pending_workouts[0].summary()

    assert summary["type"] == "running"
    assert summary["duration"] == "30m"
    assert summary["distance"] == "5.00 mi"
    assert summary["calories"] == "310 cal"
    assert summary["cardio"] is True
