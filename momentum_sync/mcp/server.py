"""
MCP Server for Momentum sync

Keeps one SyncCoordinator alive for the server's lifetime so pending
workouts and the background delivery loop survive between tool calls.

To run: python -m momentum_sync.mcp

For Claude Desktop, add to claude_desktop_config.json:
{
  "mcpServers": {
    "momentum-sync": {
      "command": "python",
      "args": ["-m", "momentum_sync.mcp"]
    }
  }
}
"""
import inspect
import sys
import time
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional

from mcp.server import FastMCP

from momentum_sync.core.database import Database
from momentum_sync.core.errors import MomentumError
from momentum_sync.core.logging_setup import get_logger, setup_logging
from momentum_sync.core.models import BatchResult, HealthMetrics, Streak
from momentum_sync.health.garmin import GarminHealthSource
from momentum_sync.sync.coordinator import SyncCoordinator
from momentum_sync.sync.streak import StreakEngine
from momentum_sync.transforms.datetime_utils import to_iso


def metrics_to_dict(metrics: Optional[HealthMetrics]) -> Optional[Dict[str, Any]]:
    if metrics is None:
        return None
    return {
        "date": metrics.date.isoformat(),
        "steps": metrics.steps,
        "distance": round(metrics.distance, 2),
        "active_calories": metrics.active_calories,
        "total_calories": metrics.total_calories,
        "active_minutes": metrics.active_minutes,
        "avg_hr": metrics.average_heart_rate,
        "resting_hr": metrics.resting_heart_rate,
        "max_hr": metrics.max_heart_rate,
        "flights": metrics.flights_climbed,
        "last_synced": to_iso(metrics.last_synced),
    }


def streak_to_dict(streak: Streak, celebrate: bool) -> Dict[str, Any]:
    return {
        "current": streak.current_streak,
        "longest": streak.longest_streak,
        "last_active": to_iso(streak.last_active_date),
        "started": to_iso(streak.streak_start_date),
        "milestones": [m.days for m in streak.milestones],
        "message": streak.motivational_message,
        "celebrate": celebrate,
    }


def batch_to_dict(result: BatchResult) -> Dict[str, Any]:
    return {
        "approved": result.approved,
        "ignored": result.ignored,
        "skipped": result.skipped,
        "failed": [{"id": item_id, "error": error} for item_id, error in result.failed],
    }


async def run_tool(tool_name: str, params: Dict[str, Any], fn: Callable) -> dict:
    """Run a tool body, logging timing and turning errors into {"error": ...}"""
    logger = get_logger()
    args = ", ".join(f"{k}={v}" for k, v in params.items())
    logger.info(f"MCP Tool Call: {tool_name}({args})")
    start = time.time()
    try:
        result = fn()
        if inspect.isawaitable(result):
            result = await result
        duration_ms = int((time.time() - start) * 1000)
        logger.info(f"{tool_name}: {duration_ms}ms")
        return result
    except MomentumError as e:
        logger.warning(f"{tool_name} failed: {e}")
        return {"error": str(e)}
    except Exception as e:
        logger.error(f"{tool_name} error: {e}", exc_info=True)
        return {"error": str(e)}


def create_server(coordinator: SyncCoordinator, streak_engine: StreakEngine) -> FastMCP:
    """Build the MCP server around an existing coordinator and streak engine"""

    @asynccontextmanager
    async def lifespan(server: FastMCP):
        logger = get_logger()
        try:
            await coordinator.request_authorization()
        except MomentumError as e:
            logger.warning(f"Health source not ready: {e}")
        try:
            yield {}
        finally:
            await coordinator.stop()

    mcp = FastMCP(
        name="momentum-sync",
        instructions=(
            "Health data sync and workout review for the Momentum fitness tracker. "
            "Status: sync_status. Metrics: sync_metrics. "
            "Workouts: sync_workouts, fetch_recent_workouts, pending_workouts, approve_workout, "
            "ignore_workout, approve_all_workouts, ignore_all_workouts. "
            "Streak: streak_status, update_streak."
        ),
        lifespan=lifespan,
    )

    @mcp.tool()
    async def sync_status() -> dict:
        """
        Authorization, last sync time, last error and pending review count.
        """
        return await run_tool("sync_status", {}, lambda: coordinator.state().to_dict())

    @mcp.tool()
    async def sync_metrics() -> dict:
        """
        Sync today's activity metrics (steps, distance, calories, active minutes,
        heart rate, flights). If the sync fails the last stored metrics for today
        are returned together with the error.
        """
        async def body():
            metrics = await coordinator.refresh_today_metrics()
            return {"metrics": metrics_to_dict(metrics), "error": coordinator.last_error}
        return await run_tool("sync_metrics", {}, body)

    @mcp.tool()
    async def sync_workouts() -> dict:
        """
        Fetch workouts added since the last sync and queue them for review.
        """
        async def body():
            items = await coordinator.sync_workouts()
            return {"new": [i.summary() for i in items], "pending": len(coordinator.queue)}
        return await run_tool("sync_workouts", {}, body)

    @mcp.tool()
    async def fetch_recent_workouts(days: int = 30) -> dict:
        """
        Replace the review queue with every supported workout from the last N days.

        Args:
            days: Number of days to scan (default 30)

        Workouts that were already approved can appear again.
        """
        async def body():
            items = await coordinator.fetch_recent_workouts(days)
            return {"workouts": [i.summary() for i in items]}
        return await run_tool("fetch_recent_workouts", {"days": days}, body)

    @mcp.tool()
    async def pending_workouts() -> dict:
        """
        Workouts awaiting review, newest first.
        """
        return await run_tool(
            "pending_workouts", {},
            lambda: {"workouts": [i.summary() for i in coordinator.pending_workouts]},
        )

    @mcp.tool()
    async def approve_workout(item_id: str) -> dict:
        """
        Save a pending workout. Cardio workouts with a distance are saved as
        cardio sessions, everything else as a workout.

        Args:
            item_id: Review item id from pending_workouts
        """
        def body():
            record = coordinator.approve_workout(item_id)
            if record is None:
                return {"approved": item_id, "skipped": "already saved"}
            return {"approved": item_id, "record": type(record).__name__, "record_id": record.id}
        return await run_tool("approve_workout", {"item_id": item_id}, body)

    @mcp.tool()
    async def ignore_workout(item_id: str) -> dict:
        """
        Discard a pending workout without saving it.

        Args:
            item_id: Review item id from pending_workouts
        """
        def body():
            coordinator.ignore_workout(item_id)
            return {"ignored": item_id}
        return await run_tool("ignore_workout", {"item_id": item_id}, body)

    @mcp.tool()
    async def approve_all_workouts() -> dict:
        """
        Approve every pending workout. Failures are reported per item and
        the failed items stay pending.
        """
        return await run_tool(
            "approve_all_workouts", {}, lambda: batch_to_dict(coordinator.approve_all())
        )

    @mcp.tool()
    async def ignore_all_workouts() -> dict:
        """
        Discard every pending workout.
        """
        return await run_tool(
            "ignore_all_workouts", {}, lambda: batch_to_dict(coordinator.ignore_all())
        )

    @mcp.tool()
    async def streak_status() -> dict:
        """
        Current and longest streak, milestones and a motivational message.
        """
        return await run_tool(
            "streak_status", {},
            lambda: streak_to_dict(streak_engine.get_current_streak(), streak_engine.should_celebrate_milestone()),
        )

    @mcp.tool()
    async def update_streak() -> dict:
        """
        Re-evaluate today's activity (completed task, workout or 1000+ steps)
        and update the streak.
        """
        def body():
            streak = streak_engine.update_streak()
            return streak_to_dict(streak, streak_engine.should_celebrate_milestone())
        return await run_tool("update_streak", {}, body)

    return mcp


def main() -> None:
    # stdout carries the MCP protocol
    setup_logging(verbosity=1, stream=sys.stderr)

    db = Database()
    db.init_schema()
    coordinator = SyncCoordinator(db, GarminHealthSource())
    server = create_server(coordinator, StreakEngine(db))
    server.run()


if __name__ == "__main__":
    main()
