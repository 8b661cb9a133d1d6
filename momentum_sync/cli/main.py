"""CLI entry point for Momentum sync"""
import argparse
import asyncio
import getpass
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..core.config import GARMIN_EMAIL, GARMIN_PASSWORD, RECENT_WORKOUT_DAYS
from ..core.database import Database, DEFAULT_DB_PATH
from ..core.errors import MomentumError, NotAuthorized
from ..core.logging_setup import setup_logging, get_logger
from ..core.models import DailyTask, TaskCategory
from ..health.garmin import GarminHealthSource
from ..health.permissions import READ_TYPES, WRITE_TYPES
from ..health.source import HealthSource
from ..sync.coordinator import SyncCoordinator
from ..sync.streak import StreakEngine
from ..sync.workouts import WorkoutSyncEngine
from ..transforms.datetime_utils import day_bounds

TABLES = (
    "health_metrics",
    "workouts",
    "exercises",
    "exercise_sets",
    "cardio_sessions",
    "daily_tasks",
    "app_state",
    "sync_log",
)


def make_source() -> HealthSource:
    """Health source used by sync commands"""
    return GarminHealthSource()


def _open_db(args: argparse.Namespace) -> Database:
    db = Database(Path(args.db) if args.db else DEFAULT_DB_PATH)
    db.init_schema()
    return db


def _print_metrics(metrics) -> None:
    if metrics is None:
        print("No metrics for today")
        return
    print(f"\nToday ({metrics.date.isoformat()})")
    print("-" * 40)
    print(f"  Steps:          {metrics.steps}")
    print(f"  Distance:       {metrics.distance:.2f} mi")
    print(f"  Calories:       {metrics.active_calories} active / {metrics.total_calories} total")
    print(f"  Active minutes: {metrics.active_minutes}")
    if metrics.average_heart_rate is not None:
        print(f"  Heart rate:     avg {metrics.average_heart_rate}, max {metrics.max_heart_rate}, "
              f"resting {metrics.resting_heart_rate}")
    if metrics.flights_climbed is not None:
        print(f"  Flights:        {metrics.flights_climbed}")


def _review(coordinator: SyncCoordinator, args: argparse.Namespace) -> int:
    """Apply review decisions to pending workouts. Returns failure count."""
    if not coordinator.has_pending_workouts:
        print("No workouts to review")
        return 0

    if args.approve_all:
        result = coordinator.approve_all()
        print(result)
        return len(result.failed)
    if args.ignore_all:
        result = coordinator.ignore_all()
        print(result)
        return len(result.failed)

    pending = coordinator.pending_workouts
    print(f"\n{len(pending)} workout(s) to review")
    print("=" * 60)
    failures = 0
    for item in pending:
        details = [item.date.strftime("%Y-%m-%d %H:%M"), item.type.value, item.duration_formatted]
        if item.distance_formatted:
            details.append(item.distance_formatted)
        if item.calories_formatted:
            details.append(item.calories_formatted)
        print("  " + " | ".join(details))

        choice = input("  [a]pprove / [i]gnore / [s]kip? ").strip().lower()
        if choice.startswith("a"):
            try:
                coordinator.approve_workout(item.id)
            except MomentumError as e:
                get_logger().error(f"Approve failed: {e}")
                failures += 1
        elif choice.startswith("i"):
            coordinator.ignore_workout(item.id)
    return failures


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize database"""
    logger = get_logger()
    try:
        with _open_db(args) as db:
            logger.info(f"Database initialized: {db.db_path}")
            return 0
    except Exception as e:
        logger.error(f"Init failed: {e}")
        return 1


def cmd_login(args: argparse.Namespace) -> int:
    """Log in to Garmin Connect and store the session"""
    logger = get_logger()
    source = GarminHealthSource()

    if not args.force and source.is_logged_in():
        print(f"Already logged in as {source.get_user_name()}")
        return 0

    email = args.email or GARMIN_EMAIL or input("Garmin email: ").strip()
    password = GARMIN_PASSWORD or getpass.getpass("Garmin password: ")
    try:
        source.login(email, password)
    except NotAuthorized as e:
        logger.error(str(e))
        return 1
    print(f"Logged in as {source.get_user_name()}")
    return 0


async def _run_sync(args: argparse.Namespace, db: Database, source: HealthSource) -> int:
    coordinator = SyncCoordinator(db, source)
    try:
        if not await source.request_authorization(READ_TYPES, WRITE_TYPES):
            raise NotAuthorized("Health data access not authorized (run: momentum-sync login)")
        coordinator.check_authorization_status()

        await coordinator.perform_initial_sync()
        _print_metrics(db.get_health_metrics(coordinator.clock().date()))
        failures = _review(coordinator, args)

        streak = StreakEngine(db).update_streak()
        print(f"\nStreak: {streak.current_streak} day(s) - {streak.motivational_message}")
        return 1 if failures else 0
    finally:
        await source.close()


def cmd_sync(args: argparse.Namespace) -> int:
    """Sync today's metrics and new workouts, then review"""
    logger = get_logger()
    try:
        with _open_db(args) as db:
            return asyncio.run(_run_sync(args, db, make_source()))
    except MomentumError as e:
        logger.error(f"Sync failed: {e}")
        return 1


async def _run_recent(args: argparse.Namespace, db: Database, source: HealthSource) -> int:
    engine = WorkoutSyncEngine(db, source, dedupe=args.dedupe)
    coordinator = SyncCoordinator(db, source, workout_engine=engine)
    try:
        if not await source.request_authorization(READ_TYPES, WRITE_TYPES):
            raise NotAuthorized("Health data access not authorized (run: momentum-sync login)")
        await coordinator.fetch_recent_workouts(args.days)
        failures = _review(coordinator, args)
        return 1 if failures else 0
    finally:
        await source.close()


def cmd_recent(args: argparse.Namespace) -> int:
    """Scan the last N days of workouts for review"""
    logger = get_logger()
    try:
        with _open_db(args) as db:
            return asyncio.run(_run_recent(args, db, make_source()))
    except MomentumError as e:
        logger.error(f"Fetch failed: {e}")
        return 1


def cmd_streak(args: argparse.Namespace) -> int:
    """Update and show the activity streak"""
    logger = get_logger()
    try:
        with _open_db(args) as db:
            engine = StreakEngine(db)
            streak = engine.reset_streak() if args.reset else engine.update_streak()

            print(f"\nCurrent streak: {streak.current_streak} day(s)")
            print(f"Longest streak: {streak.longest_streak} day(s)")
            if streak.streak_start_date:
                print(f"Started:        {streak.streak_start_date.date().isoformat()}")
            print(streak.motivational_message)
            if engine.should_celebrate_milestone():
                print(f"Milestone: {streak.current_streak} days!")
            return 0
    except MomentumError as e:
        logger.error(f"Streak update failed: {e}")
        return 1


def cmd_task(args: argparse.Namespace) -> int:
    """Manage today's tasks"""
    logger = get_logger()
    try:
        with _open_db(args) as db:
            if args.task_command == "add":
                task = DailyTask(
                    title=args.title,
                    category=TaskCategory(args.category),
                    description=args.description,
                    date=datetime.now(),
                )
                db.save_daily_task(task)
                print(f"Added task {task.id}: {task.title}")
                return 0

            if args.task_command == "done":
                task = db.get_task(args.id)
                if task is None:
                    logger.error(f"No task with id {args.id}")
                    return 1
                task.toggle()
                db.save_daily_task(task)
                state = "completed" if task.is_completed else "not completed"
                print(f"Task '{task.title}' marked {state}")
                return 0

            start, end = day_bounds(datetime.now())
            tasks = db.fetch_tasks_between(start, end)
            if not tasks:
                print("No tasks for today")
                return 0
            for task in tasks:
                mark = "x" if task.is_completed else " "
                print(f"[{mark}] {task.title} ({task.category.value})  {task.id}")
            return 0
    except MomentumError as e:
        logger.error(f"Task command failed: {e}")
        return 1


def cmd_inspect(args: argparse.Namespace) -> int:
    """Handle inspect command"""
    logger = get_logger()
    if args.table not in TABLES:
        logger.error(f"Unknown table: {args.table}")
        logger.error(f"Available tables: {', '.join(TABLES)}")
        return 1

    try:
        with _open_db(args) as db:
            rows = db.conn.execute(
                f"SELECT * FROM {args.table} ORDER BY rowid DESC LIMIT ?",
                (args.limit or 20,)
            ).fetchall()

            if not rows:
                print(f"No records in {args.table}")
                return 0

            print(f"\n{args.table} (showing {len(rows)} records)")
            print("-" * 80)
            for row in rows:
                print(dict(row))
            return 0
    except Exception as e:
        logger.error(f"Inspect failed: {e}")
        return 1


def cmd_log(args: argparse.Namespace) -> int:
    """Show recent sync runs"""
    with _open_db(args) as db:
        entries = db.fetch_sync_log(args.limit)

    if not entries:
        print("No syncs recorded")
        return 0

    print(f"\nSync log ({len(entries)} runs)")
    print("-" * 80)
    for entry in entries:
        line = f"#{entry['id']:<5} {entry['kind']:<16} {entry['started_at']}  {entry['status']:<10} {entry['records_found']}"
        if entry["error_message"]:
            line += f"  {entry['error_message']}"
        print(line)
    return 0


def _add_review_flags(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--approve-all", action="store_true", help="Approve every pending workout")
    group.add_argument("--ignore-all", action="store_true", help="Ignore every pending workout")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        prog="momentum-sync",
        description="Sync activity metrics and workouts into Momentum"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for values, -vv for debug)"
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Quiet mode (errors only)"
    )
    parser.add_argument(
        "--db",
        help=f"Database path (default: {DEFAULT_DB_PATH})"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    init_parser = subparsers.add_parser("init", help="Initialize database")
    init_parser.set_defaults(func=cmd_init)

    login_parser = subparsers.add_parser("login", help="Log in to Garmin Connect")
    login_parser.add_argument("--email", help="Garmin account email")
    login_parser.add_argument("--force", action="store_true", help="Log in even if a session exists")
    login_parser.set_defaults(func=cmd_login)

    sync_parser = subparsers.add_parser("sync", help="Sync today's metrics and new workouts")
    _add_review_flags(sync_parser)
    sync_parser.set_defaults(func=cmd_sync)

    recent_parser = subparsers.add_parser("recent", help="Review workouts from the last N days")
    recent_parser.add_argument(
        "--days", "-d",
        type=int,
        default=RECENT_WORKOUT_DAYS,
        help=f"Days to scan (default: {RECENT_WORKOUT_DAYS})"
    )
    recent_parser.add_argument(
        "--dedupe",
        action="store_true",
        help="Skip workouts that were already approved"
    )
    _add_review_flags(recent_parser)
    recent_parser.set_defaults(func=cmd_recent)

    streak_parser = subparsers.add_parser("streak", help="Update and show the activity streak")
    streak_parser.add_argument("--reset", action="store_true", help="Reset the current streak")
    streak_parser.set_defaults(func=cmd_streak)

    task_parser = subparsers.add_parser("task", help="Manage today's tasks")
    task_sub = task_parser.add_subparsers(dest="task_command")
    task_add = task_sub.add_parser("add", help="Add a task for today")
    task_add.add_argument("title")
    task_add.add_argument(
        "--category", "-c",
        choices=[c.value for c in TaskCategory],
        default=TaskCategory.WELLNESS.value
    )
    task_add.add_argument("--description")
    task_sub.add_parser("list", help="List today's tasks")
    task_done = task_sub.add_parser("done", help="Toggle a task's completion")
    task_done.add_argument("id")
    task_parser.set_defaults(func=cmd_task, task_command="list")

    inspect_parser = subparsers.add_parser("inspect", help="Inspect database tables")
    inspect_parser.add_argument(
        "--table", "-t",
        required=True,
        help="Table name to inspect"
    )
    inspect_parser.add_argument(
        "--limit", "-l",
        type=int,
        default=20,
        help="Number of records to show"
    )
    inspect_parser.set_defaults(func=cmd_inspect)

    log_parser = subparsers.add_parser("log", help="Show recent sync runs")
    log_parser.add_argument("--limit", "-l", type=int, default=20, help="Number of runs to show")
    log_parser.set_defaults(func=cmd_log)

    args = parser.parse_args(argv)

    # Setup logging
    setup_logging(verbosity=args.verbose, quiet=args.quiet)

    if not args.command:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
