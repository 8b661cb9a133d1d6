"""Configuration for Momentum sync

Paths can be overridden from the environment (or a .env file).
"""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = Path(__file__).parent.parent.parent

# Storage
DEFAULT_DB_PATH = Path(os.environ.get("MOMENTUM_DB_PATH", "data/prod/momentum.db"))
LOG_DIR = Path(os.environ.get("MOMENTUM_LOG_DIR", PROJECT_ROOT / "logs"))

# Garmin Connect session
GARMIN_TOKEN_DIR = Path(os.environ.get("MOMENTUM_GARMIN_TOKEN_DIR", PROJECT_ROOT / "data" / ".garmin"))
GARMIN_EMAIL = os.environ.get("GARMIN_EMAIL")
GARMIN_PASSWORD = os.environ.get("GARMIN_PASSWORD")

# Persisted state keys
WORKOUT_ANCHOR_KEY = "workout_anchor"
STREAK_KEY = "user_streak"

# Activity signal and review defaults
STEP_ACTIVITY_THRESHOLD = 1000
RECENT_WORKOUT_DAYS = 30
STREAK_MILESTONE_INTERVAL = 7
CELEBRATION_MILESTONES = (7, 14, 30, 60, 100)

# Background delivery
POLL_INTERVALS = {
    "immediate": 300,
    "hourly": 3600,
    "daily": 86400,
}
ACK_DEADLINE_SECONDS = 10.0
