"""Logging configuration for Momentum sync"""
import logging
import sys

from .config import LOG_DIR

LOGGER_NAME = "momentum_sync"

# Custom log level for sync lifecycle events
SYNC = 25  # Between INFO (20) and WARNING (30)
logging.addLevelName(SYNC, "SYNC")


class SyncLogger(logging.Logger):
    """Logger with custom sync level"""

    def sync(self, msg, *args, **kwargs):
        if self.isEnabledFor(SYNC):
            self._log(SYNC, msg, args, **kwargs)


logging.setLoggerClass(SyncLogger)


def setup_logging(
    verbosity: int = 0,
    quiet: bool = False,
    log_to_file: bool = True,
    stream=None
) -> logging.Logger:
    """
    Configure logging based on verbosity level.

    verbosity=0: sync events + warnings (default)
    verbosity=1: INFO (per-metric values, staged items)
    verbosity=2: DEBUG (field changes, dropped workouts)
    quiet=True: errors only
    log_to_file: also write to logs/sync.log
    stream: console stream (stdout by default)
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()

    if quiet:
        level = logging.ERROR
    elif verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    else:
        level = SYNC

    logger.setLevel(logging.DEBUG if log_to_file else level)

    # Console handler
    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(level)
    console_fmt = logging.Formatter("[%(levelname)s] %(message)s")
    console_handler.setFormatter(console_fmt)
    logger.addHandler(console_handler)

    # File handler
    if log_to_file:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        log_file = LOG_DIR / "sync.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        file_fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
        file_handler.setFormatter(file_fmt)
        logger.addHandler(file_handler)

    return logger


def get_logger() -> SyncLogger:
    """Get the momentum_sync logger"""
    return logging.getLogger(LOGGER_NAME)
