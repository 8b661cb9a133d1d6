"""Core modules for Momentum sync"""
from .database import Database
from .logging_setup import setup_logging, get_logger
from .conflicts import DuplicateDetector
