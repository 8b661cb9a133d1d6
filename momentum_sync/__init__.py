"""Momentum health-data sync, workout review and streak tracking"""
__version__ = "0.1.0"
