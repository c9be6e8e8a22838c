"""
Background tasks module for authentication housekeeping.

This module provides periodic cleanup of expired WebAuthn challenges and
stale sessions.
"""

from .scheduler import (
    BackgroundTaskScheduler,
    run_cleanup_now,
    start_background_tasks,
    stop_background_tasks,
)

__all__ = [
    "BackgroundTaskScheduler",
    "run_cleanup_now",
    "start_background_tasks",
    "stop_background_tasks",
]
