"""
Background task scheduler for periodic cleanup.

Expired WebAuthn challenges and stale sessions are swept on fixed
intervals while the application is running.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from wishmaker_auth.security.context import AuthContext
from wishmaker_auth.services.session_service import SessionService
from wishmaker_auth.services.webauthn_service import WebAuthnService

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    """Represents a scheduled background task."""
    name: str
    func: Callable
    interval_seconds: int
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    enabled: bool = True
    running: bool = False

    def __post_init__(self):
        """Calculate next run time after initialization."""
        if self.next_run is None:
            self.next_run = datetime.now() + timedelta(seconds=self.interval_seconds)

    def should_run(self) -> bool:
        """Check if task should run now."""
        return (
            self.enabled
            and not self.running
            and self.next_run is not None
            and datetime.now() >= self.next_run
        )

    def mark_completed(self):
        """Mark task as completed and schedule next run."""
        self.last_run = datetime.now()
        self.next_run = self.last_run + timedelta(seconds=self.interval_seconds)
        self.running = False

    def mark_started(self):
        """Mark task as started."""
        self.running = True


class BackgroundTaskScheduler:
    """Manages background task scheduling and execution."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        context: AuthContext,
        poll_interval: float = 10,
    ):
        """
        Initialize task scheduler.

        Args:
            session_factory: Factory for database sessions used by the tasks
            context: Authentication context passed to the services
            poll_interval: Seconds between checks for due tasks
        """
        self.session_factory = session_factory
        self.context = context
        self.poll_interval = poll_interval
        self.tasks: Dict[str, ScheduledTask] = {}
        self.running = False
        self._loop_task: Optional[asyncio.Task] = None
        self._setup_default_tasks()

    def _setup_default_tasks(self):
        settings = self.context.settings

        self.add_task(
            name="challenge_cleanup",
            func=self.cleanup_challenges,
            interval_seconds=settings.challenge_cleanup_interval,
        )
        self.add_task(
            name="session_cleanup",
            func=self.cleanup_sessions,
            interval_seconds=settings.session_cleanup_interval,
        )

    def add_task(self, name: str, func: Callable, interval_seconds: int, enabled: bool = True):
        """Add a new scheduled task."""
        task = ScheduledTask(
            name=name,
            func=func,
            interval_seconds=interval_seconds,
            enabled=enabled
        )
        self.tasks[name] = task
        logger.info(f"Added background task: {name} (interval: {interval_seconds}s)")

    def disable_task(self, name: str):
        """Disable a scheduled task."""
        if name in self.tasks:
            self.tasks[name].enabled = False
            logger.info(f"Disabled background task: {name}")

    async def start(self):
        """Run the scheduler loop until stopped."""
        if self.running:
            logger.warning("Task scheduler is already running")
            return

        self.running = True
        logger.info("Starting background task scheduler")

        while self.running:
            try:
                await self.run_due_tasks()
                await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                logger.info("Task scheduler cancelled")
                break

        logger.info("Background task scheduler stopped")

    def stop(self):
        """Stop the task scheduler."""
        self.running = False
        logger.info("Stopping background task scheduler")

    async def run_due_tasks(self) -> int:
        """Execute every task that is due. Returns how many ran."""
        executed = 0
        for task in list(self.tasks.values()):
            if task.should_run():
                await self._execute_task(task)
                executed += 1
        return executed

    async def _execute_task(self, task: ScheduledTask):
        """Execute a single task."""
        logger.debug(f"Executing background task: {task.name}")
        task.mark_started()

        try:
            await task.func()
            logger.debug(f"Task completed successfully: {task.name}")
        except Exception:
            # A failed sweep is retried on the next interval
            logger.error(f"Task failed: {task.name}", exc_info=True)
        finally:
            task.mark_completed()

    async def cleanup_challenges(self) -> int:
        """Delete expired WebAuthn challenges."""
        async with self.session_factory() as session:
            return await WebAuthnService(session, self.context).cleanup_expired_challenges()

    async def cleanup_sessions(self) -> int:
        """Delete expired and idle sessions."""
        async with self.session_factory() as session:
            return await SessionService(session, self.context).cleanup_expired_sessions()

    def get_task_status(self) -> Dict[str, Any]:
        """Get status of all scheduled tasks."""
        return {
            "scheduler_running": self.running,
            "tasks": {
                name: {
                    "enabled": task.enabled,
                    "running": task.running,
                    "interval_seconds": task.interval_seconds,
                    "last_run": task.last_run.isoformat() if task.last_run else None,
                    "next_run": task.next_run.isoformat() if task.next_run else None,
                }
                for name, task in self.tasks.items()
            },
        }


def start_background_tasks(
    session_factory: async_sessionmaker, context: AuthContext
) -> BackgroundTaskScheduler:
    """Create a scheduler and run its loop as an asyncio task."""
    scheduler = BackgroundTaskScheduler(session_factory, context)
    scheduler._loop_task = asyncio.create_task(scheduler.start())
    logger.info("Background tasks started")
    return scheduler


async def stop_background_tasks(scheduler: Optional[BackgroundTaskScheduler]) -> None:
    """Stop a scheduler started with start_background_tasks."""
    if scheduler is None:
        return

    scheduler.stop()
    if scheduler._loop_task is not None:
        scheduler._loop_task.cancel()
        try:
            await scheduler._loop_task
        except asyncio.CancelledError:
            pass
        scheduler._loop_task = None

    logger.info("Background tasks stopped")


async def run_cleanup_now(
    session_factory: async_sessionmaker, context: AuthContext
) -> Dict[str, int]:
    """Manually trigger both cleanup sweeps."""
    scheduler = BackgroundTaskScheduler(session_factory, context)
    results = {
        "challenges_cleaned": await scheduler.cleanup_challenges(),
        "sessions_cleaned": await scheduler.cleanup_sessions(),
    }
    logger.info(f"Manual cleanup completed: {results}")
    return results
