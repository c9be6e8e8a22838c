"""Tests for the background cleanup scheduler."""

import asyncio
from datetime import datetime, timedelta

from sqlalchemy import func, select

from wishmaker_auth.database import utcnow
from wishmaker_auth.models.auth_challenge import AuthChallenge, ChallengeType
from wishmaker_auth.tasks.scheduler import (
    BackgroundTaskScheduler,
    run_cleanup_now,
    start_background_tasks,
    stop_background_tasks,
)


async def _add_expired_challenge(session_factory):
    async with session_factory() as session:
        challenge = AuthChallenge.create_challenge(
            challenge="ZXhwaXJlZA",
            challenge_type=ChallengeType.AUTHENTICATION,
            origin="http://localhost:3000",
        )
        challenge.expires_at = utcnow() - timedelta(minutes=10)
        session.add(challenge)
        await session.commit()


async def _challenge_count(session_factory) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(AuthChallenge))
        return result.scalar_one()


async def test_default_tasks_use_configured_intervals(app):
    scheduler = BackgroundTaskScheduler(app.state.session_factory, app.state.auth_context)

    status = scheduler.get_task_status()
    assert status["scheduler_running"] is False
    assert status["tasks"]["challenge_cleanup"]["interval_seconds"] == 300
    assert status["tasks"]["session_cleanup"]["interval_seconds"] == 3600


async def test_due_tasks_run_and_reschedule(app):
    session_factory = app.state.session_factory
    await _add_expired_challenge(session_factory)
    scheduler = BackgroundTaskScheduler(session_factory, app.state.auth_context)
    for task in scheduler.tasks.values():
        task.next_run = datetime.now() - timedelta(seconds=1)

    assert await scheduler.run_due_tasks() == 2
    assert await _challenge_count(session_factory) == 0

    for task in scheduler.tasks.values():
        assert task.last_run is not None
        assert task.next_run > datetime.now()
    assert await scheduler.run_due_tasks() == 0


async def test_disabled_task_is_skipped(app):
    scheduler = BackgroundTaskScheduler(app.state.session_factory, app.state.auth_context)
    scheduler.disable_task("session_cleanup")
    for task in scheduler.tasks.values():
        task.next_run = datetime.now() - timedelta(seconds=1)

    assert await scheduler.run_due_tasks() == 1


async def test_failing_task_is_rescheduled(app):
    scheduler = BackgroundTaskScheduler(app.state.session_factory, app.state.auth_context)

    async def broken():
        raise RuntimeError("boom")

    scheduler.add_task("broken", broken, interval_seconds=60)
    scheduler.tasks["broken"].next_run = datetime.now() - timedelta(seconds=1)

    assert await scheduler.run_due_tasks() == 1
    assert scheduler.tasks["broken"].running is False
    assert scheduler.tasks["broken"].next_run > datetime.now()


async def test_run_cleanup_now(app):
    await _add_expired_challenge(app.state.session_factory)

    results = await run_cleanup_now(app.state.session_factory, app.state.auth_context)

    assert results == {"challenges_cleaned": 1, "sessions_cleaned": 0}


async def test_start_and_stop(app):
    scheduler = start_background_tasks(app.state.session_factory, app.state.auth_context)
    await asyncio.sleep(0)
    assert scheduler.running is True

    await stop_background_tasks(scheduler)

    assert scheduler.running is False
    assert scheduler._loop_task is None
