"""HistoryScheduler cycles over eligible users."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from trackcer.application.workers.job_runner import JobRunner
from trackcer.application.workers.scheduler import HistoryScheduler, ScheduledJob
from trackcer.config.settings import SchedulerSettings
from trackcer.infrastructure.persistence import Database

from factories import create_user


@pytest.fixture
def jobs() -> dict[str, AsyncMock]:
    return {
        "spotify": AsyncMock(return_value={"processed": 0}),
        "apple-music": AsyncMock(return_value={"processed": 0}),
        "producers": AsyncMock(return_value={"total": 0}),
    }


@pytest.fixture
def scheduler(db: Database, jobs: dict[str, AsyncMock]) -> HistoryScheduler:
    runner = JobRunner(db, MagicMock())
    # The scheduler binds the runner's job methods when it is built
    runner.fetch_spotify_history = jobs["spotify"]  # type: ignore[method-assign]
    runner.fetch_apple_music_history = jobs["apple-music"]  # type: ignore[method-assign]
    runner.fetch_producers = jobs["producers"]  # type: ignore[method-assign]
    return HistoryScheduler(
        runner,
        SchedulerSettings(
            apple_music_interval_seconds=3600,
            spotify_interval_seconds=3600,
            producers_interval_seconds=3600,
        ),
    )


@pytest.fixture
async def users(db: Database) -> dict[str, int]:
    async with db.session_scope() as session:
        spotify = await create_user(session, name="Spotify", spotify_token="tok")
        apple = await create_user(session, name="Apple", apple_music_token="mut")
        await create_user(session, name="Nobody")
        return {"spotify": spotify.id, "apple": apple.id}


def _job(scheduler: HistoryScheduler, name: str) -> ScheduledJob:
    return next(job for job in scheduler.jobs if job.name == name)


async def _wait_for(mock: AsyncMock, timeout: float = 2.0) -> None:
    async with asyncio.timeout(timeout):
        while not mock.await_count:
            await asyncio.sleep(0.01)


class TestRunJob:
    async def test_spotify_job_only_runs_for_spotify_users(
        self, scheduler: HistoryScheduler, jobs: dict[str, AsyncMock], users: dict[str, int]
    ) -> None:
        stats = await scheduler.run_job(_job(scheduler, "spotify"))

        assert stats == {"users": 1, "succeeded": 1, "failed": 0}
        jobs["spotify"].assert_awaited_once_with(users["spotify"])

    async def test_producer_job_covers_both_providers(
        self, scheduler: HistoryScheduler, jobs: dict[str, AsyncMock], users: dict[str, int]
    ) -> None:
        stats = await scheduler.run_job(_job(scheduler, "producers"))

        assert stats == {"users": 2, "succeeded": 2, "failed": 0}
        assert {call.args[0] for call in jobs["producers"].await_args_list} == set(
            users.values()
        )

    async def test_one_failing_user_does_not_stop_the_cycle(
        self, scheduler: HistoryScheduler, jobs: dict[str, AsyncMock], users: dict[str, int]
    ) -> None:
        jobs["producers"].side_effect = [RuntimeError("bad token"), {"total": 0}]

        stats = await scheduler.run_job(_job(scheduler, "producers"))

        assert stats == {"users": 2, "succeeded": 1, "failed": 1}

    async def test_overlapping_cycle_is_skipped(
        self, scheduler: HistoryScheduler, jobs: dict[str, AsyncMock], users: dict[str, int]
    ) -> None:
        release = asyncio.Event()

        async def slow(user_id: int) -> None:
            await release.wait()

        jobs["apple-music"].side_effect = slow
        job = _job(scheduler, "apple-music")
        first = asyncio.create_task(scheduler.run_job(job))
        await _wait_for(jobs["apple-music"])

        assert await scheduler.run_job(job) is None
        assert scheduler.get_status()["jobs"]["apple-music"]["in_progress"] is True

        release.set()
        assert await first == {"users": 1, "succeeded": 1, "failed": 0}


class TestLifecycle:
    async def test_start_runs_each_job_once_then_waits(
        self, scheduler: HistoryScheduler, jobs: dict[str, AsyncMock], users: dict[str, int]
    ) -> None:
        await scheduler.start()
        assert scheduler.is_running
        await scheduler.start()
        assert len(scheduler._tasks) == 3

        await _wait_for(jobs["spotify"])
        await scheduler.stop()

        assert not scheduler.is_running
        assert scheduler._tasks == []
        jobs["spotify"].assert_awaited_once_with(users["spotify"])

    async def test_status_lists_intervals(self, scheduler: HistoryScheduler) -> None:
        status = scheduler.get_status()

        assert status["running"] is False
        assert status["jobs"]["spotify"] == {"interval_seconds": 3600, "in_progress": False}
        assert set(status["jobs"]) == {"apple-music", "spotify", "producers"}
