"""Periodic listening history and producer jobs.

Three independent loops, one per job:

    apple-music  every apple_music_interval_seconds (5 min)  users with apple_music_token
    spotify      every spotify_interval_seconds (30 min)     users with spotify_token
    producers    every producers_interval_seconds (5 min)    users with either token

Each cycle goes through JobRunner.run_exclusive() under the job name, so a slow cycle
makes the next one skip instead of running twice in parallel.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from contextlib import suppress
from dataclasses import dataclass
from typing import Any

from trackcer.config.settings import SchedulerSettings
from trackcer.infrastructure.observability import job_correlation
from trackcer.infrastructure.persistence import UserRepository
from trackcer.infrastructure.persistence.models import UserModel

from .job_runner import JobRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduledJob:
    name: str
    interval_seconds: float
    select_users: Callable[[UserRepository], Awaitable[Sequence[UserModel]]]
    run_for_user: Callable[[int], Awaitable[Any]]


class HistoryScheduler:
    """Runs the scheduled jobs as asyncio tasks until stopped."""

    def __init__(self, job_runner: JobRunner, settings: SchedulerSettings) -> None:
        self.job_runner = job_runner
        self.settings = settings
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False
        self.jobs = [
            ScheduledJob(
                name="apple-music",
                interval_seconds=settings.apple_music_interval_seconds,
                select_users=lambda repo: repo.list_with_apple_music_token(),
                run_for_user=job_runner.fetch_apple_music_history,
            ),
            ScheduledJob(
                name="spotify",
                interval_seconds=settings.spotify_interval_seconds,
                select_users=lambda repo: repo.list_with_spotify_token(),
                run_for_user=job_runner.fetch_spotify_history,
            ),
            ScheduledJob(
                name="producers",
                interval_seconds=settings.producers_interval_seconds,
                select_users=lambda repo: repo.list_with_any_token(),
                run_for_user=job_runner.fetch_producers,
            ),
        ]

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            logger.warning("Scheduler already running")
            return
        self._running = True
        self._tasks = [
            asyncio.create_task(self._run_loop(job), name=f"scheduler:{job.name}")
            for job in self.jobs
        ]
        logger.info(
            "Scheduler started",
            extra={"jobs": {job.name: job.interval_seconds for job in self.jobs}},
        )

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        logger.info("Scheduler stopped")

    async def _run_loop(self, job: ScheduledJob) -> None:
        while self._running:
            try:
                await self.run_job(job)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "scheduler.cycle.failed",
                    extra={"job": job.name, "error": str(e)},
                    exc_info=True,
                )
            await asyncio.sleep(job.interval_seconds)

    async def run_job(self, job: ScheduledJob) -> dict[str, int] | None:
        """One cycle of a job over all eligible users.

        Returns:
            {"users", "succeeded", "failed"}, None when skipped due to overlap
        """
        return await self.job_runner.run_exclusive(
            f"scheduler:{job.name}", lambda: self._run_for_all_users(job)
        )

    async def _run_for_all_users(self, job: ScheduledJob) -> dict[str, int]:
        async with self.job_runner.db.session_scope() as session:
            user_ids = [user.id for user in await job.select_users(UserRepository(session))]

        stats = {"users": len(user_ids), "succeeded": 0, "failed": 0}
        for user_id in user_ids:
            try:
                with job_correlation(f"scheduler:{job.name}:{user_id}"):
                    await job.run_for_user(user_id)
                stats["succeeded"] += 1
            except Exception as e:
                # One user's broken token must not stop everyone else's fetch.
                stats["failed"] += 1
                logger.error(
                    "Scheduled job failed for user",
                    extra={"job": job.name, "user_id": user_id, "error": str(e)},
                    exc_info=True,
                )

        logger.info("Scheduled job cycle finished", extra={"job": job.name, **stats})
        return stats

    def get_status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "jobs": {
                job.name: {
                    "interval_seconds": job.interval_seconds,
                    "in_progress": self.job_runner.is_running(f"scheduler:{job.name}"),
                }
                for job in self.jobs
            },
        }
