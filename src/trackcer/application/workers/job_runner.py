"""In-process background jobs with overlap prevention.

Hey future me - there is no broker. A "job" is a coroutine running as an asyncio task
inside the API (or CLI) process, with its OWN session from Database.session_scope().
Never hand a request-scoped session to a job, it's closed by the time the job runs.

Overlap prevention is a set of running job keys. A key is taken synchronously at
dispatch time, so two requests in a row can't both start the same job.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from contextlib import suppress
from typing import Any, TypeVar

from trackcer.application.services.factory import ServiceFactory
from trackcer.infrastructure.observability import job_correlation
from trackcer.infrastructure.persistence import Database, UserRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


def history_job_key(user_id: int) -> str:
    return f"fetch-listening-history:{user_id}"


def producers_job_key(user_id: int) -> str:
    return f"fetch-producers:{user_id}"


ARTIST_IMAGES_JOB_KEY = "cache-artist-images"


class JobRunner:
    """Runs per-user jobs, either awaited or as background tasks."""

    def __init__(self, db: Database, factory: ServiceFactory) -> None:
        self.db = db
        self.factory = factory
        self._running: set[str] = set()
        self._tasks: set[asyncio.Task[Any]] = set()

    def is_running(self, job_key: str) -> bool:
        return job_key in self._running

    async def run_exclusive(
        self, job_key: str, job: Callable[[], Awaitable[T]]
    ) -> T | None:
        """Await a job unless the same job is already running.

        Returns:
            The job result, None when the run was skipped
        """
        if job_key in self._running:
            logger.info("Job still running, skipping this run", extra={"job": job_key})
            return None
        self._running.add(job_key)
        try:
            return await job()
        finally:
            self._running.discard(job_key)

    def dispatch(self, job_key: str, job: Callable[[], Awaitable[Any]]) -> bool:
        """Start a job as a background task.

        Returns:
            False if the same job is still running (nothing was started)
        """
        if job_key in self._running:
            logger.info("Job already running, not dispatching", extra={"job": job_key})
            return False
        self._running.add(job_key)
        task = asyncio.create_task(self._run_background(job_key, job), name=job_key)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _run_background(self, job_key: str, job: Callable[[], Awaitable[Any]]) -> None:
        with job_correlation(job_key):
            try:
                result = await job()
                logger.info("Background job finished", extra={"job": job_key, "result": result})
            except asyncio.CancelledError:
                logger.info("Background job cancelled", extra={"job": job_key})
                raise
            except Exception as e:
                # Top of a detached task, nobody else would see this error.
                logger.error(
                    "Background job failed",
                    extra={"job": job_key, "error": str(e)},
                    exc_info=True,
                )
            finally:
                self._running.discard(job_key)

    # =========================================================================
    # JOBS (each opens its own session)
    # =========================================================================

    async def fetch_spotify_history(self, user_id: int) -> dict[str, int] | None:
        async with self.db.session_scope() as session:
            user = await UserRepository(session).get(user_id)
            return await self.factory.listening_history(session).fetch_spotify_history(user)

    async def fetch_apple_music_history(self, user_id: int) -> dict[str, int] | None:
        async with self.db.session_scope() as session:
            user = await UserRepository(session).get(user_id)
            return await self.factory.listening_history(session).fetch_apple_music_history(
                user
            )

    async def fetch_history(self, user_id: int) -> dict[str, dict[str, int] | None]:
        async with self.db.session_scope() as session:
            user = await UserRepository(session).get(user_id)
            return await self.factory.listening_history(session).fetch_history(user)

    async def fetch_producers(self, user_id: int) -> dict[str, int]:
        async with self.db.session_scope() as session:
            user = await UserRepository(session).get(user_id)
            return await self.factory.producers(session).fetch_producers_for_user(user)

    async def cache_artist_images(
        self, artist_names: Iterable[str], force: bool = False, delay_seconds: float = 0.0
    ) -> dict[str, int]:
        names = list(artist_names)
        async with self.db.session_scope() as session:
            return await self.factory.artist_images(session).cache_images(
                names, force=force, delay_seconds=delay_seconds
            )

    async def _initial_import(self, user_id: int) -> dict[str, Any]:
        history = await self.fetch_history(user_id)
        producers = await self.run_exclusive(
            producers_job_key(user_id), lambda: self.fetch_producers(user_id)
        )
        return {"history": history, "producers": producers}

    # =========================================================================
    # DISPATCHERS (used by the API)
    # =========================================================================

    def dispatch_history(self, user_id: int) -> bool:
        return self.dispatch(history_job_key(user_id), lambda: self.fetch_history(user_id))

    def dispatch_producers(self, user_id: int) -> bool:
        return self.dispatch(producers_job_key(user_id), lambda: self.fetch_producers(user_id))

    def dispatch_artist_images(self, artist_names: list[str]) -> bool:
        return self.dispatch(
            ARTIST_IMAGES_JOB_KEY, lambda: self.cache_artist_images(artist_names)
        )

    def dispatch_initial_import(self, user_id: int) -> bool:
        """History first, then producers for whatever came in."""
        return self.dispatch(history_job_key(user_id), lambda: self._initial_import(user_id))

    async def shutdown(self) -> None:
        """Cancel whatever is still running and wait for the tasks to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
        self._running.clear()
