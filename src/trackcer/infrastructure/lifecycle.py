"""Startup and shutdown of the API process."""

import logging
from collections.abc import AsyncGenerator
from contextlib import AsyncExitStack, asynccontextmanager

from fastapi import FastAPI

from trackcer.application.services.factory import ServiceFactory
from trackcer.application.workers import HistoryScheduler, JobRunner
from trackcer.config import Settings, get_settings
from trackcer.domain.exceptions import ConfigurationError
from trackcer.infrastructure.observability import configure_logging
from trackcer.infrastructure.persistence import Database

logger = logging.getLogger(__name__)


def ensure_sqlite_directory(settings: Settings) -> None:
    """Create the folder of the SQLite file. SQLite makes the file, not the folder."""
    db_path = settings.sqlite_db_path()
    if db_path is None or str(db_path.parent) == ".":
        return
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigurationError(
            f"Unable to create SQLite database directory '{db_path.parent}': {exc}. "
            "Update TRACKCER_DATABASE__URL or adjust directory permissions."
        ) from exc


# Hey future me - every resource registers its own cleanup right after it exists, the
# exit stack unwinds them in reverse. So the scheduler stops before the job runner, jobs
# finish before the clients close, and the database goes last. A failed startup only
# tears down what was actually built.
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Wire database, services, job runner and scheduler onto app.state."""
    settings: Settings = getattr(app.state, "settings", None) or get_settings()
    app.state.settings = settings

    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting %s", settings.app_name)

    async with AsyncExitStack() as stack:
        stack.callback(logger.info, "Shutdown complete")

        ensure_sqlite_directory(settings)
        db = Database(settings)
        stack.push_async_callback(db.close)
        await db.create_tables()
        app.state.db = db

        services = ServiceFactory.from_settings(settings)
        stack.push_async_callback(services.close)
        app.state.services = services

        job_runner = JobRunner(db, services)
        stack.push_async_callback(job_runner.shutdown)
        app.state.job_runner = job_runner

        scheduler = HistoryScheduler(job_runner, settings.scheduler)
        app.state.scheduler = scheduler
        if settings.scheduler.enabled:
            await scheduler.start()
            stack.push_async_callback(scheduler.stop)
        else:
            logger.info("Scheduler disabled by configuration")

        logger.info(
            "Ready", extra={"database": db.engine.url.render_as_string(hide_password=True)}
        )
        yield
        logger.info("Shutting down")
