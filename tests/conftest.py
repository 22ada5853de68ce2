"""Shared fixtures.

Hey future me - every test gets its own SQLite file under tmp_path, so tests never see
each other's rows. The scheduler is disabled and all producer delays are zero, nothing
in here should ever sleep or reach the network.
"""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable, Generator
from typing import Any, TypeVar

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession

from trackcer.application.cache import music_cache
from trackcer.config.settings import (
    DatabaseSettings,
    GeniusSettings,
    SchedulerSettings,
    Settings,
)
from trackcer.infrastructure.persistence import Database
from trackcer.infrastructure.rate_limiter import reset_limiters
from trackcer.main import create_app

from factories import create_user

T = TypeVar("T")


@pytest.fixture(autouse=True)
def _fresh_singletons(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Process-wide cache and rate limiters must not leak between tests (or loops)."""
    monkeypatch.setattr(music_cache, "_music_cache", None)
    reset_limiters()
    yield
    reset_limiters()


@pytest.fixture
def settings(tmp_path: Any) -> Settings:
    return Settings(
        _env_file=None,
        database=DatabaseSettings(url=f"sqlite+aiosqlite:///{tmp_path / 'trackcer.db'}"),
        genius=GeniusSettings(token="test-genius-token"),
        scheduler=SchedulerSettings(
            enabled=False,
            producer_track_delay_seconds=0,
            producer_chunk_delay_seconds=0,
        ),
    )


@pytest.fixture
async def db(settings: Settings) -> AsyncGenerator[Database, None]:
    database = Database(settings)
    await database.create_tables()
    yield database
    await database.close()


@pytest.fixture
async def session(db: Database) -> AsyncGenerator[AsyncSession, None]:
    async with db.session_scope() as db_session:
        yield db_session


# =============================================================================
# API
# =============================================================================


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def seed(
    client: TestClient, settings: Settings
) -> Callable[[Callable[[AsyncSession], Awaitable[T]]], T]:
    """Run an async seeding function against the app's database.

    The TestClient runs the app on its own loop in another thread, so seeding uses a
    separate Database on the same file and its own asyncio.run().
    """

    def run(fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async def _run() -> T:
            database = Database(settings)
            try:
                async with database.session_scope() as db_session:
                    return await fn(db_session)
            finally:
                await database.close()

        return asyncio.run(_run())

    return run


@pytest.fixture
def user_headers(seed: Callable[..., Any]) -> dict[str, str]:
    """Headers for a freshly created user."""

    async def _create(db_session: AsyncSession) -> int:
        user = await create_user(db_session, name="Api User", email="api@test.dev")
        return user.id

    return {"X-User-Id": str(seed(_create))}
