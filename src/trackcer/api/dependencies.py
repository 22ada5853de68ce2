"""Dependency injection for API endpoints."""

from collections.abc import AsyncGenerator
from typing import Annotated, cast

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from trackcer.application.services import (
    ArtistImageService,
    ArtistStatsService,
    DashboardService,
    ListeningHistoryService,
    NotificationService,
    ProducerService,
    ProducerStatsService,
    ServiceFactory,
    UserService,
)
from trackcer.application.workers import JobRunner
from trackcer.config import Settings
from trackcer.infrastructure.integrations import AppleMusicClient
from trackcer.infrastructure.persistence import Database, UserRepository
from trackcer.infrastructure.persistence.models import UserModel


# Hey future me - the request session commits when the endpoint returns without error
# (session_scope does that), so routers never call commit themselves.
async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get a request-scoped database session from app state."""
    db: Database = request.app.state.db
    async with db.session_scope() as session:
        yield session


SessionDep = Annotated[AsyncSession, Depends(get_db_session)]


def get_app_settings(request: Request) -> Settings:
    return cast(Settings, request.app.state.settings)


def get_service_factory(request: Request) -> ServiceFactory:
    if not hasattr(request.app.state, "services"):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Services not initialized",
        )
    return cast(ServiceFactory, request.app.state.services)


def get_job_runner(request: Request) -> JobRunner:
    if not hasattr(request.app.state, "job_runner"):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Job runner not initialized",
        )
    return cast(JobRunner, request.app.state.job_runner)


FactoryDep = Annotated[ServiceFactory, Depends(get_service_factory)]
JobRunnerDep = Annotated[JobRunner, Depends(get_job_runner)]


# Listen up, there is no login here. The client (or a gateway in front of us) says who
# it is through X-User-Id. Missing header -> 401, unknown id -> 404.
async def get_current_user(
    session: SessionDep,
    x_user_id: Annotated[int | None, Header()] = None,
) -> UserModel:
    if x_user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return await UserRepository(session).get(x_user_id)


CurrentUser = Annotated[UserModel, Depends(get_current_user)]


def get_listening_history_service(
    session: SessionDep, factory: FactoryDep
) -> ListeningHistoryService:
    return factory.listening_history(session)


def get_producer_service(session: SessionDep, factory: FactoryDep) -> ProducerService:
    return factory.producers(session)


def get_producer_stats_service(
    session: SessionDep, factory: FactoryDep
) -> ProducerStatsService:
    return factory.producer_stats(session)


def get_artist_stats_service(session: SessionDep, factory: FactoryDep) -> ArtistStatsService:
    return factory.artist_stats(session)


def get_artist_image_service(session: SessionDep, factory: FactoryDep) -> ArtistImageService:
    return factory.artist_images(session)


def get_dashboard_service(session: SessionDep, factory: FactoryDep) -> DashboardService:
    return factory.dashboard(session)


def get_notification_service(session: SessionDep, factory: FactoryDep) -> NotificationService:
    return factory.notifications(session)


def get_user_service(job_runner: JobRunnerDep) -> UserService:
    return UserService(job_runner)


def get_apple_music_client(factory: FactoryDep) -> AppleMusicClient:
    return factory.apple_music_client
