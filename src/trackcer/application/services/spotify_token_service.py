"""Run Spotify calls with the user's token, refreshing it once on 401."""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from trackcer.config.settings import Settings
from trackcer.infrastructure.integrations.spotify_client import SpotifyClient
from trackcer.infrastructure.persistence.models import UserModel
from trackcer.infrastructure.persistence.repositories import UserRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SpotifyTokenService:
    """Token-aware wrapper for SpotifyClient calls.

    Hey future me - exactly ONE refresh per call. If the retried call 401s again, the
    HTTPStatusError goes up to the caller like any other failure. A failed refresh raises
    TokenRefreshException, callers treat it like any other per-user failure.
    """

    def __init__(
        self, session: AsyncSession, spotify_client: SpotifyClient, settings: Settings
    ) -> None:
        self.spotify_client = spotify_client
        self.settings = settings
        self.user_repo = UserRepository(session)

    async def refresh(self, user: UserModel) -> str:
        """Refresh and persist the user's access token.

        Returns:
            The new access token
        """
        data = await self.spotify_client.refresh_token(user.spotify_refresh_token or "")
        access_token: str = data["access_token"]
        await self.user_repo.update_spotify_token(user.id, access_token)
        user.spotify_token = access_token
        logger.info("Refreshed Spotify token", extra={"user_id": user.id})
        return access_token

    async def call(self, user: UserModel, fn: Callable[[str], Awaitable[T]]) -> T:
        """Run fn(access_token), retrying once after a refresh when Spotify answers 401."""
        try:
            return await fn(user.spotify_token or "")
        except httpx.HTTPStatusError as e:
            if e.response.status_code != 401:
                raise
            logger.info(
                "Spotify token expired, refreshing",
                extra={"user_id": user.id},
            )
        access_token = await self.refresh(user)
        return await fn(access_token)

    async def catalogue_user(self) -> UserModel | None:
        """The user whose Spotify token serves catalogue searches, if connected."""
        user = await self.user_repo.get_by_id(self.settings.image_user_id)
        if user is None or not user.spotify_token:
            logger.debug(
                "No Spotify token available for catalogue searches",
                extra={"image_user_id": self.settings.image_user_id},
            )
            return None
        return user
