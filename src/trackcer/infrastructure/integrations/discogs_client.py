"""Discogs database search client, the genre fallback when Spotify won't answer."""

import logging
from typing import Any, cast

import httpx

from trackcer import __version__
from trackcer.config.settings import DiscogsSettings
from trackcer.infrastructure.rate_limiter import get_discogs_limiter

logger = logging.getLogger(__name__)


class DiscogsClient:
    """HTTP client for api.discogs.com."""

    API_BASE_URL = "https://api.discogs.com"

    def __init__(self, settings: DiscogsSettings) -> None:
        self.settings = settings
        self._client: httpx.AsyncClient | None = None

    # Discogs rejects requests without a User-Agent
    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=30.0, headers={"User-Agent": f"TrackCer/{__version__}"}
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def search_releases(self, track_name: str, artist_name: str) -> list[dict[str, Any]]:
        """Search releases matching a track title and artist.

        Args:
            track_name: Free-text query (the track title)
            artist_name: Artist filter

        Returns:
            The "results" list, each possibly holding "genre" and "style" lists

        Raises:
            httpx.HTTPStatusError: On any non-2xx answer
        """
        client = await self._get_client()
        params = {
            "q": track_name,
            "artist": artist_name,
            "type": "release",
            "key": self.settings.key,
            "secret": self.settings.secret,
        }
        async with get_discogs_limiter():
            response = await client.get(f"{self.API_BASE_URL}/database/search", params=params)
        response.raise_for_status()
        return cast(list[dict[str, Any]], response.json().get("results") or [])

    async def __aenter__(self) -> "DiscogsClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
