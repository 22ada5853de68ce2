"""Genius API client (song search, song credits, artist details)."""

import logging
from typing import Any, cast

import httpx

from trackcer.config.settings import GeniusSettings
from trackcer.infrastructure.rate_limiter import get_genius_limiter

logger = logging.getLogger(__name__)


class GeniusClient:
    """HTTP client for api.genius.com.

    Genius wraps every payload in {"meta": ..., "response": {...}}, the methods
    here unwrap "response" so callers see the interesting object directly.
    """

    API_BASE_URL = "https://api.genius.com"

    def __init__(self, settings: GeniusSettings) -> None:
        self.settings = settings
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get(
        self, path: str, params: dict[str, Any] | None = None, max_retries: int = 2
    ) -> dict[str, Any]:
        client = await self._get_client()
        rate_limiter = get_genius_limiter()
        headers = {"Authorization": f"Bearer {self.settings.token}"}

        for attempt in range(max_retries + 1):
            async with rate_limiter:
                response = await client.get(
                    f"{self.API_BASE_URL}{path}", params=params, headers=headers
                )
            if response.status_code == 429 and attempt < max_retries:
                retry_after = response.headers.get("Retry-After")
                await rate_limiter.handle_rate_limit_response(
                    int(retry_after) if retry_after else None
                )
                continue
            break

        response.raise_for_status()
        return cast(dict[str, Any], response.json().get("response") or {})

    async def search(self, query: str) -> list[dict[str, Any]]:
        """Search songs.

        Returns:
            The "result" objects of the hits, in Genius ranking order
        """
        data = await self._get("/search", {"q": query})
        return [hit["result"] for hit in data.get("hits", []) if hit.get("result")]

    async def get_song(self, song_id: int | str) -> dict[str, Any]:
        """Full song object, including producer_artists."""
        data = await self._get(f"/songs/{song_id}")
        return cast(dict[str, Any], data.get("song") or {})

    async def get_artist(self, artist_id: int | str) -> dict[str, Any]:
        """Artist object, including image_url."""
        data = await self._get(f"/artists/{artist_id}")
        return cast(dict[str, Any], data.get("artist") or {})

    async def __aenter__(self) -> "GeniusClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
