"""Spotify Web API client (recently played, artists, catalogue search, token refresh)."""

import logging
from typing import Any, cast

import httpx

from trackcer.config.settings import SpotifySettings
from trackcer.domain.exceptions import TokenRefreshException
from trackcer.infrastructure.rate_limiter import get_spotify_limiter

logger = logging.getLogger(__name__)

# Spotify answers these with an {"error": "..."} body when a refresh token is dead.
REFRESH_REJECTED = (400, 401, 403)


class SpotifyClient:
    """Thin async wrapper around api.spotify.com.

    The client holds no user state: every call gets the user's access token. A 401 comes
    back as httpx.HTTPStatusError, SpotifyTokenService catches it, calls refresh_token()
    and retries once.
    """

    TOKEN_URL = "https://accounts.spotify.com/api/token"  # nosec B105
    API_BASE_URL = "https://api.spotify.com/v1"
    MAX_429_RETRIES = 3

    def __init__(self, settings: SpotifySettings) -> None:
        self.settings = settings
        self._http: httpx.AsyncClient | None = None

    # Hey future me - built on first use, the factory constructs clients before any
    # event loop runs (CLI startup, app wiring).
    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(base_url=self.API_BASE_URL, timeout=30.0)
        return self._http

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _get(
        self,
        path: str,
        access_token: str,
        params: dict[str, Any] | None = None,
        retry_429: bool = True,
    ) -> dict[str, Any]:
        """GET through the shared Spotify limiter, backing off on 429.

        With retry_429=False a 429 is raised right away, for callers that have a
        cheaper fallback than waiting out Retry-After.

        Raises:
            httpx.HTTPStatusError: Any non-2xx answer left after the 429 retries
        """
        limiter = get_spotify_limiter()
        headers = {"Authorization": f"Bearer {access_token}"}
        attempt = 0
        while True:
            async with limiter:
                response = await self.http.get(path, params=params, headers=headers)
            if response.status_code != 429 or not retry_429 or attempt == self.MAX_429_RETRIES:
                break
            attempt += 1
            retry_after = response.headers.get("Retry-After")
            waited = await limiter.handle_rate_limit_response(
                int(retry_after) if retry_after else None
            )
            logger.warning(
                "Spotify rate limited %s, retry %d/%d after %.1fs",
                path,
                attempt,
                self.MAX_429_RETRIES,
                waited,
            )
        response.raise_for_status()
        return cast(dict[str, Any], response.json())

    async def get_recently_played(
        self, access_token: str, after_ms: int | None = None, limit: int = 50
    ) -> dict[str, Any]:
        """Recently played tracks of the token owner.

        Args:
            access_token: User OAuth access token
            after_ms: Only plays after this unix timestamp in milliseconds
            limit: Max items (Spotify caps this at 50)

        Returns:
            Cursor-paged response with an "items" list of {track, played_at}
        """
        params: dict[str, Any] = {"limit": limit}
        if after_ms is not None:
            params["after"] = after_ms
        return await self._get("/me/player/recently-played", access_token, params)

    async def get_artist(self, artist_id: str, access_token: str) -> dict[str, Any]:
        """Full artist object. A 429 is not retried, genre lookups fall back to Discogs."""
        return await self._get(f"/artists/{artist_id}", access_token, retry_429=False)

    async def search_track(
        self, query: str, access_token: str, limit: int = 1
    ) -> dict[str, Any]:
        """Catalogue track search, "track:X artist:Y" filters work."""
        return await self._get(
            "/search", access_token, {"q": query, "type": "track", "limit": limit}
        )

    async def search_artist(
        self, query: str, access_token: str, limit: int = 1
    ) -> dict[str, Any]:
        return await self._get(
            "/search", access_token, {"q": query, "type": "artist", "limit": limit}
        )

    async def refresh_token(self, refresh_token: str) -> dict[str, Any]:
        """Trade the stored refresh token for a fresh access token.

        Raises:
            TokenRefreshException: No refresh token, Spotify rejected it, or the answer
                carried no access token
            httpx.HTTPStatusError: Spotify failed for any other reason
        """
        if not refresh_token:
            raise TokenRefreshException(
                "No Spotify refresh token stored. Please reconnect Spotify.",
                reason="missing_refresh_token",
            )

        response = await self.http.post(
            self.TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.settings.client_id,
                "client_secret": self.settings.client_secret,
            },
        )
        if response.status_code in REFRESH_REJECTED:
            reason = _error_reason(response)
            raise TokenRefreshException(
                f"Spotify token refresh rejected ({reason}). Please reconnect Spotify.",
                reason=reason,
            )
        response.raise_for_status()

        data = cast(dict[str, Any], response.json())
        if not data.get("access_token"):
            raise TokenRefreshException(
                "Spotify token refresh returned no access token", reason="no_access_token"
            )
        return data


def _error_reason(response: httpx.Response) -> str:
    try:
        return str(response.json().get("error") or "access_denied")
    except ValueError:
        return "access_denied"
