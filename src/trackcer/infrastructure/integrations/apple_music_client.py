"""Apple Music API client and ES256 developer token generation."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any, cast

import httpx
import jwt

from trackcer.config.settings import AppleMusicSettings
from trackcer.domain.exceptions import ConfigurationError
from trackcer.infrastructure.rate_limiter import get_apple_music_limiter

logger = logging.getLogger(__name__)


def _load_private_key(settings: AppleMusicSettings) -> str:
    if settings.private_key:
        # .env files can't hold real newlines, accept the escaped form too
        return settings.private_key.replace("\\n", "\n")
    if settings.private_key_path is not None:
        try:
            return settings.private_key_path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(
                f"Failed to read Apple Music private key at {settings.private_key_path}: {e}"
            ) from e
    raise ConfigurationError("Apple Music private key is not configured")


def generate_developer_token(
    settings: AppleMusicSettings, now: datetime | None = None
) -> str:
    """Sign an Apple Music developer token.

    The token is an ES256 JWT with iss = team id, iat = now and exp = now + ttl
    (180 days by default, Apple's maximum), and the key id in the "kid" header.

    Args:
        settings: Apple Music credentials
        now: Issue time, defaults to the current UTC time

    Returns:
        The encoded JWT

    Raises:
        ConfigurationError: team_id, key_id or the private key are missing or unusable
    """
    if not settings.team_id or not settings.key_id:
        raise ConfigurationError("Apple Music team_id/key_id are not configured")

    issued_at = now or datetime.now(UTC)
    expires_at = issued_at + timedelta(days=settings.token_ttl_days)
    payload = {
        "iss": settings.team_id,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    headers = {"alg": "ES256", "kid": settings.key_id, "typ": "JWT"}

    try:
        token = jwt.encode(
            payload, _load_private_key(settings), algorithm="ES256", headers=headers
        )
    except (ValueError, TypeError, jwt.PyJWTError) as e:
        raise ConfigurationError(f"Failed to sign Apple Music developer token: {e}") from e

    logger.info(
        "Apple Music developer token generated",
        extra={"expires_at": expires_at.isoformat(), "key_id": settings.key_id},
    )
    return token


class AppleMusicClient:
    """HTTP client for the Apple Music API (user-scoped endpoints)."""

    API_BASE_URL = "https://api.music.apple.com/v1"

    def __init__(self, settings: AppleMusicSettings) -> None:
        self.settings = settings
        self._client: httpx.AsyncClient | None = None
        self._developer_token: str | None = settings.developer_token or None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def developer_token(self) -> str:
        """Configured developer token, or a freshly signed one (kept for the client's life)."""
        if self._developer_token is None:
            self._developer_token = generate_developer_token(self.settings)
        return self._developer_token

    async def get_recently_played(self, music_user_token: str) -> list[dict[str, Any]]:
        """Recently played tracks of a user, newest first.

        Apple gives no play timestamps here, only the order.

        Args:
            music_user_token: The user's Music-User-Token

        Returns:
            The "data" list of song resources

        Raises:
            httpx.HTTPStatusError: On any non-2xx answer
        """
        client = await self._get_client()
        headers = {
            "Authorization": f"Bearer {self.developer_token}",
            "Music-User-Token": music_user_token,
        }
        async with get_apple_music_limiter():
            response = await client.get(
                f"{self.API_BASE_URL}/me/recent/played/tracks", headers=headers
            )

        logger.debug(
            "Apple Music recently played response",
            extra={"status_code": response.status_code},
        )
        response.raise_for_status()
        payload = cast(dict[str, Any], response.json())
        return cast(list[dict[str, Any]], payload.get("data") or [])

    async def __aenter__(self) -> "AppleMusicClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
