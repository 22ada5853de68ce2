"""Application settings loaded from environment variables and .env.

Hey future me - every section is a nested model, so env vars look like
TRACKCER_SPOTIFY__CLIENT_ID or TRACKCER_DATABASE__URL (double underscore = nesting).
get_settings() is cached, tests that need different values should build Settings(...)
directly and pass it around instead of touching the cache.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseModel):
    """Database connection settings."""

    url: str = Field(
        default="sqlite+aiosqlite:///./trackcer.db",
        description="SQLAlchemy async database URL",
    )
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30


class ObservabilitySettings(BaseModel):
    """Logging output settings."""

    log_json_format: bool = False


class SpotifySettings(BaseModel):
    """Spotify app credentials (used for refreshing user tokens)."""

    client_id: str = ""
    client_secret: str = ""


class AppleMusicSettings(BaseModel):
    """Apple Music developer credentials.

    Either private_key (PEM text) or private_key_path must be set to generate
    developer tokens. developer_token is used as-is when present.
    """

    team_id: str = ""
    key_id: str = ""
    private_key: str = ""
    private_key_path: Path | None = None
    developer_token: str = ""
    token_ttl_days: int = 180


class GeniusSettings(BaseModel):
    """Genius API access token."""

    token: str = ""


class DiscogsSettings(BaseModel):
    """Discogs consumer key/secret for database search."""

    key: str = ""
    secret: str = ""


class SchedulerSettings(BaseModel):
    """Periodic background fetch settings."""

    enabled: bool = True
    apple_music_interval_seconds: int = 300
    spotify_interval_seconds: int = 1800
    producers_interval_seconds: int = 300
    # Pauses inside the producer job so Genius doesn't throttle us
    producer_track_delay_seconds: float = 0.1
    producer_chunk_delay_seconds: float = 2.0
    producer_chunk_size: int = 50


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_prefix="TRACKCER_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "TrackCer"
    log_level: str = "INFO"
    debug: bool = False

    # Hey future me - catalogue searches (Spotify popularity lookups, artist images) borrow
    # the Spotify token of ONE configured user, because those calls need a user token but
    # aren't about that user. Point this at an account that stays connected.
    image_user_id: int = 1

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    apple_music: AppleMusicSettings = Field(default_factory=AppleMusicSettings)
    genius: GeniusSettings = Field(default_factory=GeniusSettings)
    discogs: DiscogsSettings = Field(default_factory=DiscogsSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)

    def sqlite_db_path(self) -> Path | None:
        """Filesystem path of the SQLite database, None for other backends."""
        url = self.database.url
        if not url.startswith("sqlite"):
            return None
        _, _, path = url.partition(":///")
        if not path or path == ":memory:":
            return None
        return Path(path)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()


__all__ = [
    "AppleMusicSettings",
    "DatabaseSettings",
    "DiscogsSettings",
    "GeniusSettings",
    "ObservabilitySettings",
    "SchedulerSettings",
    "Settings",
    "SpotifySettings",
    "get_settings",
]
