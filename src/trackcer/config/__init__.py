"""Configuration module for TrackCer."""

from .settings import (
    AppleMusicSettings,
    DiscogsSettings,
    GeniusSettings,
    Settings,
    SpotifySettings,
    get_settings,
)

__all__ = [
    "AppleMusicSettings",
    "DiscogsSettings",
    "GeniusSettings",
    "Settings",
    "SpotifySettings",
    "get_settings",
]
