"""Clients for the external music APIs."""

from .apple_music_client import AppleMusicClient, generate_developer_token
from .discogs_client import DiscogsClient
from .genius_client import GeniusClient
from .spotify_client import SpotifyClient

__all__ = [
    "AppleMusicClient",
    "DiscogsClient",
    "GeniusClient",
    "SpotifyClient",
    "generate_developer_token",
]
