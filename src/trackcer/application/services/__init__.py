"""Application services (one per use case, bound to a session)."""

from .artist_image_service import ArtistImageService
from .artist_stats_service import ArtistStatsService
from .dashboard_service import DashboardService
from .factory import ServiceFactory
from .listening_history_service import (
    SOURCE_APPLE_MUSIC,
    SOURCE_SPOTIFY,
    ListeningHistoryService,
)
from .notification_service import NotificationService
from .producer_service import ProducerService
from .producer_stats_service import ProducerStatsService
from .spotify_token_service import SpotifyTokenService
from .user_service import UserService

__all__ = [
    "SOURCE_APPLE_MUSIC",
    "SOURCE_SPOTIFY",
    "ArtistImageService",
    "ArtistStatsService",
    "DashboardService",
    "ListeningHistoryService",
    "NotificationService",
    "ProducerService",
    "ProducerStatsService",
    "ServiceFactory",
    "SpotifyTokenService",
    "UserService",
]
