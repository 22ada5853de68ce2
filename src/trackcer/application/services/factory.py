"""Builds services for a session around one shared set of API clients."""

from sqlalchemy.ext.asyncio import AsyncSession

from trackcer.application.cache.music_cache import MusicCache, get_music_cache
from trackcer.config.settings import Settings
from trackcer.infrastructure.integrations import (
    AppleMusicClient,
    DiscogsClient,
    GeniusClient,
    SpotifyClient,
)

from .artist_image_service import ArtistImageService
from .artist_stats_service import ArtistStatsService
from .dashboard_service import DashboardService
from .listening_history_service import ListeningHistoryService
from .notification_service import NotificationService
from .producer_service import ProducerService
from .producer_stats_service import ProducerStatsService
from .spotify_token_service import SpotifyTokenService


class ServiceFactory:
    """Owns the HTTP clients, hands out session-bound services.

    Hey future me - services are cheap and bound to ONE session, build them per request
    or per job. The clients are expensive (connection pools) and live as long as the
    factory; call close() on shutdown.
    """

    def __init__(
        self,
        settings: Settings,
        spotify_client: SpotifyClient,
        apple_music_client: AppleMusicClient,
        genius_client: GeniusClient,
        discogs_client: DiscogsClient,
        cache: MusicCache | None = None,
    ) -> None:
        self.settings = settings
        self.spotify_client = spotify_client
        self.apple_music_client = apple_music_client
        self.genius_client = genius_client
        self.discogs_client = discogs_client
        self.cache = cache or get_music_cache()

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceFactory":
        return cls(
            settings=settings,
            spotify_client=SpotifyClient(settings.spotify),
            apple_music_client=AppleMusicClient(settings.apple_music),
            genius_client=GeniusClient(settings.genius),
            discogs_client=DiscogsClient(settings.discogs),
        )

    def spotify_tokens(self, session: AsyncSession) -> SpotifyTokenService:
        return SpotifyTokenService(session, self.spotify_client, self.settings)

    def artist_images(self, session: AsyncSession) -> ArtistImageService:
        return ArtistImageService(session, self.genius_client, self.spotify_tokens(session))

    def producers(self, session: AsyncSession) -> ProducerService:
        return ProducerService(session, self.genius_client, self.cache, self.settings.scheduler)

    def listening_history(self, session: AsyncSession) -> ListeningHistoryService:
        return ListeningHistoryService(
            session,
            self.settings,
            self.spotify_tokens(session),
            self.apple_music_client,
            self.discogs_client,
            self.producers(session),
            self.artist_images(session),
        )

    def dashboard(self, session: AsyncSession) -> DashboardService:
        return DashboardService(session, self.cache)

    def producer_stats(self, session: AsyncSession) -> ProducerStatsService:
        return ProducerStatsService(session)

    def artist_stats(self, session: AsyncSession) -> ArtistStatsService:
        return ArtistStatsService(session)

    def notifications(self, session: AsyncSession) -> NotificationService:
        return NotificationService(session)

    async def close(self) -> None:
        await self.spotify_client.close()
        await self.apple_music_client.close()
        await self.genius_client.close()
        await self.discogs_client.close()
