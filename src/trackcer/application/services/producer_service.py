"""Producer credits from Genius, plus follow/favourite management."""

import asyncio
import logging
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from trackcer.application.cache.music_cache import MusicCache
from trackcer.config.settings import SchedulerSettings
from trackcer.domain.value_objects.artist_names import is_song_match
from trackcer.infrastructure.integrations.genius_client import GeniusClient
from trackcer.infrastructure.persistence.models import ListeningHistoryModel, UserModel
from trackcer.infrastructure.persistence.repositories import (
    ListeningHistoryRepository,
    ProducerRepository,
    UnmatchedTrackRepository,
    UserRepository,
)

from .notification_service import NotificationService

logger = logging.getLogger(__name__)


class ProducerService:
    """Looks up producers on Genius and links them to plays.

    Genius flow per track: search "{track} {artist}", take the first hit passing
    is_song_match(), read songs/{id} -> producer_artists, then artists/{id} for each
    producer's image. The result (also an empty one) is cached for 7 days.
    """

    def __init__(
        self,
        session: AsyncSession,
        genius_client: GeniusClient,
        cache: MusicCache,
        scheduler_settings: SchedulerSettings | None = None,
    ) -> None:
        self.genius_client = genius_client
        self.cache = cache
        self.scheduler_settings = scheduler_settings or SchedulerSettings()
        self.producer_repo = ProducerRepository(session)
        self.history_repo = ListeningHistoryRepository(session)
        self.user_repo = UserRepository(session)
        self.unmatched_repo = UnmatchedTrackRepository(session)
        self.notification_service = NotificationService(session)

    async def _search_song_id(self, track_name: str, artist_name: str) -> int | None:
        hits = await self.genius_client.search(f"{track_name} {artist_name}")
        for result in hits:
            title = result.get("title") or ""
            primary_artist = (result.get("primary_artist") or {}).get("name") or ""
            if is_song_match(title, primary_artist, track_name, artist_name):
                return result.get("id")
        return None

    async def _producer_image(self, genius_artist_id: Any) -> str | None:
        try:
            artist = await self.genius_client.get_artist(genius_artist_id)
        except httpx.HTTPError as e:
            logger.warning(
                "Failed to fetch Genius producer image",
                extra={"genius_artist_id": genius_artist_id, "error": str(e)},
            )
            return None
        return artist.get("image_url")

    async def lookup_producers(
        self, track_name: str, artist_name: str
    ) -> tuple[list[dict[str, Any]], bool]:
        """Producers Genius credits for a track.

        Returns:
            (producers as {"name", "image_url"} dicts, matched) where matched is False
            when no Genius song passed the match check

        Raises:
            httpx.HTTPError: Genius search or song lookup failed (nothing is cached then)
        """
        cached = await self.cache.get_genius_producers(track_name, artist_name)
        if cached is not None:
            return cached, True

        song_id = await self._search_song_id(track_name, artist_name)
        if song_id is None:
            await self.cache.cache_genius_producers(track_name, artist_name, [])
            return [], False

        song = await self.genius_client.get_song(song_id)
        producers: list[dict[str, Any]] = []
        for producer in song.get("producer_artists") or []:
            if not isinstance(producer, dict) or not producer.get("name"):
                continue
            producers.append(
                {
                    "name": producer["name"],
                    "image_url": await self._producer_image(producer.get("id")),
                }
            )

        await self.cache.cache_genius_producers(track_name, artist_name, producers)
        return producers, True

    async def attach_producers(
        self, history: ListeningHistoryModel
    ) -> tuple[list[int], list[str]]:
        """Look up, upsert and link the producers of one play.

        Unmatched tracks are recorded so they can be reviewed later.

        Returns:
            (producer ids, producer names) that are now linked to the play
        """
        producers, matched = await self.lookup_producers(history.track_name, history.artist_name)
        if not matched:
            await self.unmatched_repo.record(history)
            logger.debug(
                "No Genius match for track",
                extra={"track_name": history.track_name, "artist_name": history.artist_name},
            )
            return [], []

        producer_ids: list[int] = []
        producer_names: list[str] = []
        for producer_data in producers:
            producer = await self.producer_repo.upsert_by_name(
                producer_data["name"], producer_data.get("image_url")
            )
            await self.producer_repo.link_track(producer.id, history.id)
            producer_ids.append(producer.id)
            producer_names.append(producer.name)
        return producer_ids, producer_names

    async def _notify_listeners(
        self,
        history: ListeningHistoryModel,
        played_by: UserModel,
        producer_ids: list[int],
        producer_names: list[str],
    ) -> int:
        recipients = await self.user_repo.list_other_users_with_producers(
            producer_ids, played_by.id
        )
        return await self.notification_service.notify_track_played(
            recipients, history, played_by, producer_ids, producer_names
        )

    async def fetch_producers_for_user(self, user: UserModel) -> dict[str, int]:
        """Attach producers to every play of the user that has none yet.

        Works in chunks with pauses between tracks and chunks so Genius isn't hammered.
        Other users who listened to any of the found producers get notified.

        Returns:
            Counts: total, processed, with_producers, failed, notifications
        """
        settings = self.scheduler_settings
        # Old lookups pile up between batches, sweep them before adding new ones.
        await self.cache.purge_expired()
        plays = list(await self.history_repo.list_without_producers(user.id))
        stats = {
            "total": len(plays),
            "processed": 0,
            "with_producers": 0,
            "failed": 0,
            "notifications": 0,
        }

        chunk_size = max(1, settings.producer_chunk_size)
        for start in range(0, len(plays), chunk_size):
            for history in plays[start : start + chunk_size]:
                if not history.track_name or not history.artist_name:
                    continue
                try:
                    producer_ids, producer_names = await self.attach_producers(history)
                except Exception as e:
                    stats["failed"] += 1
                    logger.warning(
                        "Producer lookup failed, skipping track",
                        extra={"history_id": history.id, "error": str(e)},
                        exc_info=True,
                    )
                    continue

                stats["processed"] += 1
                if producer_ids:
                    stats["with_producers"] += 1
                    stats["notifications"] += await self._notify_listeners(
                        history, user, producer_ids, producer_names
                    )
                await asyncio.sleep(settings.producer_track_delay_seconds)

            if start + chunk_size < len(plays):
                await asyncio.sleep(settings.producer_chunk_delay_seconds)

        logger.info("Producer fetch finished", extra={"user_id": user.id, **stats})
        return stats

    async def processing_status(self, user_id: int) -> dict[str, Any]:
        """How far producer attribution has got for a user's history."""
        total = await self.history_repo.count_for_user(user_id)
        with_producers = await self.history_repo.count_with_producers(user_id)
        return {
            "total_tracks": total,
            "tracks_with_producers": with_producers,
            "tracks_without_producers": total - with_producers,
            "processing_percentage": round(with_producers / total * 100) if total else 0,
        }

    # Follow/favourite are idempotent in both directions: following twice keeps one row,
    # unfollowing something never followed is a no-op.
    async def follow(self, user_id: int, producer_id: int) -> None:
        await self.producer_repo.get(producer_id)
        await self.producer_repo.follow(user_id, producer_id)

    async def unfollow(self, user_id: int, producer_id: int) -> None:
        await self.producer_repo.get(producer_id)
        await self.producer_repo.unfollow(user_id, producer_id)

    async def favourite(self, user_id: int, producer_id: int) -> None:
        await self.producer_repo.get(producer_id)
        await self.producer_repo.favourite(user_id, producer_id)

    async def unfavourite(self, user_id: int, producer_id: int) -> None:
        await self.producer_repo.get(producer_id)
        await self.producer_repo.unfavourite(user_id, producer_id)
