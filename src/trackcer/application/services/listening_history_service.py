"""Listening history ingestion from Spotify and Apple Music, plus client sync.

Hey future me - the two providers behave VERY differently:

- Spotify gives real played_at timestamps and an "after" cursor. Duplicates only happen
  when the same play comes back twice, so a +/- 5 second window is enough.
- Apple gives the last ~30 tracks with NO timestamps. We store played_at = fetch time and
  work out what is new via overlap detection against the previous fetch session, then
  run two extra duplicate checks per track (see _is_apple_duplicate).

Nothing about one track fails the fetch. A broken item is logged and skipped, and each
enrichment step (genres, Spotify popularity, producers, artist images) fails on its own
without touching the others.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from trackcer.config.settings import Settings
from trackcer.domain.exceptions import DomainException
from trackcer.domain.value_objects import track_data as td
from trackcer.domain.value_objects.artist_names import split_artist_names
from trackcer.domain.value_objects.fetch_overlap import StoredPlay, find_new_track_start_index
from trackcer.infrastructure.integrations.apple_music_client import AppleMusicClient
from trackcer.infrastructure.integrations.discogs_client import DiscogsClient
from trackcer.infrastructure.persistence.models import (
    ListeningHistoryModel,
    UserModel,
    ensure_utc_aware,
    utc_now,
)
from trackcer.infrastructure.persistence.repositories import (
    GenreRepository,
    ListeningHistoryRepository,
)

from .artist_image_service import ArtistImageService
from .play_stats import last_page, serialize_play
from .producer_service import ProducerService
from .spotify_token_service import SpotifyTokenService

logger = logging.getLogger(__name__)

SOURCE_SPOTIFY = "spotify"
SOURCE_APPLE_MUSIC = "Apple Music"

SPOTIFY_DUPLICATE_WINDOW = timedelta(seconds=5)
APPLE_RECENT_PLAY_WINDOW = timedelta(minutes=10)
APPLE_RECENT_SESSIONS_WINDOW = timedelta(minutes=15)
APPLE_RECENT_SESSIONS = 3
APPLE_MAX_APPEARANCES = 2
APPLE_POSITION_RANGE = 3
LAST_SESSION_ROWS = 50
DEFAULT_PER_PAGE = 50
MAX_PER_PAGE = 1000

# Provider calls that end the whole fetch (it returns None), everything else is per item.
_PROVIDER_ERRORS = (httpx.HTTPError, DomainException)


def new_fetch_session_id(prefix: str, user_id: int) -> str:
    return f"{prefix}_{user_id}_{uuid.uuid4().hex}"


def _parse_timestamp(value: str) -> datetime:
    return ensure_utc_aware(datetime.fromisoformat(value.replace("Z", "+00:00")))


class ListeningHistoryService:
    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        spotify_tokens: SpotifyTokenService,
        apple_music_client: AppleMusicClient,
        discogs_client: DiscogsClient,
        producer_service: ProducerService,
        artist_image_service: ArtistImageService,
    ) -> None:
        self.settings = settings
        self.spotify_tokens = spotify_tokens
        self.spotify_client = spotify_tokens.spotify_client
        self.apple_music_client = apple_music_client
        self.discogs_client = discogs_client
        self.producer_service = producer_service
        self.artist_image_service = artist_image_service
        self.history_repo = ListeningHistoryRepository(session)
        self.genre_repo = GenreRepository(session)

    # =========================================================================
    # SHARED ENRICHMENT STEPS
    # =========================================================================

    async def _cache_artist_images(self, artist_credit: str) -> None:
        for artist in split_artist_names(artist_credit):
            try:
                await self.artist_image_service.cache_artist_image(artist)
            except Exception as e:
                logger.warning(
                    "Failed to cache artist image, continuing",
                    extra={"artist": artist, "error": str(e)},
                    exc_info=True,
                )

    async def _attach_discogs_genres(self, history: ListeningHistoryModel) -> int:
        first_artist = history.artist_name.split(",")[0].strip()
        results = await self.discogs_client.search_releases(history.track_name, first_artist)
        genre_names: list[str] = []
        for result in results:
            genre_names.extend(result.get("genre") or [])
            genre_names.extend(result.get("style") or [])
        attached = await self.genre_repo.attach(history.id, genre_names)
        if attached:
            logger.info(
                "Attached genres from Discogs",
                extra={"history_id": history.id, "genre_count": attached},
            )
        return attached

    async def _attach_spotify_genres(
        self, user: UserModel, history: ListeningHistoryModel, artist_id: str
    ) -> None:
        """Genres of one Spotify artist, Discogs when Spotify fails for any reason."""
        try:
            artist = await self.spotify_tokens.call(
                user, lambda token: self.spotify_client.get_artist(artist_id, token)
            )
        except Exception as e:
            logger.warning(
                "Failed to get genres from Spotify, trying Discogs",
                extra={"artist_id": artist_id, "error": str(e)},
            )
            try:
                await self._attach_discogs_genres(history)
            except Exception as discogs_error:
                logger.warning(
                    "Discogs genre fallback failed",
                    extra={"history_id": history.id, "error": str(discogs_error)},
                    exc_info=True,
                )
            return

        await self.genre_repo.attach(history.id, artist.get("genres") or [])

    async def _spotify_popularity(
        self, track_name: str, artist_name: str
    ) -> dict[str, Any] | None:
        """Cross-catalogue Spotify metadata for an Apple Music play."""
        user = await self.spotify_tokens.catalogue_user()
        if user is None:
            return None

        query = f"track:{track_name} artist:{artist_name}"
        result = await self.spotify_tokens.call(
            user, lambda token: self.spotify_client.search_track(query, token, limit=1)
        )
        items = (result.get("tracks") or {}).get("items") or []
        if not items:
            logger.info(
                "No matching track found on Spotify",
                extra={"track_name": track_name, "artist_name": artist_name},
            )
            return None

        spotify_track = items[0]
        return {
            "spotify_id": spotify_track.get("id"),
            "popularity": spotify_track.get("popularity"),
            "spotify_url": (spotify_track.get("external_urls") or {}).get("spotify"),
            "explicit": spotify_track.get("explicit", False),
            "duration_ms": spotify_track.get("duration_ms"),
            "preview_url": spotify_track.get("preview_url"),
            "searched_at": utc_now().strftime("%Y-%m-%dT%H:%M:%SZ"),
        }

    # =========================================================================
    # SPOTIFY
    # =========================================================================

    async def fetch_spotify_history(self, user: UserModel) -> dict[str, int] | None:
        """Pull the user's recently played Spotify tracks.

        Returns:
            {"processed": new rows, "total": items returned}, None when Spotify failed
        """
        latest = await self.history_repo.latest_played_at(user.id, SOURCE_SPOTIFY)
        after_ms = (
            int(ensure_utc_aware(latest).timestamp() * 1000) if latest is not None else None
        )

        try:
            response = await self.spotify_tokens.call(
                user,
                lambda token: self.spotify_client.get_recently_played(token, after_ms=after_ms),
            )
        except _PROVIDER_ERRORS as e:
            logger.error(
                "Failed to fetch Spotify listening history",
                extra={"user_id": user.id, "error": str(e)},
            )
            return None

        items = response.get("items") or []
        if not items:
            logger.info("No new Spotify tracks", extra={"user_id": user.id})
            return {"processed": 0, "total": 0}

        fetch_session_id = new_fetch_session_id("spotify", user.id)
        stored: list[tuple[ListeningHistoryModel, dict[str, Any]]] = []
        processed = 0

        for position, item in enumerate(items):
            try:
                track = item.get("track") or {}
                if not track.get("id"):
                    continue
                history, is_new = await self._store_spotify_play(
                    user, item, position, fetch_session_id
                )
                await self._cache_artist_images(history.artist_name)
            except Exception as e:
                logger.warning(
                    "Failed to process Spotify play, skipping",
                    extra={"user_id": user.id, "position": position, "error": str(e)},
                    exc_info=True,
                )
                continue
            processed += int(is_new)
            stored.append((history, track))

        for history, track in stored:
            for artist in track.get("artists") or []:
                if not isinstance(artist, dict) or not artist.get("id"):
                    continue
                try:
                    await self._attach_spotify_genres(user, history, artist["id"])
                except Exception as e:
                    logger.warning(
                        "Failed to attach genres, continuing",
                        extra={"history_id": history.id, "error": str(e)},
                        exc_info=True,
                    )

        logger.info(
            "Spotify listening history updated",
            extra={"user_id": user.id, "processed_count": processed, "total_tracks": len(items)},
        )
        return {"processed": processed, "total": len(items)}

    async def _store_spotify_play(
        self, user: UserModel, item: dict[str, Any], position: int, fetch_session_id: str
    ) -> tuple[ListeningHistoryModel, bool]:
        """Store one recently-played item unless it's already there (+/- 5 seconds).

        Returns:
            (the stored or existing row, whether it was newly added)
        """
        track = item["track"]
        played_at = _parse_timestamp(item["played_at"])
        existing = await self.history_repo.find_play_near(
            user.id, track["id"], SOURCE_SPOTIFY, played_at, SPOTIFY_DUPLICATE_WINDOW
        )
        if existing is not None:
            logger.debug(
                "Skipped duplicate Spotify play within time window",
                extra={"track_id": track["id"], "played_at": item["played_at"]},
            )
            return existing, False

        history = await self.history_repo.add(
            ListeningHistoryModel(
                user_id=user.id,
                track_id=track["id"],
                track_name=track.get("name") or "",
                artist_name=", ".join(a.get("name", "") for a in track.get("artists") or []),
                album_name=(track.get("album") or {}).get("name"),
                played_at=played_at,
                track_data=td.restructure_spotify_track(track),
                source=SOURCE_SPOTIFY,
                fetch_session_id=fetch_session_id,
                position_in_fetch=position,
            )
        )
        return history, True

    # =========================================================================
    # APPLE MUSIC
    # =========================================================================

    async def _is_apple_duplicate(
        self, user_id: int, track_id: str, fetch_session_id: str, position: int, now: datetime
    ) -> bool:
        """Second line of defence after overlap detection.

        Only kicks in when the same track was stored in the last 10 minutes. Then it's a
        duplicate if it already shows up twice in the last 3 other sessions (15 minutes),
        or if it was stored at nearly the same position (+/- 3).
        """
        recent_since = now - APPLE_RECENT_PLAY_WINDOW
        if not await self.history_repo.has_play_created_since(
            user_id, track_id, SOURCE_APPLE_MUSIC, recent_since
        ):
            return False

        session_ids = await self.history_repo.recent_session_ids(
            user_id,
            SOURCE_APPLE_MUSIC,
            exclude_session_id=fetch_session_id,
            since=now - APPLE_RECENT_SESSIONS_WINDOW,
            limit=APPLE_RECENT_SESSIONS,
        )
        appearances = await self.history_repo.count_in_sessions(
            user_id, track_id, SOURCE_APPLE_MUSIC, session_ids
        )
        if appearances >= APPLE_MAX_APPEARANCES:
            logger.debug(
                "Skipping likely duplicate Apple Music track",
                extra={"track_id": track_id, "appearances": appearances},
            )
            return True

        similar = await self.history_repo.find_similar_position_play(
            user_id,
            track_id,
            SOURCE_APPLE_MUSIC,
            since=recent_since,
            position=position,
            position_range=APPLE_POSITION_RANGE,
        )
        if similar is not None:
            logger.debug(
                "Skipping Apple Music track with similar position",
                extra={
                    "track_id": track_id,
                    "current_position": position,
                    "previous_position": similar.position_in_fetch,
                },
            )
            return True
        return False

    async def _enrich_apple_play(
        self, history: ListeningHistoryModel, attributes: dict[str, Any]
    ) -> None:
        try:
            await self.genre_repo.attach(history.id, attributes.get("genreNames") or [])
        except Exception as e:
            logger.warning(
                "Failed to attach Apple Music genres, continuing",
                extra={"history_id": history.id, "error": str(e)},
                exc_info=True,
            )

        try:
            popularity = await self._spotify_popularity(history.track_name, history.artist_name)
            if popularity:
                history.popularity_data = popularity
        except Exception as e:
            logger.warning(
                "Failed to search Spotify for Apple Music track",
                extra={"history_id": history.id, "error": str(e)},
                exc_info=True,
            )

        try:
            await self.producer_service.attach_producers(history)
        except Exception as e:
            logger.warning(
                "Failed to fetch producers, continuing",
                extra={"history_id": history.id, "error": str(e)},
                exc_info=True,
            )

        await self._cache_artist_images(history.artist_name)

    async def _store_apple_play(
        self,
        user: UserModel,
        track: dict[str, Any],
        attributes: dict[str, Any],
        fetch_session_id: str,
        position: int,
        now: datetime,
    ) -> ListeningHistoryModel | None:
        """Store one new Apple Music track, None when it looks like a duplicate."""
        track_id = track["id"]
        if await self._is_apple_duplicate(user.id, track_id, fetch_session_id, position, now):
            return None

        return await self.history_repo.add(
            ListeningHistoryModel(
                user_id=user.id,
                track_id=track_id,
                track_name=attributes.get("name") or "Unknown Track",
                artist_name=attributes.get("artistName") or "Unknown Artist",
                album_name=attributes.get("albumName") or "Unknown Album",
                played_at=now,
                track_data=td.restructure_apple_track(track, now),
                source=SOURCE_APPLE_MUSIC,
                fetch_session_id=fetch_session_id,
                position_in_fetch=position,
                created_at=now,
            )
        )

    async def fetch_apple_music_history(self, user: UserModel) -> dict[str, int] | None:
        """Pull the user's recently played Apple Music tracks.

        Returns:
            {"processed": new rows, "total": tracks returned}, None when Apple failed
        """
        try:
            tracks = await self.apple_music_client.get_recently_played(
                user.apple_music_token or ""
            )
        except _PROVIDER_ERRORS as e:
            logger.error(
                "Failed to fetch Apple Music listening history",
                extra={"user_id": user.id, "error": str(e)},
            )
            return None

        logger.info("Fetched Apple Music tracks", extra={"user_id": user.id, "count": len(tracks)})

        now = utc_now()
        last_session = [
            StoredPlay(track_id=row.track_id, created_at=ensure_utc_aware(row.created_at))
            for row in await self.history_repo.last_session_rows(
                user.id, SOURCE_APPLE_MUSIC, LAST_SESSION_ROWS
            )
        ]
        new_count = find_new_track_start_index(
            [track.get("id") for track in tracks], last_session, now
        )
        if new_count == 0:
            logger.info("No new Apple Music tracks", extra={"user_id": user.id})
            return {"processed": 0, "total": len(tracks)}

        fetch_session_id = new_fetch_session_id("apple_music", user.id)
        processed = 0

        for position in range(new_count):
            track = tracks[position]
            attributes = track.get("attributes") or {}
            track_id = track.get("id")
            if not attributes or not track_id:
                logger.warning("Apple Music track missing attributes", extra={"position": position})
                continue

            try:
                history = await self._store_apple_play(
                    user, track, attributes, fetch_session_id, position, now
                )
            except Exception as e:
                logger.warning(
                    "Failed to process Apple Music track, skipping",
                    extra={"user_id": user.id, "track_id": track_id, "error": str(e)},
                    exc_info=True,
                )
                continue
            if history is None:
                continue
            processed += 1
            await self._enrich_apple_play(history, attributes)

        logger.info(
            "Apple Music listening history updated",
            extra={
                "user_id": user.id,
                "tracks_processed": processed,
                "total_tracks": len(tracks),
                "new_tracks": new_count,
            },
        )
        return {"processed": processed, "total": len(tracks)}

    # =========================================================================
    # READ SIDE
    # =========================================================================

    async def list_history(
        self, user_id: int, page: int = 1, per_page: int = DEFAULT_PER_PAGE
    ) -> dict[str, Any]:
        """One page of the user's plays, newest first.

        Returns:
            {data, current_page, per_page, total, last_page}
        """
        page = max(1, page)
        per_page = max(1, min(per_page, MAX_PER_PAGE))
        plays, total = await self.history_repo.paginate_for_user(user_id, page, per_page)
        return {
            "data": [serialize_play(play) for play in plays],
            "current_page": page,
            "per_page": per_page,
            "total": total,
            "last_page": last_page(total, per_page),
        }

    async def get_history(self, user_id: int, history_id: int) -> dict[str, Any]:
        """One play of the user.

        Raises:
            EntityNotFoundException: Unknown id or another user's play
        """
        return serialize_play(await self.history_repo.get_for_user(user_id, history_id))

    # =========================================================================
    # BOTH / CLIENT SYNC
    # =========================================================================

    async def fetch_history(self, user: UserModel) -> dict[str, dict[str, int] | None]:
        """Fetch every provider the user is connected to, each independently."""
        results: dict[str, dict[str, int] | None] = {}
        if user.spotify_token:
            results[SOURCE_SPOTIFY] = await self.fetch_spotify_history(user)
        if user.apple_music_token:
            results[SOURCE_APPLE_MUSIC] = await self.fetch_apple_music_history(user)
        return results

    async def sync_history(
        self, user: UserModel, tracks: list[dict[str, Any]]
    ) -> dict[str, int]:
        """Store plays pushed by the mobile client.

        Each track needs track_id, track_name, artist_name and played_at. Tracks with an
        apple_music_id get Apple-shaped track_data. An exact (track_id, played_at)
        duplicate of an existing row is skipped.

        Returns:
            {"synced": n, "skipped": m}
        """
        synced = skipped = 0
        for track in tracks:
            played_at = ensure_utc_aware(track["played_at"])
            if await self.history_repo.exists_exact(user.id, track["track_id"], played_at):
                skipped += 1
                continue

            track_data = td.as_dict(track.get("track_data")) or None
            duration = track.get("duration_ms") or (
                td.duration_ms(track_data) if track_data else None
            )
            if track_data is None and track.get("apple_music_id"):
                track_data = td.build_synced_track_data(
                    apple_music_id=track["apple_music_id"],
                    track_name=track["track_name"],
                    artist_name=track["artist_name"],
                    album_name=track.get("album_name"),
                    duration_ms=duration or None,
                    artwork_url=track.get("album_artwork_url"),
                    isrc=track.get("isrc"),
                    preview_url=track.get("preview_url"),
                )

            await self.history_repo.add(
                ListeningHistoryModel(
                    user_id=user.id,
                    track_id=track["track_id"],
                    track_name=track["track_name"],
                    artist_name=track["artist_name"],
                    album_name=track.get("album_name"),
                    played_at=played_at,
                    track_data=track_data,
                    source=SOURCE_APPLE_MUSIC,
                )
            )
            synced += 1

        logger.info(
            "Synced client listening history",
            extra={"user_id": user.id, "synced": synced, "skipped": skipped},
        )
        return {"synced": synced, "skipped": skipped}
