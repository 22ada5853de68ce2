"""Per-artist analytics. Artists are always the SPLIT names of a credit."""

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any, Literal

from sqlalchemy.ext.asyncio import AsyncSession

from trackcer.domain.exceptions import EntityNotFoundException, ValidationException
from trackcer.domain.value_objects.artist_names import split_artist_names
from trackcer.infrastructure.persistence.models import (
    ListeningHistoryModel,
    ProducerModel,
    ensure_utc_aware,
    utc_now,
)
from trackcer.infrastructure.persistence.repositories import (
    ArtistImageRepository,
    ListeningHistoryRepository,
)

from .listening_history_service import SOURCE_APPLE_MUSIC, SOURCE_SPOTIFY
from .play_stats import last_page, play_minutes, serialize_track, total_minutes

TopArtistsRange = Literal["all", "week", "month", "custom"]

DEFAULT_PER_PAGE = 15
ARTIST_TRACKS_LIMIT = 50
TOP_PRODUCERS_LIMIT = 10
GENRES_PER_ARTIST = 5


def _popularity(play: ListeningHistoryModel) -> float | None:
    """Spotify popularity for a play: from track data for Spotify, from the
    cross-catalogue search result for Apple Music."""
    if play.source == SOURCE_SPOTIFY:
        value = (play.track_data or {}).get("popularity")
    elif play.source == SOURCE_APPLE_MUSIC:
        value = (play.popularity_data or {}).get("popularity")
    else:
        return None
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return float(value)


@dataclass
class _ArtistAggregate:
    name: str
    track_count: int = 0
    minutes: float = 0.0
    popularity_sum: float = 0.0
    popularity_count: int = 0
    latest: ListeningHistoryModel | None = None
    genres: list[str] = field(default_factory=list)

    def add(self, play: ListeningHistoryModel) -> None:
        self.track_count += 1
        self.minutes += play_minutes(play)
        popularity = _popularity(play)
        if popularity is not None:
            self.popularity_sum += popularity
            self.popularity_count += 1
        if self.latest is None or ensure_utc_aware(play.played_at) > ensure_utc_aware(
            self.latest.played_at
        ):
            self.latest = play
        for genre in play.genres:
            if genre.name not in self.genres:
                self.genres.append(genre.name)


class ArtistStatsService:
    """Artist listings, top artists and artist detail for one user."""

    def __init__(self, session: AsyncSession) -> None:
        self.history_repo = ListeningHistoryRepository(session)
        self.image_repo = ArtistImageRepository(session)

    async def list_artists(
        self,
        user_id: int,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        search: str | None = None,
    ) -> dict[str, Any]:
        """Paginated split artists ordered by play count.

        Returns:
            {data, current_page, per_page, total, last_page}
        """
        page = max(1, page)
        per_page = max(1, per_page)
        needle = search.lower() if search else None

        aggregates: dict[str, _ArtistAggregate] = {}
        for play in await self.history_repo.list_for_user(user_id):
            for artist in split_artist_names(play.artist_name or ""):
                if needle and needle not in artist.lower():
                    continue
                aggregates.setdefault(artist, _ArtistAggregate(artist)).add(play)

        ranked = sorted(aggregates.values(), key=lambda a: (-a.track_count, a.name))
        total = len(ranked)
        page_items = ranked[(page - 1) * per_page : page * per_page]
        images = await self.image_repo.get_many([a.name for a in page_items])

        data = []
        for aggregate in page_items:
            latest = aggregate.latest
            data.append(
                {
                    "artist_name": aggregate.name,
                    "track_count": aggregate.track_count,
                    "total_minutes": round(aggregate.minutes, 2),
                    "average_popularity": (
                        round(aggregate.popularity_sum / aggregate.popularity_count, 2)
                        if aggregate.popularity_count
                        else 0
                    ),
                    "latest_track": (
                        {
                            "id": latest.id,
                            "track_name": latest.track_name,
                            "album_name": latest.album_name,
                            "played_at": ensure_utc_aware(latest.played_at).isoformat(),
                        }
                        if latest is not None
                        else None
                    ),
                    "genres": aggregate.genres[:GENRES_PER_ARTIST],
                    "image_url": (
                        images[aggregate.name].image_url if aggregate.name in images else None
                    ),
                }
            )

        return {
            "data": data,
            "current_page": page,
            "per_page": per_page,
            "total": total,
            "last_page": last_page(total, per_page),
        }

    async def top_artists(
        self,
        user_id: int,
        range_name: TopArtistsRange = "all",
        start: str | None = None,
        end: str | None = None,
        limit: int = 10,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Most played split artists in a time range.

        "custom" needs both start and end (YYYY-MM-DD, whole days inclusive); without
        them it behaves like "all".

        Raises:
            ValidationException: start/end are not dates
        """
        now = now or utc_now()
        since: datetime | None = None
        until: datetime | None = None
        if range_name == "week":
            since = now - timedelta(weeks=1)
        elif range_name == "month":
            since = now - timedelta(days=30)
        elif range_name == "custom" and start and end:
            try:
                start_day = datetime.fromisoformat(start).date()
                end_day = datetime.fromisoformat(end).date()
            except ValueError as e:
                raise ValidationException(f"Invalid custom date range: {e}") from e
            since = datetime.combine(start_day, time.min, tzinfo=now.tzinfo)
            until = datetime.combine(end_day, time.max, tzinfo=now.tzinfo)

        plays = await self.history_repo.list_for_user(user_id, since=since, until=until)
        counts: Counter[str] = Counter()
        for play in plays:
            for artist in split_artist_names(play.artist_name or ""):
                counts[artist] += 1

        top = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[: max(0, limit)]
        images = await self.image_repo.get_many([name for name, _ in top])
        return {
            "data": [
                {
                    "artist_name": name,
                    "track_count": count,
                    "image_url": images[name].image_url if name in images else None,
                }
                for name, count in top
            ],
            "range": range_name,
            "total": len(top),
        }

    async def get_artist(self, user_id: int, artist_name: str) -> dict[str, Any]:
        """Detail for one split artist, collaborations included.

        Raises:
            EntityNotFoundException: The artist isn't in the user's history
        """
        plays = [
            play
            for play in await self.history_repo.list_for_user(user_id)
            if artist_name in split_artist_names(play.artist_name or "")
        ]
        if not plays:
            raise EntityNotFoundException("Artist", artist_name)

        genre_counts: Counter[str] = Counter()
        genre_minutes: defaultdict[str, float] = defaultdict(float)
        producers: dict[int, ProducerModel] = {}
        producer_counts: Counter[int] = Counter()
        for play in plays:
            play_mins = play_minutes(play)
            for genre in play.genres:
                genre_counts[genre.name] += 1
                genre_minutes[genre.name] += play_mins
            for producer in play.producers:
                producers[producer.id] = producer
                producer_counts[producer.id] += 1

        top_producer_ids = sorted(
            producer_counts, key=lambda pid: (-producer_counts[pid], producers[pid].name)
        )[:TOP_PRODUCERS_LIMIT]

        return {
            "artist": {
                "name": artist_name,
                "image_url": await self._image_url(artist_name),
            },
            "stats": {
                "total_tracks": len(plays),
                "total_minutes": round(total_minutes(plays), 2),
                "genre_breakdown": {
                    name: {"count": genre_counts[name], "minutes": round(genre_minutes[name], 2)}
                    for name in genre_counts
                },
            },
            "tracks": [
                serialize_track(play, include_source=True)
                for play in plays[:ARTIST_TRACKS_LIMIT]
            ],
            "top_producers": [
                {
                    "id": pid,
                    "name": producers[pid].name,
                    "image_url": producers[pid].image_url,
                    "track_count": producer_counts[pid],
                }
                for pid in top_producer_ids
            ],
        }

    async def _image_url(self, artist_name: str) -> str | None:
        image = await self.image_repo.get_by_name(artist_name)
        return image.image_url if image is not None else None
