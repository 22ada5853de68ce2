"""Producer listings and producer detail analytics for one user."""

import logging
from collections import Counter, defaultdict
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Literal

from sqlalchemy.ext.asyncio import AsyncSession

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
    ProducerRepository,
)

from .play_stats import isoformat, last_page, play_minutes, serialize_track, total_minutes

logger = logging.getLogger(__name__)

ProducerFields = Literal["minimal", "basic", "full"]

DEFAULT_PER_PAGE = 200
MAX_PER_PAGE = 1000
RECENT_TRACKS_LIMIT = 10
TOP_LIMIT = 10


def _months_ago(now: datetime, months: int) -> datetime:
    """Same day-of-month `months` back, clamped to the 28th to stay valid."""
    month_index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(month_index, 12)
    return now.replace(year=year, month=month + 1, day=min(now.day, 28))


def _plays_with_producer(
    plays: Sequence[ListeningHistoryModel], producer_id: int
) -> list[ListeningHistoryModel]:
    return [play for play in plays if any(p.id == producer_id for p in play.producers)]


class ProducerStatsService:
    """Read-side analytics over a user's producer credits.

    Everything is computed from the user's own plays; a producer only shows up in the
    index once at least one of the user's plays is linked to it.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.history_repo = ListeningHistoryRepository(session)
        self.producer_repo = ProducerRepository(session)
        self.image_repo = ArtistImageRepository(session)

    async def list_producers(
        self,
        user_id: int,
        page: int = 1,
        per_page: int = DEFAULT_PER_PAGE,
        search: str | None = None,
        fields: ProducerFields = "full",
    ) -> dict[str, Any]:
        """Paginated producers of the user's history, ordered by name.

        Args:
            user_id: Listener
            page: 1-based page
            per_page: Page size, capped at 1000
            search: Case-insensitive substring filter on the producer name
            fields: "minimal" skips minutes and follow state, "full" adds followers_count

        Returns:
            {data, current_page, per_page, total, last_page}
        """
        page = max(1, page)
        per_page = max(1, min(per_page, MAX_PER_PAGE))
        plays = await self.history_repo.list_for_user(user_id)

        producers: dict[int, ProducerModel] = {}
        track_counts: Counter[int] = Counter()
        minutes: defaultdict[int, float] = defaultdict(float)
        for play in plays:
            play_mins = play_minutes(play)
            for producer in play.producers:
                producers[producer.id] = producer
                track_counts[producer.id] += 1
                minutes[producer.id] += play_mins

        matching = sorted(producers.values(), key=lambda p: (p.name.lower(), p.id))
        if search:
            needle = search.lower()
            matching = [p for p in matching if needle in p.name.lower()]

        total = len(matching)
        offset = (page - 1) * per_page
        page_items = matching[offset : offset + per_page]

        followed: set[int] = set()
        favourites: set[int] = set()
        follower_counts: dict[int, int] = {}
        if fields != "minimal" and page_items:
            followed = await self.producer_repo.followed_ids(user_id)
            favourites = await self.producer_repo.favourite_ids(user_id)
        if fields == "full" and page_items:
            follower_counts = await self.producer_repo.follower_counts(
                [p.id for p in page_items]
            )

        data: list[dict[str, Any]] = []
        for producer in page_items:
            row: dict[str, Any] = {
                "id": producer.id,
                "name": producer.name,
                "image_url": producer.image_url,
                "total_tracks": track_counts[producer.id],
            }
            if fields != "minimal":
                row["total_minutes"] = round(minutes[producer.id])
                row["is_following"] = producer.id in followed
                row["is_favorite"] = producer.id in favourites
            if fields == "full":
                row["followers_count"] = follower_counts.get(producer.id, 0)
            data.append(row)

        return {
            "data": data,
            "current_page": page,
            "per_page": per_page,
            "total": total,
            "last_page": last_page(total, per_page),
        }

    async def get_producer(
        self, user_id: int, producer_id: int, now: datetime | None = None
    ) -> dict[str, Any]:
        """Producer detail with listening stats, genres, recent plays and collaborators.

        Raises:
            EntityNotFoundException: Unknown producer
        """
        now = now or utc_now()
        producer = await self.producer_repo.get(producer_id)
        plays = _plays_with_producer(await self.history_repo.list_for_user(user_id), producer.id)

        followers = await self.producer_repo.follower_counts([producer.id])
        return {
            "id": producer.id,
            "name": producer.name,
            "image_url": producer.image_url,
            "is_following": producer.id in await self.producer_repo.followed_ids(user_id),
            "is_favorite": producer.id in await self.producer_repo.favourite_ids(user_id),
            "followers_count": followers.get(producer.id, 0),
            "stats": self._stats(plays, now),
            "genre_breakdown": self._genre_breakdown(plays),
            "recent_tracks": [serialize_track(play) for play in plays[:RECENT_TRACKS_LIMIT]],
            "collaborators": self._collaborators(plays, producer.id),
            "artist_collaborators": await self._artist_collaborators(plays),
        }

    @staticmethod
    def _stats(plays: list[ListeningHistoryModel], now: datetime) -> dict[str, Any]:
        if not plays:
            return {
                "total_tracks": 0,
                "total_minutes": 0,
                "first_listened": None,
                "last_listened": None,
                "monthly_breakdown": [],
            }

        played = [ensure_utc_aware(play.played_at) for play in plays]
        since = _months_ago(now, 12)
        month_counts: Counter[str] = Counter()
        month_minutes: defaultdict[str, float] = defaultdict(float)
        for play, played_at in zip(plays, played, strict=True):
            if played_at < since:
                continue
            month = played_at.strftime("%Y-%m")
            month_counts[month] += 1
            month_minutes[month] += play_minutes(play)

        return {
            "total_tracks": len(plays),
            "total_minutes": round(total_minutes(plays)),
            "first_listened": isoformat(min(played)),
            "last_listened": isoformat(max(played)),
            "monthly_breakdown": [
                {
                    "month": month,
                    "track_count": month_counts[month],
                    "minutes": round(month_minutes[month]),
                }
                for month in sorted(month_counts)
            ],
        }

    @staticmethod
    def _genre_breakdown(plays: list[ListeningHistoryModel]) -> dict[str, int]:
        counts: Counter[str] = Counter(genre.name for play in plays for genre in play.genres)
        top = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:TOP_LIMIT]
        return dict(top)

    @staticmethod
    def _collaborators(
        plays: list[ListeningHistoryModel], producer_id: int
    ) -> list[dict[str, Any]]:
        """Other producers credited on the same plays, by number of shared plays."""
        others: dict[int, ProducerModel] = {}
        shared: Counter[int] = Counter()
        for play in plays:
            for other in play.producers:
                if other.id == producer_id:
                    continue
                others[other.id] = other
                shared[other.id] += 1

        ranked = sorted(shared, key=lambda pid: (-shared[pid], others[pid].name))[:TOP_LIMIT]
        return [
            {
                "id": pid,
                "name": others[pid].name,
                "image_url": others[pid].image_url,
                "total_tracks": shared[pid],
                "track_count": shared[pid],
            }
            for pid in ranked
        ]

    async def _artist_collaborators(
        self, plays: list[ListeningHistoryModel]
    ) -> list[dict[str, Any]]:
        counts: Counter[str] = Counter()
        minutes: defaultdict[str, float] = defaultdict(float)
        first: dict[str, datetime] = {}
        last: dict[str, datetime] = {}
        for play in plays:
            played_at = ensure_utc_aware(play.played_at)
            for artist in split_artist_names(play.artist_name or ""):
                counts[artist] += 1
                minutes[artist] += play_minutes(play)
                first[artist] = min(first.get(artist, played_at), played_at)
                last[artist] = max(last.get(artist, played_at), played_at)

        top = [
            name for name, _ in sorted(counts.items(), key=lambda item: (-item[1], item[0]))
        ][:TOP_LIMIT]
        images = await self.image_repo.get_many(top)
        return [
            {
                "artist_name": name,
                "image_url": images[name].image_url if name in images else None,
                "track_count": counts[name],
                "total_minutes": round(minutes[name]),
                "first_collaboration": isoformat(first[name]),
                "last_collaboration": isoformat(last[name]),
            }
            for name in top
        ]

    async def shared_tracks(
        self, user_id: int, producer_id: int, collaborator_id: int
    ) -> dict[str, Any]:
        """Plays credited to both producers, newest first."""
        plays = [
            play
            for play in await self.history_repo.list_for_user(user_id)
            if {producer_id, collaborator_id} <= {p.id for p in play.producers}
        ]
        return {"data": [serialize_track(play) for play in plays], "total": len(plays)}

    async def artist_tracks(
        self, user_id: int, producer_id: int, artist_name: str
    ) -> dict[str, Any]:
        """Plays by the producer whose artist credit mentions the artist, newest first."""
        needle = artist_name.lower()
        plays = [
            play
            for play in _plays_with_producer(
                await self.history_repo.list_for_user(user_id), producer_id
            )
            if needle in (play.artist_name or "").lower()
        ]
        return {"data": [serialize_track(play) for play in plays], "total": len(plays)}
