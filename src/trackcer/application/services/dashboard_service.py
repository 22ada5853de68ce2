"""Dashboard aggregation: totals, top lists, genre split and listening trend."""

import logging
from collections import Counter, defaultdict
from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from trackcer.application.cache.music_cache import MusicCache
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

from .play_stats import artist_play_counts, play_minutes

logger = logging.getLogger(__name__)

# "all" is not unbounded on purpose, 50 years covers every real history and keeps the
# date range printable.
RANGE_WINDOWS: dict[str, timedelta] = {
    "today": timedelta(hours=24),
    "week": timedelta(days=7),
    "month": timedelta(days=30),
    "year": timedelta(days=365),
    "all": timedelta(days=365 * 50),
}
DEFAULT_RANGE = "week"

TOP_PRODUCERS_LIMIT = 5
TOP_ARTISTS_LIMIT = 5
TOP_GENRES_LIMIT = 10


def normalize_range(range_name: str | None) -> str:
    """Unknown or missing ranges fall back to the default week."""
    if range_name is not None and range_name in RANGE_WINDOWS:
        return range_name
    return DEFAULT_RANGE


def _producer_totals(
    plays: Sequence[ListeningHistoryModel],
) -> list[tuple[ProducerModel, int, float]]:
    """(producer, play count, minutes) sorted by play count, then name."""
    producers: dict[int, ProducerModel] = {}
    counts: Counter[int] = Counter()
    minutes: defaultdict[int, float] = defaultdict(float)
    for play in plays:
        play_mins = play_minutes(play)
        for producer in play.producers:
            producers[producer.id] = producer
            counts[producer.id] += 1
            minutes[producer.id] += play_mins
    ranked = sorted(counts, key=lambda pid: (-counts[pid], producers[pid].name))
    return [(producers[pid], counts[pid], minutes[pid]) for pid in ranked]


def _genre_breakdown(plays: Sequence[ListeningHistoryModel]) -> list[dict[str, Any]]:
    counts: Counter[str] = Counter()
    minutes: defaultdict[str, float] = defaultdict(float)
    for play in plays:
        play_mins = play_minutes(play)
        for genre in play.genres:
            counts[genre.name] += 1
            minutes[genre.name] += play_mins

    top = sorted(counts, key=lambda name: (-counts[name], name))[:TOP_GENRES_LIMIT]
    rows: list[dict[str, Any]] = [
        {"name": name, "count": counts[name], "totalMinutes": round(minutes[name])}
        for name in top
    ]
    # Percentages are shares of the top genres only, like the chart shows them.
    total_count = sum(row["count"] for row in rows)
    total_minutes = sum(row["totalMinutes"] for row in rows)
    for row in rows:
        row["percentage"] = (
            round(row["count"] / total_count * 100, 1) if total_count else 0
        )
        row["minutesPercentage"] = (
            round(row["totalMinutes"] / total_minutes * 100, 1) if total_minutes else 0
        )
    return rows


def _listening_trend(
    plays: Sequence[ListeningHistoryModel], range_name: str
) -> list[dict[str, Any]]:
    bucket_format = "%Y-%m" if range_name == "year" else "%Y-%m-%d"
    counts: Counter[str] = Counter()
    minutes: defaultdict[str, float] = defaultdict(float)
    for play in plays:
        bucket = ensure_utc_aware(play.played_at).strftime(bucket_format)
        counts[bucket] += 1
        minutes[bucket] += play_minutes(play)
    return [
        {"date": bucket, "track_count": counts[bucket], "minutes": round(minutes[bucket])}
        for bucket in sorted(counts)
    ]


class DashboardService:
    """Per-user dashboard numbers, cached briefly in memory."""

    def __init__(self, session: AsyncSession, cache: MusicCache) -> None:
        self.cache = cache
        self.history_repo = ListeningHistoryRepository(session)
        self.image_repo = ArtistImageRepository(session)

    async def get_stats(
        self, user_id: int, range_name: str | None = None, now: datetime | None = None
    ) -> dict[str, Any]:
        """Dashboard stats for one of today/week/month/year/all.

        Cached per (user, range) for 30 seconds ("today") or 5 minutes. Stats for an
        explicit `now` are computed fresh and never cached, the cache key has no time in it.
        """
        range_name = normalize_range(range_name)
        if now is not None:
            return await self._compute_stats(user_id, range_name, now)

        cached = await self.cache.get_dashboard_stats(user_id, range_name)
        if cached is not None:
            return cached

        stats = await self._compute_stats(user_id, range_name, utc_now())
        await self.cache.cache_dashboard_stats(user_id, range_name, stats)
        return stats

    async def _compute_stats(
        self, user_id: int, range_name: str, now: datetime
    ) -> dict[str, Any]:
        start = now - RANGE_WINDOWS[range_name]
        plays = await self.history_repo.list_for_user(user_id, since=start, until=now)

        producer_totals = _producer_totals(plays)
        artist_counts = artist_play_counts(plays)

        top_producers = [
            {
                "id": producer.id,
                "name": producer.name,
                "imageUrl": producer.image_url,
                "trackCount": count,
                "totalMinutes": round(mins),
            }
            for producer, count, mins in producer_totals[:TOP_PRODUCERS_LIMIT]
        ]

        top_artist_names = [
            name
            for name, _ in sorted(artist_counts.items(), key=lambda item: (-item[1], item[0]))[
                :TOP_ARTISTS_LIMIT
            ]
        ]
        artist_minutes: defaultdict[str, float] = defaultdict(float)
        wanted = set(top_artist_names)
        for play in plays:
            for artist in wanted.intersection(split_artist_names(play.artist_name or "")):
                artist_minutes[artist] += play_minutes(play)
        images = await self.image_repo.get_many(top_artist_names)
        top_artists = [
            {
                "artistName": name,
                "imageUrl": images[name].image_url if name in images else None,
                "playCount": artist_counts[name],
                "totalMinutes": round(artist_minutes[name]),
            }
            for name in top_artist_names
        ]

        stats = {
            "totalTracks": len(plays),
            "totalMinutes": round(sum(play_minutes(play) for play in plays)),
            "uniqueArtists": len(artist_counts),
            "uniqueProducers": len(producer_totals),
            "topProducers": top_producers,
            "topArtists": top_artists,
            "genreBreakdown": _genre_breakdown(plays),
            "listeningTrend": _listening_trend(plays, range_name),
            "dateRange": {
                "start": start.date().isoformat(),
                "end": now.date().isoformat(),
            },
        }
        logger.debug(
            "Dashboard stats computed",
            extra={"user_id": user_id, "range": range_name, "total_tracks": len(plays)},
        )
        return stats

    async def top_producer_today(
        self, user_id: int, now: datetime | None = None
    ) -> dict[str, Any]:
        """The producer behind most of the user's plays in the last 24 hours."""
        now = now or utc_now()
        plays = await self.history_repo.list_for_user(
            user_id, since=now - timedelta(hours=24), until=now
        )
        producer_totals = _producer_totals(plays)
        if not producer_totals:
            return {"producer": None, "message": "No producers played today"}

        producer, count, mins = producer_totals[0]
        return {
            "producer": {
                "id": producer.id,
                "name": producer.name,
                "imageUrl": producer.image_url,
                "totalTracks": count,
                "totalMinutes": round(mins),
            },
            "date": now.date().isoformat(),
        }

