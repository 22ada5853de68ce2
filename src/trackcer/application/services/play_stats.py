"""Shared helpers for the analytics services.

All the stats endpoints aggregate over ListeningHistoryModel rows in Python. The
rows come from ListeningHistoryRepository.list_for_user() with producers and genres
already loaded, so nothing in here touches the session.
"""

from collections import Counter
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from trackcer.domain.value_objects import track_data as td
from trackcer.domain.value_objects.artist_names import split_artist_names
from trackcer.infrastructure.persistence.models import ListeningHistoryModel, ensure_utc_aware


def play_minutes(history: ListeningHistoryModel) -> float:
    """Minutes of one play, 0 when the stored track data has no duration."""
    return td.duration_minutes(history.track_data)


def total_minutes(plays: Iterable[ListeningHistoryModel]) -> float:
    return sum(play_minutes(play) for play in plays)


def isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    return ensure_utc_aware(value).isoformat()


def artist_play_counts(plays: Iterable[ListeningHistoryModel]) -> Counter[str]:
    """Play counts per single artist ("Drake, Future" counts for both)."""
    counts: Counter[str] = Counter()
    for play in plays:
        for artist in split_artist_names(play.artist_name or ""):
            counts[artist] += 1
    return counts


def serialize_track(history: ListeningHistoryModel, include_source: bool = False) -> dict[str, Any]:
    """Track row as the producer/artist detail endpoints return it."""
    data: dict[str, Any] = {
        "id": history.id,
        "track_name": history.track_name,
        "artist_name": history.artist_name,
        "album_name": history.album_name,
        "album_image_url": td.album_image_url(history.track_data),
        "played_at": isoformat(history.played_at),
        "duration_ms": td.duration_ms(history.track_data),
    }
    if include_source:
        data["source"] = history.source
    data["genres"] = [genre.name for genre in history.genres]
    data["producers"] = [{"id": p.id, "name": p.name} for p in history.producers]
    return data


def last_page(total: int, per_page: int) -> int:
    """Page count, at least 1 so empty listings still have a page."""
    if per_page <= 0:
        return 1
    return max(1, -(-total // per_page))


def serialize_play(history: ListeningHistoryModel) -> dict[str, Any]:
    """Full listening history row for the history endpoints."""
    return {
        "id": history.id,
        "user_id": history.user_id,
        "track_id": history.track_id,
        "track_name": history.track_name,
        "artist_name": history.artist_name,
        "album_name": history.album_name,
        "album_image_url": td.album_image_url(history.track_data),
        "duration_ms": td.duration_ms(history.track_data),
        "played_at": isoformat(history.played_at),
        "source": history.source,
        "track_data": history.track_data,
        "popularity_data": history.popularity_data,
        "producers": [
            {"id": p.id, "name": p.name, "image_url": p.image_url} for p in history.producers
        ],
        "genres": [genre.name for genre in history.genres],
        "created_at": isoformat(history.created_at),
    }
