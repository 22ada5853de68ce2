"""Value objects and pure helpers for artist credits and provider track data."""

from trackcer.domain.value_objects.artist_names import (
    is_similar_artist,
    is_song_match,
    is_spotify_artist_match,
    split_artist_names,
)
from trackcer.domain.value_objects.fetch_overlap import (
    StoredPlay,
    find_new_track_start_index,
)

__all__ = [
    "StoredPlay",
    "find_new_track_start_index",
    "is_similar_artist",
    "is_song_match",
    "is_spotify_artist_match",
    "split_artist_names",
]
