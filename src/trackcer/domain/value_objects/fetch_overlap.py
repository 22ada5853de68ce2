"""Overlap detection between an Apple Music fetch and the previous fetch session.

Hey future me - Apple's /me/recent/played/tracks has NO timestamps and NO cursor. It just
returns the last ~30-50 tracks, newest first. Every poll we get mostly the same list again,
shifted by whatever was played since. So to find "what is new" we look for where the
previously stored session lines up inside the fresh list.

The scoring: slide a start position over the first 30 fetched tracks, look at a window of up
to 20 tracks from there, and score each track that was in the last session. A match whose
stored position comes AFTER all earlier matches keeps order and scores 2, otherwise 1.
A score of 3 is enough to trust the alignment. Everything before that start position is new.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

MAX_START_POSITIONS = 30
WINDOW_SIZE = 20
MIN_OVERLAP_SCORE = 3
RECENT_TRACKS_CHECKED = 5
STALE_SESSION_MINUTES = 10


@dataclass(frozen=True)
class StoredPlay:
    """The bits of a previously stored play the overlap search needs."""

    track_id: str
    created_at: datetime


def find_new_track_start_index(
    fetched_ids: Sequence[str | None],
    last_session: Sequence[StoredPlay],
    now: datetime,
) -> int:
    """Number of leading (newest) fetched tracks that were not stored yet.

    Args:
        fetched_ids: Track ids of the fresh fetch, newest first (None for malformed entries)
        last_session: Previously stored plays, newest first
        now: Current time (timezone-aware)

    Returns:
        Index where already-known tracks start; len(fetched_ids) when everything is new
    """
    total = len(fetched_ids)
    if not last_session:
        return total

    # After a long pause replays are legit, take everything. Age counts in whole minutes.
    if (now - last_session[0].created_at) // timedelta(minutes=1) > STALE_SESSION_MINUTES:
        return total

    stored_index: dict[str, int] = {}
    for index, play in enumerate(last_session):
        stored_index[play.track_id] = index

    best_index: int | None = None
    best_score = 0

    for start in range(min(total, MAX_START_POSITIONS)):
        score = 0
        matched: list[int] = []
        for offset in range(min(WINDOW_SIZE, total - start)):
            track_id = fetched_ids[start + offset]
            if track_id is None or track_id not in stored_index:
                continue
            position = stored_index[track_id]
            score += 2 if not matched or position > max(matched) else 1
            matched.append(position)

        if score > best_score:
            best_score = score
            best_index = start

    if best_score >= MIN_OVERLAP_SCORE and best_index is not None:
        return best_index

    recent_ids = {play.track_id for play in last_session[:RECENT_TRACKS_CHECKED]}
    for index, track_id in enumerate(fetched_ids):
        if track_id is not None and track_id in recent_ids:
            if index > 0:
                return index
            break

    return total


__all__ = ["StoredPlay", "find_new_track_start_index"]
