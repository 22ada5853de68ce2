"""Multi-format accessors and reshaping for stored track JSON.

Hey future me - `listening_history.track_data` holds RAW provider JSON, and the two
providers disagree on everything:

- Spotify: {"album": {"images": [...]}, "duration_ms": 1234, "external_ids": {"isrc": ...}}
- Apple Music: {"id": ..., "attributes": {"artwork": {"url": ".../{w}x{h}bb.jpg"},
  "durationInMillis": 1234, "previews": [{"url": ...}]}}
- Apple Music (client sync, older rows): {"data": [{"id": ..., "attributes": {...}}]}

Every accessor below tries Spotify shape -> Apple "attributes" -> Apple "data[0]" in that
order. When storing, we also COPY the interesting bits to the root (images, duration_ms,
external_urls) so the mobile app can read both sources the same way.
"""

import json
import re
from datetime import datetime
from typing import Any

APPLE_ARTWORK_SIZES: tuple[tuple[int, int], ...] = ((300, 300), (640, 640))

_DURATION_IN_JSON_RE = re.compile(r'"durationInMillis"\s*:\s*(\d+)')


def as_dict(track_data: Any) -> dict[str, Any]:
    """Accept dicts or JSON strings (legacy rows stored encoded twice)."""
    if isinstance(track_data, dict):
        return track_data
    if isinstance(track_data, str) and track_data:
        try:
            decoded = json.loads(track_data)
        except ValueError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def _apple_attributes(data: dict[str, Any]) -> list[dict[str, Any]]:
    """Attribute blocks to search: root-level first, then data[0]."""
    blocks: list[dict[str, Any]] = []
    if isinstance(data.get("attributes"), dict):
        blocks.append(data["attributes"])
    wrapped = data.get("data")
    if isinstance(wrapped, list) and wrapped and isinstance(wrapped[0], dict):
        inner = wrapped[0].get("attributes")
        if isinstance(inner, dict):
            blocks.append(inner)
    return blocks


def render_artwork_url(template: str, width: int = 300, height: int = 300) -> str:
    """Fill Apple's {w}/{h} artwork placeholders."""
    return template.replace("{w}", str(width)).replace("{h}", str(height))


def album_image_url(track_data: Any) -> str | None:
    """Album artwork URL, 300x300 for Apple templates."""
    data = as_dict(track_data)

    images = (data.get("album") or {}).get("images") or []
    if images and images[0].get("url"):
        return str(images[0]["url"])

    for attributes in _apple_attributes(data):
        url = (attributes.get("artwork") or {}).get("url")
        if url:
            return render_artwork_url(str(url))
    return None


def apple_music_id(track_data: Any) -> str | None:
    """Apple catalogue id of the track."""
    data = as_dict(track_data)
    if data.get("id"):
        return str(data["id"])
    wrapped = data.get("data")
    if isinstance(wrapped, list) and wrapped and wrapped[0].get("id"):
        return str(wrapped[0]["id"])
    return None


def isrc(track_data: Any) -> str | None:
    """International Standard Recording Code."""
    data = as_dict(track_data)
    value = (data.get("external_ids") or {}).get("isrc")
    if value:
        return str(value)
    for attributes in _apple_attributes(data):
        if attributes.get("isrc"):
            return str(attributes["isrc"])
    return None


def preview_url(track_data: Any) -> str | None:
    """30s preview clip URL."""
    data = as_dict(track_data)
    if data.get("preview_url"):
        return str(data["preview_url"])
    for attributes in _apple_attributes(data):
        previews = attributes.get("previews") or []
        if previews and previews[0].get("url"):
            return str(previews[0]["url"])
    return None


def duration_ms(track_data: Any) -> int:
    """Track duration in milliseconds, 0 when unknown.

    Hey future me - the last resort is a regex over the serialized JSON. Some old
    rows nest durationInMillis somewhere weird and this still finds it.
    """
    data = as_dict(track_data)
    if data.get("duration_ms"):
        return int(data["duration_ms"])
    for attributes in _apple_attributes(data):
        if attributes.get("durationInMillis"):
            return int(attributes["durationInMillis"])

    raw = track_data if isinstance(track_data, str) else json.dumps(data)
    match = _DURATION_IN_JSON_RE.search(raw)
    return int(match.group(1)) if match else 0


def duration_minutes(track_data: Any) -> float:
    return duration_ms(track_data) / 60000


def restructure_spotify_track(track: dict[str, Any]) -> dict[str, Any]:
    """Copy Spotify album images and duration to the root."""
    restructured = dict(track)
    album_images = (track.get("album") or {}).get("images")
    if album_images is not None:
        restructured["images"] = album_images
    restructured["duration_ms"] = track.get("duration_ms")
    return restructured


def restructure_apple_track(
    track: dict[str, Any], fetched_at: datetime
) -> dict[str, Any]:
    """Reshape an Apple Music recently-played entry to the shared root layout.

    Args:
        track: One element of the Apple "data" array
        fetched_at: When this fetch ran (stored as fetch_timestamp)

    Returns:
        Copy of the track with duration_ms/duration, release_date, explicit,
        preview_url, images (300 and 640), external_urls and fetch_timestamp
    """
    attributes = track.get("attributes") or {}
    restructured = dict(track)

    duration = attributes.get("durationInMillis")
    restructured["duration_ms"] = duration
    restructured["duration"] = duration

    if "releaseDate" in attributes:
        restructured["release_date"] = attributes["releaseDate"]

    restructured["explicit"] = attributes.get("contentRating") == "explicit"

    previews = attributes.get("previews") or []
    if previews and previews[0].get("url"):
        restructured["preview_url"] = previews[0]["url"]

    artwork = attributes.get("artwork")
    if artwork and artwork.get("url"):
        restructured["images"] = [
            {
                "url": render_artwork_url(artwork["url"], width, height),
                "height": height,
                "width": width,
            }
            for width, height in APPLE_ARTWORK_SIZES
        ]

    restructured["external_urls"] = {"apple_music": attributes.get("url")}
    restructured["fetch_timestamp"] = fetched_at.isoformat()
    return restructured


def build_synced_track_data(
    *,
    apple_music_id: str,
    track_name: str,
    artist_name: str,
    album_name: str | None,
    duration_ms: int | None = None,
    artwork_url: str | None = None,
    isrc: str | None = None,
    preview_url: str | None = None,
) -> dict[str, Any]:
    """Apple-shaped track_data for plays pushed by the mobile client."""
    attributes: dict[str, Any] = {
        "name": track_name,
        "artistName": artist_name,
        "albumName": album_name,
    }
    if duration_ms is not None:
        attributes["durationInMillis"] = duration_ms
    if artwork_url:
        attributes["artwork"] = {"url": artwork_url}
    if isrc:
        attributes["isrc"] = isrc
    if preview_url:
        attributes["previews"] = [{"url": preview_url}]

    return {
        "id": apple_music_id,
        "type": "songs",
        "attributes": attributes,
        "duration_ms": duration_ms,
    }


__all__ = [
    "album_image_url",
    "as_dict",
    "apple_music_id",
    "build_synced_track_data",
    "duration_minutes",
    "duration_ms",
    "isrc",
    "preview_url",
    "render_artwork_url",
    "restructure_apple_track",
    "restructure_spotify_track",
]
