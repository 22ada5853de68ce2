"""Schemas for pushing plays from the mobile client."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class SyncTrack(BaseModel):
    """One play as the client reports it."""

    track_id: str = Field(..., min_length=1, description="Provider track id")
    track_name: str = Field(..., min_length=1)
    artist_name: str = Field(..., min_length=1)
    album_name: str = Field(..., min_length=1)
    played_at: datetime
    duration_ms: int | None = Field(default=None, ge=0)
    apple_music_id: str | None = None
    isrc: str | None = None
    album_artwork_url: str | None = Field(
        default=None, description="Apple artwork template or plain URL"
    )
    preview_url: str | None = None
    track_data: dict[str, Any] | str | None = Field(
        default=None, description="Raw provider JSON, as an object or a JSON string"
    )


class SyncHistoryRequest(BaseModel):
    tracks: list[SyncTrack]


class SyncHistoryResponse(BaseModel):
    message: str
    synced: int
    skipped: int
