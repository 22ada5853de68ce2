"""Schemas for the artist image endpoints."""

from pydantic import BaseModel, Field


class ArtistImageResponse(BaseModel):
    artist_name: str
    image_url: str | None = None


class ArtistImageBatchRequest(BaseModel):
    artist_names: list[str] = Field(..., description="Single (already split) artist names")
    fetch_missing: bool = Field(
        default=False, description="Look up missing images right away (at most 10)"
    )
