"""Artist analytics endpoints (artists are split names, "Drake, Future" is two)."""

from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, Query

from trackcer.api.dependencies import CurrentUser, get_artist_stats_service
from trackcer.application.services import ArtistStatsService

router = APIRouter()

ArtistStatsDep = Annotated[ArtistStatsService, Depends(get_artist_stats_service)]


@router.get("")
async def list_artists(
    user: CurrentUser,
    artists: ArtistStatsDep,
    page: Annotated[int, Query(ge=1)] = 1,
    per_page: Annotated[int, Query(ge=1, le=1000)] = 15,
    search: str | None = None,
) -> dict[str, Any]:
    return await artists.list_artists(user.id, page=page, per_page=per_page, search=search)


# Declared before /{artist_name} so "top" isn't taken for an artist.
@router.get("/top")
async def top_artists(
    user: CurrentUser,
    artists: ArtistStatsDep,
    range_name: Annotated[Literal["all", "week", "month", "custom"], Query(alias="range")] = "all",
    start: str | None = None,
    end: str | None = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> dict[str, Any]:
    return await artists.top_artists(
        user.id, range_name=range_name, start=start, end=end, limit=limit
    )


@router.get("/{artist_name:path}")
async def get_artist(
    artist_name: str, user: CurrentUser, artists: ArtistStatsDep
) -> dict[str, Any]:
    """Artist detail. The path converter keeps names like "AC/DC" in one piece."""
    return await artists.get_artist(user.id, artist_name)
