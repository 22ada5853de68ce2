"""Producer listing, detail and follow/favourite endpoints."""

from typing import Annotated, Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status

from trackcer.api.dependencies import (
    CurrentUser,
    get_producer_service,
    get_producer_stats_service,
)
from trackcer.application.services import ProducerService, ProducerStatsService

router = APIRouter()

StatsDep = Annotated[ProducerStatsService, Depends(get_producer_stats_service)]
ProducerServiceDep = Annotated[ProducerService, Depends(get_producer_service)]


@router.get("")
async def list_producers(
    user: CurrentUser,
    stats: StatsDep,
    page: Annotated[int, Query(ge=1)] = 1,
    per_page: Annotated[int, Query(ge=1)] = 200,
    search: str | None = None,
    fields: Literal["minimal", "basic", "full"] = "full",
) -> dict[str, Any]:
    """Producers of the user's plays, ordered by name. per_page is capped at 1000."""
    return await stats.list_producers(
        user.id, page=page, per_page=per_page, search=search, fields=fields
    )


@router.get("/{producer_id}")
async def get_producer(producer_id: int, user: CurrentUser, stats: StatsDep) -> dict[str, Any]:
    return await stats.get_producer(user.id, producer_id)


@router.post("/{producer_id}/follow")
async def follow_producer(
    producer_id: int, user: CurrentUser, producers: ProducerServiceDep
) -> dict[str, Any]:
    await producers.follow(user.id, producer_id)
    return {"message": "Producer followed successfully", "is_following": True}


@router.post("/{producer_id}/unfollow")
async def unfollow_producer(
    producer_id: int, user: CurrentUser, producers: ProducerServiceDep
) -> dict[str, Any]:
    await producers.unfollow(user.id, producer_id)
    return {"message": "Producer unfollowed successfully", "is_following": False}


@router.post("/{producer_id}/favorite")
async def favorite_producer(
    producer_id: int, user: CurrentUser, producers: ProducerServiceDep
) -> dict[str, Any]:
    await producers.favourite(user.id, producer_id)
    return {"message": "Producer added to favorites", "is_favorite": True}


@router.post("/{producer_id}/unfavorite")
async def unfavorite_producer(
    producer_id: int, user: CurrentUser, producers: ProducerServiceDep
) -> dict[str, Any]:
    await producers.unfavourite(user.id, producer_id)
    return {"message": "Producer removed from favorites", "is_favorite": False}


@router.get("/{producer_id}/shared-tracks")
async def shared_tracks(
    producer_id: int,
    user: CurrentUser,
    stats: StatsDep,
    collaborator_id: int | None = None,
) -> dict[str, Any]:
    """Plays the producer made together with collaborator_id."""
    if collaborator_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Collaborator ID is required"
        )
    return await stats.shared_tracks(user.id, producer_id, collaborator_id)


@router.get("/{producer_id}/artist-tracks")
async def artist_tracks(
    producer_id: int,
    user: CurrentUser,
    stats: StatsDep,
    artist: str | None = None,
    artist_name: str | None = None,
) -> dict[str, Any]:
    """Plays by the producer for one artist. The iOS app sends `artist`, others `artist_name`."""
    name = artist or artist_name
    if not name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Artist name is required"
        )
    return await stats.artist_tracks(user.id, producer_id, name)
