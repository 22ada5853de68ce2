"""Artist image lookup and cache maintenance endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from trackcer.api.dependencies import CurrentUser, get_artist_image_service
from trackcer.api.schemas import ArtistImageBatchRequest, ArtistImageResponse
from trackcer.application.services import ArtistImageService

router = APIRouter()

ImagesDep = Annotated[ArtistImageService, Depends(get_artist_image_service)]


@router.get("", response_model=ArtistImageResponse)
async def get_artist_image(
    _user: CurrentUser,
    images: ImagesDep,
    artist_name: str | None = None,
) -> ArtistImageResponse:
    """Stored image for one artist, looked up on Genius/Spotify when missing."""
    if not artist_name or not artist_name.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="artist_name is required"
        )
    image_url = await images.cache_artist_image(artist_name)
    return ArtistImageResponse(artist_name=artist_name, image_url=image_url)


@router.post("/fetch")
async def fetch_artist_images(
    _user: CurrentUser,
    images: ImagesDep,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> dict[str, Any]:
    return await images.fetch_missing_images(limit)


@router.get("/stats")
async def artist_image_stats(_user: CurrentUser, images: ImagesDep) -> dict[str, Any]:
    return await images.stats()


@router.post("/batch")
async def artist_images_batch(
    body: ArtistImageBatchRequest,
    _user: CurrentUser,
    images: ImagesDep,
) -> dict[str, Any]:
    return await images.batch_images(body.artist_names, fetch_missing=body.fetch_missing)
