"""Endpoints that start background jobs for the current user.

Jobs run as in-process asyncio tasks (see JobRunner). The responses only say whether a
job was started; progress shows up through /jobs/status and the data endpoints.
"""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status

from trackcer.api.dependencies import (
    CurrentUser,
    JobRunnerDep,
    get_artist_image_service,
    get_producer_service,
)
from trackcer.application.services import ArtistImageService, ProducerService

logger = logging.getLogger(__name__)

router = APIRouter()

# The image job is global (artist images are shared), cap what one request can queue.
ARTIST_IMAGES_PER_JOB = 100


def _dispatched(started: bool, message: str) -> dict[str, Any]:
    if started:
        return {"message": message, "status": "processing"}
    return {"message": "Job already running", "status": "already_running"}


@router.post("/fetch-listening-history")
async def fetch_listening_history(user: CurrentUser, job_runner: JobRunnerDep) -> dict[str, Any]:
    if not user.apple_music_token:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Apple Music token not found. Please update your Apple Music token first.",
        )
    started = job_runner.dispatch_history(user.id)
    return _dispatched(started, "Listening history fetch job dispatched successfully")


@router.post("/fetch-producers")
async def fetch_producers(
    user: CurrentUser,
    job_runner: JobRunnerDep,
    producers: Annotated[ProducerService, Depends(get_producer_service)],
) -> dict[str, Any]:
    pending = (await producers.processing_status(user.id))["tracks_without_producers"]
    if pending == 0:
        return {"message": "No tracks found without producers", "tracks_processed": 0}

    started = job_runner.dispatch_producers(user.id)
    return {
        **_dispatched(started, "Producer fetch job dispatched successfully"),
        "tracks_to_process": pending,
    }


@router.post("/cache-artist-images")
async def cache_artist_images(
    user: CurrentUser,
    job_runner: JobRunnerDep,
    images: Annotated[ArtistImageService, Depends(get_artist_image_service)],
) -> dict[str, Any]:
    missing = await images.missing_artist_names(limit=ARTIST_IMAGES_PER_JOB)
    if not missing:
        return {
            "message": "All artists already have images cached",
            "status": "complete",
            "artists_processed": 0,
        }

    started = job_runner.dispatch_artist_images(missing)
    logger.info(
        "Artist image job requested",
        extra={"user_id": user.id, "artists": len(missing), "started": started},
    )
    return {
        **_dispatched(started, "Artist image caching job dispatched successfully"),
        "artists_to_process": len(missing),
    }


@router.get("/status")
async def job_status(
    user: CurrentUser,
    producers: Annotated[ProducerService, Depends(get_producer_service)],
) -> dict[str, Any]:
    return await producers.processing_status(user.id)
