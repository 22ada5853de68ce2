"""Listening history endpoints."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from trackcer.api.dependencies import CurrentUser, get_listening_history_service
from trackcer.api.schemas import SyncHistoryRequest, SyncHistoryResponse
from trackcer.application.services import ListeningHistoryService

logger = logging.getLogger(__name__)

router = APIRouter()

HistoryServiceDep = Annotated[ListeningHistoryService, Depends(get_listening_history_service)]


@router.get("")
async def list_listening_history(
    user: CurrentUser,
    service: HistoryServiceDep,
    page: Annotated[int, Query(ge=1)] = 1,
    per_page: Annotated[int, Query(ge=1)] = 50,
) -> dict[str, Any]:
    """The user's plays, newest first. per_page is capped at 1000."""
    return await service.list_history(user.id, page=page, per_page=per_page)


# Hey future me - the mobile client pushes what it played locally (Apple Music on device).
# Re-sending the same batch is safe, exact (track_id, played_at) duplicates are skipped.
@router.post("/sync", response_model=SyncHistoryResponse)
async def sync_listening_history(
    body: SyncHistoryRequest,
    user: CurrentUser,
    service: HistoryServiceDep,
) -> SyncHistoryResponse:
    result = await service.sync_history(user, [track.model_dump() for track in body.tracks])
    return SyncHistoryResponse(
        message="Listening history synced",
        synced=result["synced"],
        skipped=result["skipped"],
    )


@router.get("/{history_id}")
async def get_listening_history(
    history_id: int,
    user: CurrentUser,
    service: HistoryServiceDep,
) -> dict[str, Any]:
    return await service.get_history(user.id, history_id)
