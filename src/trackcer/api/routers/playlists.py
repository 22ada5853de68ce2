"""Playlists created through TrackCer."""

from typing import Any

from fastapi import APIRouter

from trackcer.api.dependencies import CurrentUser, SessionDep
from trackcer.application.services.play_stats import isoformat
from trackcer.infrastructure.persistence import PlaylistRepository

router = APIRouter()


@router.get("")
async def list_playlists(user: CurrentUser, session: SessionDep) -> dict[str, Any]:
    playlists = await PlaylistRepository(session).list_for_user(user.id)
    return {
        "data": [
            {
                "id": playlist.id,
                "name": playlist.name,
                "description": playlist.description,
                "service": playlist.service,
                "spotify_id": playlist.spotify_id,
                "apple_music_id": playlist.apple_music_id,
                "apple_music_global_id": playlist.apple_music_global_id,
                "created_at": isoformat(playlist.created_at),
            }
            for playlist in playlists
        ]
    }
