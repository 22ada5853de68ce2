"""API routers, all mounted under /api by create_app()."""

from fastapi import APIRouter

from . import (
    apple_music,
    artist_images,
    artists,
    dashboard,
    health,
    jobs,
    listening_history,
    notifications,
    playlists,
    producers,
    users,
)

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(users.router, prefix="/user", tags=["user"])
api_router.include_router(
    listening_history.router, prefix="/listening-history", tags=["listening-history"]
)
api_router.include_router(producers.router, prefix="/producers", tags=["producers"])
api_router.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
api_router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
api_router.include_router(artists.router, prefix="/artists", tags=["artists"])
api_router.include_router(artist_images.router, prefix="/artist-images", tags=["artist-images"])
api_router.include_router(apple_music.router, prefix="/apple-music", tags=["apple-music"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(playlists.router, prefix="/playlists", tags=["playlists"])

__all__ = ["api_router"]
