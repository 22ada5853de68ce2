"""Request and response schemas for the JSON API."""

from .artist_images import ArtistImageBatchRequest, ArtistImageResponse
from .common import AppleMusicTokenRequest, HealthResponse, MessageResponse
from .listening_history import SyncHistoryRequest, SyncHistoryResponse, SyncTrack

__all__ = [
    "AppleMusicTokenRequest",
    "ArtistImageBatchRequest",
    "ArtistImageResponse",
    "HealthResponse",
    "MessageResponse",
    "SyncHistoryRequest",
    "SyncHistoryResponse",
    "SyncTrack",
]
