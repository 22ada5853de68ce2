"""Persistence layer: async engine, ORM models and repositories."""

from .database import Database
from .repositories import (
    ArtistImageRepository,
    GenreRepository,
    ListeningHistoryRepository,
    NotificationRepository,
    PlaylistRepository,
    ProducerRepository,
    UnmatchedTrackRepository,
    UserRepository,
)

__all__ = [
    "ArtistImageRepository",
    "Database",
    "GenreRepository",
    "ListeningHistoryRepository",
    "NotificationRepository",
    "PlaylistRepository",
    "ProducerRepository",
    "UnmatchedTrackRepository",
    "UserRepository",
]
