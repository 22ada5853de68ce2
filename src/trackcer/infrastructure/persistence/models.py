"""SQLAlchemy ORM models for TrackCer."""

from datetime import UTC, datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


# Hey future me - SQLite drops tzinfo on the way back! Anything read from the DB that gets
# compared with utc_now() (overlap detection, duplicate windows) must go through this.
def ensure_utc_aware(dt: datetime) -> datetime:
    """Ensure datetime is UTC-aware, assuming naive datetimes are UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# =============================================================================
# ASSOCIATION TABLES
# =============================================================================

producer_track = Table(
    "producer_track",
    Base.metadata,
    Column(
        "producer_id",
        Integer,
        ForeignKey("producers.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "listening_history_id",
        Integer,
        ForeignKey("listening_history.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)

genre_track = Table(
    "genre_track",
    Base.metadata,
    Column(
        "genre_id", Integer, ForeignKey("genres.id", ondelete="CASCADE"), primary_key=True
    ),
    Column(
        "listening_history_id",
        Integer,
        ForeignKey("listening_history.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)

producer_follows = Table(
    "producer_follows",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "producer_id",
        Integer,
        ForeignKey("producers.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("created_at", sa.DateTime(timezone=True), default=utc_now),
)

producer_favourites = Table(
    "producer_favourites",
    Base.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column(
        "producer_id",
        Integer,
        ForeignKey("producers.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("created_at", sa.DateTime(timezone=True), default=utc_now),
)


# =============================================================================
# ENTITIES
# =============================================================================


# Listen up, user ids are plain integers on purpose: settings.image_user_id points at the
# account whose Spotify token serves catalogue searches, and "1" has to mean something.
# Tokens are stored as-is (no encryption at rest), don't log them.
class UserModel(Base):
    """A listener with optional Spotify and Apple Music connections."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)

    spotify_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    spotify_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    spotify_refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)

    apple_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    apple_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    apple_refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    apple_music_token: Mapped[str | None] = mapped_column(Text, nullable=True)

    profile_image: Mapped[str | None] = mapped_column(String(512), nullable=True)
    initial_data_fetched: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    last_login_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    terms_accepted_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    listening_history: Mapped[list["ListeningHistoryModel"]] = relationship(
        "ListeningHistoryModel", back_populates="user", cascade="all, delete-orphan"
    )
    followed_producers: Mapped[list["ProducerModel"]] = relationship(
        "ProducerModel", secondary=producer_follows, back_populates="followers"
    )
    favourite_producers: Mapped[list["ProducerModel"]] = relationship(
        "ProducerModel", secondary=producer_favourites, back_populates="favourited_by"
    )
    playlists: Mapped[list["PlaylistModel"]] = relationship(
        "PlaylistModel", back_populates="user", cascade="all, delete-orphan"
    )


# Hey future me - ONE ROW PER PLAY, not per track! The same track_id shows up many times.
# source is "spotify" or "Apple Music" (yes, exactly those strings, the mobile client filters
# on them). played_at for Apple rows is the fetch time because Apple gives no play timestamps.
# fetch_session_id + position_in_fetch are what the Apple overlap detection reads back.
class ListeningHistoryModel(Base):
    """A single play event of a track."""

    __tablename__ = "listening_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    track_id: Mapped[str] = mapped_column(String(255), nullable=False)
    track_name: Mapped[str] = mapped_column(String(512), nullable=False)
    artist_name: Mapped[str] = mapped_column(String(512), nullable=False)
    album_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    played_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    track_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    popularity_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default="spotify")
    fetch_session_id: Mapped[str | None] = mapped_column(
        String(128), nullable=True, index=True
    )
    position_in_fetch: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    user: Mapped["UserModel"] = relationship("UserModel", back_populates="listening_history")
    producers: Mapped[list["ProducerModel"]] = relationship(
        "ProducerModel", secondary=producer_track, back_populates="tracks"
    )
    genres: Mapped[list["GenreModel"]] = relationship(
        "GenreModel", secondary=genre_track, back_populates="tracks"
    )

    __table_args__ = (
        Index("ix_listening_history_user_played", "user_id", "played_at"),
        Index("ix_listening_history_user_track_source", "user_id", "track_id", "source"),
        Index("ix_listening_history_user_source_created", "user_id", "source", "created_at"),
    )


class ProducerModel(Base):
    """A production credit, unique by name."""

    __tablename__ = "producers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    spotify_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    discogs_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    tracks: Mapped[list["ListeningHistoryModel"]] = relationship(
        "ListeningHistoryModel", secondary=producer_track, back_populates="producers"
    )
    followers: Mapped[list["UserModel"]] = relationship(
        "UserModel", secondary=producer_follows, back_populates="followed_producers"
    )
    favourited_by: Mapped[list["UserModel"]] = relationship(
        "UserModel", secondary=producer_favourites, back_populates="favourite_producers"
    )


class GenreModel(Base):
    """A genre name attached to plays."""

    __tablename__ = "genres"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    tracks: Mapped[list["ListeningHistoryModel"]] = relationship(
        "ListeningHistoryModel", secondary=genre_track, back_populates="genres"
    )


class ArtistImageModel(Base):
    """Cached image URL for a single (already split) artist name."""

    __tablename__ = "artist_images"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    artist_name: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    image_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    genius_artist_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )


class PlaylistModel(Base):
    """A playlist a user created through TrackCer on Spotify or Apple Music."""

    __tablename__ = "playlists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    spotify_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    apple_music_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    apple_music_global_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    service: Mapped[str] = mapped_column(String(32), nullable=False, default="spotify")
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=utc_now, onupdate=utc_now, nullable=False
    )

    user: Mapped["UserModel"] = relationship("UserModel", back_populates="playlists")


class NotificationModel(Base):
    """In-app notification ("someone else played a track by your producer")."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    producer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("producers.id", ondelete="SET NULL"), nullable=True
    )
    listening_history_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("listening_history.id", ondelete="SET NULL"), nullable=True
    )
    type: Mapped[str] = mapped_column(
        String(64), nullable=False, default="track_played_by_another_user"
    )
    data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(
        sa.DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    producer: Mapped["ProducerModel | None"] = relationship("ProducerModel")
    track: Mapped["ListeningHistoryModel | None"] = relationship("ListeningHistoryModel")


class UnmatchedTrackModel(Base):
    """A play for which no Genius song could be matched (producer lookup gave up)."""

    __tablename__ = "unmatched_tracks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    track_id: Mapped[str] = mapped_column(String(255), nullable=False)
    track_name: Mapped[str] = mapped_column(String(512), nullable=False)
    artist_name: Mapped[str] = mapped_column(String(512), nullable=False)
    album_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utc_now, nullable=False)

    __table_args__ = (UniqueConstraint("track_id", name="uq_unmatched_tracks_track_id"),)
