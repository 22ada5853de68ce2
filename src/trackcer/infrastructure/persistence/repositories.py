"""Repository implementations over the async SQLAlchemy session.

Hey future me - repositories NEVER commit. The caller owns the transaction
(Database.session_scope() in workers/CLI, the request-scoped session in routers).
They only flush when a generated id is needed right away.
"""

from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, func, insert, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from trackcer.domain.exceptions import EntityNotFoundException

from .models import (
    ArtistImageModel,
    GenreModel,
    ListeningHistoryModel,
    NotificationModel,
    PlaylistModel,
    ProducerModel,
    UnmatchedTrackModel,
    UserModel,
    genre_track,
    producer_favourites,
    producer_follows,
    producer_track,
    utc_now,
)


async def _link_once(session: AsyncSession, table: Any, **values: Any) -> bool:
    """Insert an association row unless it already exists.

    Returns:
        True if a row was inserted
    """
    conditions = [table.c[key] == value for key, value in values.items()]
    existing = await session.execute(select(func.count()).select_from(table).where(*conditions))
    if existing.scalar_one():
        return False
    await session.execute(insert(table).values(**values))
    return True


class UserRepository:
    """Users and their provider tokens."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, user: UserModel) -> UserModel:
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_by_id(self, user_id: int) -> UserModel | None:
        return await self.session.get(UserModel, user_id)

    async def get(self, user_id: int) -> UserModel:
        """Get user or raise EntityNotFoundException."""
        user = await self.get_by_id(user_id)
        if user is None:
            raise EntityNotFoundException("User", user_id)
        return user

    async def list_with_spotify_token(self) -> Sequence[UserModel]:
        stmt = select(UserModel).where(
            UserModel.spotify_token.is_not(None), UserModel.spotify_token != ""
        )
        return (await self.session.execute(stmt)).scalars().all()

    async def list_with_apple_music_token(self) -> Sequence[UserModel]:
        stmt = select(UserModel).where(
            UserModel.apple_music_token.is_not(None), UserModel.apple_music_token != ""
        )
        return (await self.session.execute(stmt)).scalars().all()

    async def list_with_any_token(self) -> Sequence[UserModel]:
        stmt = select(UserModel).where(
            or_(
                (UserModel.spotify_token.is_not(None)) & (UserModel.spotify_token != ""),
                (UserModel.apple_music_token.is_not(None))
                & (UserModel.apple_music_token != ""),
            )
        )
        return (await self.session.execute(stmt)).scalars().all()

    async def update_spotify_token(self, user_id: int, access_token: str) -> None:
        await self.session.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(spotify_token=access_token, updated_at=utc_now())
        )

    async def list_other_users_with_producers(
        self, producer_ids: Sequence[int], exclude_user_id: int
    ) -> Sequence[UserModel]:
        """Users (except one) whose history contains any of the given producers."""
        if not producer_ids:
            return []
        stmt = (
            select(UserModel)
            .where(UserModel.id != exclude_user_id)
            .where(
                UserModel.id.in_(
                    select(ListeningHistoryModel.user_id)
                    .join(
                        producer_track,
                        producer_track.c.listening_history_id == ListeningHistoryModel.id,
                    )
                    .where(producer_track.c.producer_id.in_(producer_ids))
                )
            )
        )
        return (await self.session.execute(stmt)).scalars().all()


class ListeningHistoryRepository:
    """Play events plus the duplicate/overlap queries the fetchers need."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, history: ListeningHistoryModel) -> ListeningHistoryModel:
        self.session.add(history)
        await self.session.flush()
        return history

    async def get_by_id(self, history_id: int) -> ListeningHistoryModel | None:
        stmt = (
            select(ListeningHistoryModel)
            .where(ListeningHistoryModel.id == history_id)
            .options(
                selectinload(ListeningHistoryModel.producers),
                selectinload(ListeningHistoryModel.genres),
            )
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def get_for_user(self, user_id: int, history_id: int) -> ListeningHistoryModel:
        """Get a play owned by the user or raise EntityNotFoundException."""
        history = await self.get_by_id(history_id)
        if history is None or history.user_id != user_id:
            raise EntityNotFoundException("ListeningHistory", history_id)
        return history

    async def latest_played_at(self, user_id: int, source: str) -> datetime | None:
        stmt = select(func.max(ListeningHistoryModel.played_at)).where(
            ListeningHistoryModel.user_id == user_id,
            ListeningHistoryModel.source == source,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def find_play_near(
        self,
        user_id: int,
        track_id: str,
        source: str,
        played_at: datetime,
        window: timedelta,
    ) -> ListeningHistoryModel | None:
        """Existing play of the same track within +/- window of played_at."""
        stmt = (
            select(ListeningHistoryModel)
            .where(
                ListeningHistoryModel.user_id == user_id,
                ListeningHistoryModel.track_id == track_id,
                ListeningHistoryModel.source == source,
                ListeningHistoryModel.played_at.between(
                    played_at - window, played_at + window
                ),
            )
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def exists_exact(self, user_id: int, track_id: str, played_at: datetime) -> bool:
        stmt = select(func.count(ListeningHistoryModel.id)).where(
            ListeningHistoryModel.user_id == user_id,
            ListeningHistoryModel.track_id == track_id,
            ListeningHistoryModel.played_at == played_at,
        )
        return bool((await self.session.execute(stmt)).scalar_one())

    async def last_session_rows(
        self, user_id: int, source: str, limit: int = 50
    ) -> Sequence[ListeningHistoryModel]:
        """Most recent session-tagged rows, newest first, fetch order inside a session."""
        stmt = (
            select(ListeningHistoryModel)
            .where(
                ListeningHistoryModel.user_id == user_id,
                ListeningHistoryModel.source == source,
                ListeningHistoryModel.fetch_session_id.is_not(None),
            )
            .order_by(
                ListeningHistoryModel.created_at.desc(),
                ListeningHistoryModel.position_in_fetch.asc(),
            )
            .limit(limit)
        )
        return (await self.session.execute(stmt)).scalars().all()

    async def has_play_created_since(
        self, user_id: int, track_id: str, source: str, since: datetime
    ) -> bool:
        stmt = select(func.count(ListeningHistoryModel.id)).where(
            ListeningHistoryModel.user_id == user_id,
            ListeningHistoryModel.track_id == track_id,
            ListeningHistoryModel.source == source,
            ListeningHistoryModel.created_at >= since,
        )
        return bool((await self.session.execute(stmt)).scalar_one())

    async def recent_session_ids(
        self,
        user_id: int,
        source: str,
        exclude_session_id: str,
        since: datetime,
        limit: int = 3,
    ) -> list[str]:
        """Most recent other fetch sessions created since the given time."""
        newest = func.max(ListeningHistoryModel.created_at)
        stmt = (
            select(ListeningHistoryModel.fetch_session_id, newest)
            .where(
                ListeningHistoryModel.user_id == user_id,
                ListeningHistoryModel.source == source,
                ListeningHistoryModel.fetch_session_id.is_not(None),
                ListeningHistoryModel.fetch_session_id != exclude_session_id,
                ListeningHistoryModel.created_at >= since,
            )
            .group_by(ListeningHistoryModel.fetch_session_id)
            .order_by(newest.desc())
            .limit(limit)
        )
        return [row[0] for row in (await self.session.execute(stmt)).all()]

    async def count_in_sessions(
        self, user_id: int, track_id: str, source: str, session_ids: Sequence[str]
    ) -> int:
        if not session_ids:
            return 0
        stmt = select(func.count(ListeningHistoryModel.id)).where(
            ListeningHistoryModel.user_id == user_id,
            ListeningHistoryModel.track_id == track_id,
            ListeningHistoryModel.source == source,
            ListeningHistoryModel.fetch_session_id.in_(session_ids),
        )
        return int((await self.session.execute(stmt)).scalar_one())

    async def find_similar_position_play(
        self,
        user_id: int,
        track_id: str,
        source: str,
        since: datetime,
        position: int,
        position_range: int,
    ) -> ListeningHistoryModel | None:
        stmt = (
            select(ListeningHistoryModel)
            .where(
                ListeningHistoryModel.user_id == user_id,
                ListeningHistoryModel.track_id == track_id,
                ListeningHistoryModel.source == source,
                ListeningHistoryModel.created_at >= since,
                ListeningHistoryModel.position_in_fetch.between(
                    max(0, position - position_range), position + position_range
                ),
            )
            .limit(1)
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def list_without_producers(self, user_id: int) -> Sequence[ListeningHistoryModel]:
        stmt = (
            select(ListeningHistoryModel)
            .where(ListeningHistoryModel.user_id == user_id)
            .where(~ListeningHistoryModel.producers.any())
            .order_by(ListeningHistoryModel.id)
        )
        return (await self.session.execute(stmt)).scalars().all()

    async def paginate_for_user(
        self, user_id: int, page: int, per_page: int
    ) -> tuple[Sequence[ListeningHistoryModel], int]:
        """One page of the user's plays (newest first) plus the total count."""
        total_stmt = select(func.count(ListeningHistoryModel.id)).where(
            ListeningHistoryModel.user_id == user_id
        )
        total = int((await self.session.execute(total_stmt)).scalar_one())

        stmt = (
            select(ListeningHistoryModel)
            .where(ListeningHistoryModel.user_id == user_id)
            .options(
                selectinload(ListeningHistoryModel.producers),
                selectinload(ListeningHistoryModel.genres),
            )
            .order_by(ListeningHistoryModel.played_at.desc(), ListeningHistoryModel.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return (await self.session.execute(stmt)).scalars().all(), total

    async def list_for_user(
        self,
        user_id: int,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> Sequence[ListeningHistoryModel]:
        """User plays with producers and genres eagerly loaded, newest first."""
        stmt = (
            select(ListeningHistoryModel)
            .where(ListeningHistoryModel.user_id == user_id)
            .options(
                selectinload(ListeningHistoryModel.producers),
                selectinload(ListeningHistoryModel.genres),
            )
            .order_by(ListeningHistoryModel.played_at.desc(), ListeningHistoryModel.id.desc())
        )
        if since is not None:
            stmt = stmt.where(ListeningHistoryModel.played_at >= since)
        if until is not None:
            stmt = stmt.where(ListeningHistoryModel.played_at <= until)
        return (await self.session.execute(stmt)).scalars().all()

    async def list_distinct_artist_credits(self) -> list[str]:
        """Every distinct raw artist credit across all users."""
        stmt = select(ListeningHistoryModel.artist_name).distinct()
        return [name for name in (await self.session.execute(stmt)).scalars().all() if name]

    async def count_for_user(self, user_id: int) -> int:
        stmt = select(func.count(ListeningHistoryModel.id)).where(
            ListeningHistoryModel.user_id == user_id
        )
        return int((await self.session.execute(stmt)).scalar_one())

    async def count_with_producers(self, user_id: int) -> int:
        stmt = select(func.count(ListeningHistoryModel.id)).where(
            ListeningHistoryModel.user_id == user_id,
            ListeningHistoryModel.producers.any(),
        )
        return int((await self.session.execute(stmt)).scalar_one())


class ProducerRepository:
    """Producers plus follow/favourite/track links."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, producer_id: int) -> ProducerModel | None:
        return await self.session.get(ProducerModel, producer_id)

    async def get(self, producer_id: int) -> ProducerModel:
        producer = await self.get_by_id(producer_id)
        if producer is None:
            raise EntityNotFoundException("Producer", producer_id)
        return producer

    async def get_by_name(self, name: str) -> ProducerModel | None:
        stmt = select(ProducerModel).where(ProducerModel.name == name)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def upsert_by_name(self, name: str, image_url: str | None) -> ProducerModel:
        """Create the producer or refresh its image_url."""
        producer = await self.get_by_name(name)
        if producer is None:
            producer = ProducerModel(name=name, image_url=image_url)
            self.session.add(producer)
            await self.session.flush()
        else:
            producer.image_url = image_url
        return producer

    async def link_track(self, producer_id: int, history_id: int) -> bool:
        return await _link_once(
            self.session,
            producer_track,
            producer_id=producer_id,
            listening_history_id=history_id,
        )

    async def follow(self, user_id: int, producer_id: int) -> bool:
        return await _link_once(
            self.session, producer_follows, user_id=user_id, producer_id=producer_id
        )

    async def unfollow(self, user_id: int, producer_id: int) -> None:
        await self.session.execute(
            delete(producer_follows).where(
                producer_follows.c.user_id == user_id,
                producer_follows.c.producer_id == producer_id,
            )
        )

    async def favourite(self, user_id: int, producer_id: int) -> bool:
        return await _link_once(
            self.session, producer_favourites, user_id=user_id, producer_id=producer_id
        )

    async def unfavourite(self, user_id: int, producer_id: int) -> None:
        await self.session.execute(
            delete(producer_favourites).where(
                producer_favourites.c.user_id == user_id,
                producer_favourites.c.producer_id == producer_id,
            )
        )

    async def followed_ids(self, user_id: int) -> set[int]:
        stmt = select(producer_follows.c.producer_id).where(
            producer_follows.c.user_id == user_id
        )
        return set((await self.session.execute(stmt)).scalars().all())

    async def favourite_ids(self, user_id: int) -> set[int]:
        stmt = select(producer_favourites.c.producer_id).where(
            producer_favourites.c.user_id == user_id
        )
        return set((await self.session.execute(stmt)).scalars().all())

    async def follower_counts(self, producer_ids: Sequence[int]) -> dict[int, int]:
        if not producer_ids:
            return {}
        stmt = (
            select(producer_follows.c.producer_id, func.count())
            .where(producer_follows.c.producer_id.in_(producer_ids))
            .group_by(producer_follows.c.producer_id)
        )
        return {row[0]: int(row[1]) for row in (await self.session.execute(stmt)).all()}


class GenreRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_or_create(self, name: str) -> GenreModel:
        stmt = select(GenreModel).where(GenreModel.name == name)
        genre = (await self.session.execute(stmt)).scalar_one_or_none()
        if genre is None:
            genre = GenreModel(name=name)
            self.session.add(genre)
            await self.session.flush()
        return genre

    async def attach(self, history_id: int, genre_names: Sequence[str]) -> int:
        """Attach genres (created on demand) to a play, returns number of new links."""
        attached = 0
        for name in dict.fromkeys(n.strip() for n in genre_names if n and n.strip()):
            genre = await self.get_or_create(name)
            if await _link_once(
                self.session, genre_track, genre_id=genre.id, listening_history_id=history_id
            ):
                attached += 1
        return attached


class ArtistImageRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_name(self, artist_name: str) -> ArtistImageModel | None:
        stmt = select(ArtistImageModel).where(ArtistImageModel.artist_name == artist_name)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def get_many(self, artist_names: Sequence[str]) -> dict[str, ArtistImageModel]:
        if not artist_names:
            return {}
        stmt = select(ArtistImageModel).where(ArtistImageModel.artist_name.in_(artist_names))
        return {
            image.artist_name: image
            for image in (await self.session.execute(stmt)).scalars().all()
        }

    async def upsert(
        self, artist_name: str, image_url: str, genius_artist_id: str | None = None
    ) -> ArtistImageModel:
        image = await self.get_by_name(artist_name)
        if image is None:
            image = ArtistImageModel(
                artist_name=artist_name,
                image_url=image_url,
                genius_artist_id=genius_artist_id,
            )
            self.session.add(image)
        else:
            image.image_url = image_url
            image.genius_artist_id = genius_artist_id or image.genius_artist_id
        await self.session.flush()
        return image

    async def cached_names(self) -> set[str]:
        stmt = select(ArtistImageModel.artist_name)
        return set((await self.session.execute(stmt)).scalars().all())

    async def count(self) -> int:
        return int(
            (await self.session.execute(select(func.count(ArtistImageModel.id)))).scalar_one()
        )


class NotificationRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, notification: NotificationModel) -> NotificationModel:
        self.session.add(notification)
        await self.session.flush()
        return notification

    async def paginate_for_user(
        self, user_id: int, page: int, per_page: int
    ) -> tuple[Sequence[NotificationModel], int]:
        total_stmt = select(func.count(NotificationModel.id)).where(
            NotificationModel.user_id == user_id
        )
        total = int((await self.session.execute(total_stmt)).scalar_one())
        stmt = (
            select(NotificationModel)
            .where(NotificationModel.user_id == user_id)
            .order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return (await self.session.execute(stmt)).scalars().all(), total

    async def get_for_user(self, user_id: int, notification_id: int) -> NotificationModel:
        notification = await self.session.get(NotificationModel, notification_id)
        if notification is None or notification.user_id != user_id:
            raise EntityNotFoundException("Notification", notification_id)
        return notification

    async def mark_all_read(self, user_id: int) -> int:
        result = await self.session.execute(
            update(NotificationModel)
            .where(NotificationModel.user_id == user_id, NotificationModel.is_read.is_(False))
            .values(is_read=True, read_at=utc_now())
        )
        return int(result.rowcount or 0)

    async def unread_count(self, user_id: int) -> int:
        stmt = select(func.count(NotificationModel.id)).where(
            NotificationModel.user_id == user_id, NotificationModel.is_read.is_(False)
        )
        return int((await self.session.execute(stmt)).scalar_one())


class UnmatchedTrackRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def record(self, history: ListeningHistoryModel) -> bool:
        """Remember a play Genius couldn't match, once per track_id."""
        stmt = select(func.count(UnmatchedTrackModel.id)).where(
            UnmatchedTrackModel.track_id == history.track_id
        )
        if (await self.session.execute(stmt)).scalar_one():
            return False
        self.session.add(
            UnmatchedTrackModel(
                track_id=history.track_id,
                track_name=history.track_name,
                artist_name=history.artist_name,
                album_name=history.album_name,
            )
        )
        await self.session.flush()
        return True


class PlaylistRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, playlist: PlaylistModel) -> PlaylistModel:
        self.session.add(playlist)
        await self.session.flush()
        return playlist

    async def list_for_user(self, user_id: int) -> Sequence[PlaylistModel]:
        stmt = (
            select(PlaylistModel)
            .where(PlaylistModel.user_id == user_id)
            .order_by(PlaylistModel.created_at.desc(), PlaylistModel.id.desc())
        )
        return (await self.session.execute(stmt)).scalars().all()
