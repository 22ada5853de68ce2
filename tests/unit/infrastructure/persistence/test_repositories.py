"""Repository tests against a temporary SQLite database."""

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from trackcer.domain.exceptions import EntityNotFoundException
from trackcer.infrastructure.persistence import Database
from trackcer.infrastructure.persistence.models import NotificationModel, utc_now
from trackcer.infrastructure.persistence.repositories import (
    ArtistImageRepository,
    GenreRepository,
    ListeningHistoryRepository,
    NotificationRepository,
    ProducerRepository,
    UnmatchedTrackRepository,
    UserRepository,
)

from factories import create_play, create_user


class TestUserRepository:
    async def test_get_raises_for_unknown_user(self, session: AsyncSession) -> None:
        with pytest.raises(EntityNotFoundException) as exc_info:
            await UserRepository(session).get(999)
        assert exc_info.value.message == "User with id 999 not found"

    async def test_token_selectors(self, session: AsyncSession) -> None:
        spotify = await create_user(session, name="s", spotify_token="tok")
        apple = await create_user(session, name="a", apple_music_token="mut")
        await create_user(session, name="none", spotify_token="")
        repo = UserRepository(session)

        assert [u.id for u in await repo.list_with_spotify_token()] == [spotify.id]
        assert [u.id for u in await repo.list_with_apple_music_token()] == [apple.id]
        assert {u.id for u in await repo.list_with_any_token()} == {spotify.id, apple.id}

    async def test_other_users_with_producers(self, session: AsyncSession) -> None:
        me = await create_user(session, name="me")
        other = await create_user(session, name="other")
        stranger = await create_user(session, name="stranger")
        await create_play(session, me, producers=["Metro Boomin"])
        await create_play(session, other, track_name="Other", producers=["Metro Boomin"])
        await create_play(session, stranger, track_name="Unrelated", producers=["Pharrell"])
        producer = await ProducerRepository(session).get_by_name("Metro Boomin")
        assert producer is not None

        users = await UserRepository(session).list_other_users_with_producers(
            [producer.id], exclude_user_id=me.id
        )

        assert [u.id for u in users] == [other.id]


class TestListeningHistoryRepository:
    async def test_find_play_near_uses_window(self, session: AsyncSession) -> None:
        user = await create_user(session)
        played_at = utc_now() - timedelta(hours=2)
        await create_play(session, user, track_id="t1", played_at=played_at)
        repo = ListeningHistoryRepository(session)
        window = timedelta(seconds=5)

        near = await repo.find_play_near(
            user.id, "t1", "spotify", played_at + timedelta(seconds=4), window
        )
        far = await repo.find_play_near(
            user.id, "t1", "spotify", played_at + timedelta(seconds=6), window
        )

        assert near is not None
        assert far is None

    async def test_exists_exact(self, session: AsyncSession) -> None:
        user = await create_user(session)
        played_at = utc_now() - timedelta(days=1)
        await create_play(session, user, track_id="t1", played_at=played_at)
        repo = ListeningHistoryRepository(session)

        assert await repo.exists_exact(user.id, "t1", played_at)
        assert not await repo.exists_exact(user.id, "t1", played_at + timedelta(seconds=1))

    async def test_get_for_user_hides_other_users_plays(self, session: AsyncSession) -> None:
        owner = await create_user(session, name="owner")
        other = await create_user(session, name="other")
        play = await create_play(session, owner)

        with pytest.raises(EntityNotFoundException):
            await ListeningHistoryRepository(session).get_for_user(other.id, play.id)

    async def test_producer_counts(self, db: Database) -> None:
        async with db.session_scope() as session:
            user = await create_user(session)
            await create_play(session, user, track_name="A", producers=["Metro Boomin"])
            await create_play(session, user, track_name="B")
            user_id = user.id

        async with db.session_scope() as session:
            repo = ListeningHistoryRepository(session)
            without = await repo.list_without_producers(user_id)

            assert await repo.count_for_user(user_id) == 2
            assert await repo.count_with_producers(user_id) == 1
            assert [play.track_name for play in without] == ["B"]

    async def test_list_for_user_loads_relations_newest_first(self, db: Database) -> None:
        now = utc_now()
        async with db.session_scope() as session:
            user = await create_user(session)
            await create_play(
                session, user, track_name="Old", played_at=now - timedelta(days=3),
                producers=["Pharrell"], genres=["Pop"],
            )
            await create_play(session, user, track_name="New", played_at=now - timedelta(hours=1))
            user_id = user.id

        async with db.session_scope() as session:
            plays = await ListeningHistoryRepository(session).list_for_user(user_id)
            recent = await ListeningHistoryRepository(session).list_for_user(
                user_id, since=now - timedelta(days=1)
            )

            assert [play.track_name for play in plays] == ["New", "Old"]
            assert [p.name for p in plays[1].producers] == ["Pharrell"]
            assert [g.name for g in plays[1].genres] == ["Pop"]
            assert [play.track_name for play in recent] == ["New"]

    async def test_distinct_artist_credits(self, session: AsyncSession) -> None:
        user = await create_user(session)
        await create_play(session, user, track_name="A", artist_name="Drake, Future")
        await create_play(session, user, track_name="B", artist_name="Drake, Future")
        await create_play(session, user, track_name="C", artist_name="Adele")

        credits = await ListeningHistoryRepository(session).list_distinct_artist_credits()

        assert sorted(credits) == ["Adele", "Drake, Future"]


class TestLinkRepositories:
    async def test_links_are_idempotent(self, session: AsyncSession) -> None:
        user = await create_user(session)
        play = await create_play(session, user)
        producers = ProducerRepository(session)
        producer = await producers.upsert_by_name("Metro Boomin", None)

        assert await producers.link_track(producer.id, play.id) is True
        assert await producers.link_track(producer.id, play.id) is False
        assert await producers.follow(user.id, producer.id) is True
        assert await producers.follow(user.id, producer.id) is False
        assert await producers.followed_ids(user.id) == {producer.id}
        assert await producers.follower_counts([producer.id]) == {producer.id: 1}

        await producers.unfollow(user.id, producer.id)
        await producers.unfollow(user.id, producer.id)
        assert await producers.followed_ids(user.id) == set()

    async def test_upsert_by_name_refreshes_image(self, session: AsyncSession) -> None:
        producers = ProducerRepository(session)
        first = await producers.upsert_by_name("Pharrell", None)
        second = await producers.upsert_by_name("Pharrell", "https://img.test/p.jpg")

        assert first.id == second.id
        assert second.image_url == "https://img.test/p.jpg"

    async def test_genre_attach_skips_blanks_and_duplicates(self, session: AsyncSession) -> None:
        user = await create_user(session)
        play = await create_play(session, user)
        genres = GenreRepository(session)

        assert await genres.attach(play.id, ["Hip-Hop", " ", "Hip-Hop", "Trap"]) == 2
        assert await genres.attach(play.id, ["Trap"]) == 0


class TestArtistImageRepository:
    async def test_upsert_keeps_known_genius_id(self, session: AsyncSession) -> None:
        repo = ArtistImageRepository(session)
        await repo.upsert("Drake", "https://img.test/1.jpg", "130")
        image = await repo.upsert("Drake", "https://img.test/2.jpg")

        assert image.image_url == "https://img.test/2.jpg"
        assert image.genius_artist_id == "130"
        assert await repo.count() == 1
        assert await repo.cached_names() == {"Drake"}
        assert set(await repo.get_many(["Drake", "Adele"])) == {"Drake"}


class TestNotificationRepository:
    async def test_unread_and_mark_all(self, session: AsyncSession) -> None:
        user = await create_user(session)
        repo = NotificationRepository(session)
        for _ in range(3):
            await repo.add(NotificationModel(user_id=user.id, data={"message": "hi"}))

        assert await repo.unread_count(user.id) == 3
        assert await repo.mark_all_read(user.id) == 3
        assert await repo.unread_count(user.id) == 0

    async def test_get_for_user_checks_owner(self, session: AsyncSession) -> None:
        owner = await create_user(session, name="owner")
        other = await create_user(session, name="other")
        notification = await NotificationRepository(session).add(
            NotificationModel(user_id=owner.id, data={})
        )

        with pytest.raises(EntityNotFoundException):
            await NotificationRepository(session).get_for_user(other.id, notification.id)


class TestUnmatchedTrackRepository:
    async def test_records_each_track_once(self, session: AsyncSession) -> None:
        user = await create_user(session)
        play = await create_play(session, user, track_id="t1")
        repo = UnmatchedTrackRepository(session)

        assert await repo.record(play) is True
        assert await repo.record(play) is False
