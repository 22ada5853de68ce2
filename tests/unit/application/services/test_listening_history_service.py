"""ListeningHistoryService ingestion with mocked provider clients."""

from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
from pytest_httpx import HTTPXMock
from sqlalchemy.ext.asyncio import AsyncSession

from trackcer.application.services.listening_history_service import (
    SOURCE_APPLE_MUSIC,
    SOURCE_SPOTIFY,
    ListeningHistoryService,
)
from trackcer.application.services.spotify_token_service import SpotifyTokenService
from trackcer.config.settings import Settings, SpotifySettings
from trackcer.domain.exceptions import EntityNotFoundException
from trackcer.infrastructure.integrations.spotify_client import SpotifyClient
from trackcer.infrastructure.persistence import Database, ListeningHistoryRepository
from trackcer.infrastructure.persistence.models import UserModel

from factories import create_play, create_user


def spotify_item(track_id: str, name: str, played_at: str) -> dict[str, Any]:
    return {
        "played_at": played_at,
        "track": {
            "id": track_id,
            "name": name,
            "duration_ms": 312000,
            "artists": [{"id": "travis", "name": "Travis Scott"}, {"id": "drake", "name": "Drake"}],
            "album": {"name": "Astroworld", "images": [{"url": "https://img.test/astro.jpg"}]},
        },
    }


def apple_track(track_id: str, name: str, artist: str) -> dict[str, Any]:
    return {
        "id": track_id,
        "type": "songs",
        "attributes": {
            "name": name,
            "artistName": artist,
            "albumName": "Album",
            "genreNames": ["Pop", "Music"],
            "durationInMillis": 200000,
        },
    }


def status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.spotify.com/v1/me/player/recently-played")
    return httpx.HTTPStatusError(
        str(status), request=request, response=httpx.Response(status, request=request)
    )


class Clients:
    """The mocked collaborators of one service instance."""

    def __init__(self) -> None:
        self.spotify = AsyncMock()
        self.spotify.get_artist.return_value = {"genres": ["rap", "hip hop"]}
        self.spotify.get_recently_played.return_value = {"items": []}
        self.apple_music = AsyncMock()
        self.apple_music.get_recently_played.return_value = []
        self.discogs = AsyncMock()
        self.discogs.search_releases.return_value = []
        self.producers = AsyncMock()
        self.producers.attach_producers.return_value = ([], [])
        self.artist_images = AsyncMock()

    def service(self, session: AsyncSession, settings: Settings) -> ListeningHistoryService:
        return ListeningHistoryService(
            session,
            settings,
            SpotifyTokenService(session, self.spotify, settings),
            self.apple_music,
            self.discogs,
            self.producers,
            self.artist_images,
        )


@pytest.fixture
def clients() -> Clients:
    return Clients()


async def _user(session: AsyncSession, **kwargs: Any) -> UserModel:
    kwargs.setdefault("spotify_token", "spotify-token")
    kwargs.setdefault("spotify_refresh_token", "refresh-token")
    return await create_user(session, **kwargs)


class TestFetchSpotifyHistory:
    async def test_stores_new_plays_with_genres(
        self, db: Database, settings: Settings, clients: Clients
    ) -> None:
        clients.spotify.get_recently_played.return_value = {
            "items": [
                spotify_item("sp1", "Sicko Mode", "2026-10-18T10:00:00.000Z"),
                spotify_item("sp2", "Stargazing", "2026-10-18T09:55:00.000Z"),
            ]
        }
        async with db.session_scope() as session:
            user = await _user(session)
            result = await clients.service(session, settings).fetch_spotify_history(user)

        assert result == {"processed": 2, "total": 2}
        clients.spotify.get_recently_played.assert_awaited_once_with(
            "spotify-token", after_ms=None
        )
        clients.artist_images.cache_artist_image.assert_any_await("Travis Scott")
        clients.artist_images.cache_artist_image.assert_any_await("Drake")

        async with db.session_scope() as session:
            plays = await ListeningHistoryRepository(session).list_for_user(user.id)
        assert [p.track_name for p in plays] == ["Sicko Mode", "Stargazing"]
        sicko = plays[0]
        assert sicko.artist_name == "Travis Scott, Drake"
        assert sicko.album_name == "Astroworld"
        assert sicko.source == SOURCE_SPOTIFY
        assert sicko.track_data["images"] == [{"url": "https://img.test/astro.jpg"}]
        assert sorted(g.name for g in sicko.genres) == ["hip hop", "rap"]
        assert sicko.played_at.replace(tzinfo=UTC) == datetime(2026, 10, 18, 10, 0, tzinfo=UTC)

    async def test_same_play_twice_is_stored_once(
        self, db: Database, settings: Settings, clients: Clients
    ) -> None:
        clients.spotify.get_recently_played.return_value = {
            "items": [spotify_item("sp1", "Sicko Mode", "2026-10-18T10:00:00.000Z")]
        }
        async with db.session_scope() as session:
            user = await _user(session)
            await clients.service(session, settings).fetch_spotify_history(user)

        clients.spotify.get_recently_played.return_value = {
            "items": [spotify_item("sp1", "Sicko Mode", "2026-10-18T10:00:03.000Z")]
        }
        async with db.session_scope() as session:
            user = await session.get(UserModel, user.id)
            assert user is not None
            result = await clients.service(session, settings).fetch_spotify_history(user)

        assert result == {"processed": 0, "total": 1}
        after_ms = clients.spotify.get_recently_played.await_args.kwargs["after_ms"]
        assert after_ms == int(datetime(2026, 10, 18, 10, 0, tzinfo=UTC).timestamp() * 1000)

    async def test_refreshes_token_once_on_401(
        self, db: Database, settings: Settings, clients: Clients
    ) -> None:
        clients.spotify.get_recently_played.side_effect = [status_error(401), {"items": []}]
        clients.spotify.refresh_token.return_value = {"access_token": "fresh-token"}
        async with db.session_scope() as session:
            user = await _user(session)
            result = await clients.service(session, settings).fetch_spotify_history(user)

        assert result == {"processed": 0, "total": 0}
        clients.spotify.refresh_token.assert_awaited_once_with("refresh-token")
        assert clients.spotify.get_recently_played.await_args.args == ("fresh-token",)
        async with db.session_scope() as session:
            stored = await session.get(UserModel, user.id)
            assert stored is not None
            assert stored.spotify_token == "fresh-token"

    async def test_provider_failure_returns_none(
        self, db: Database, settings: Settings, clients: Clients
    ) -> None:
        clients.spotify.get_recently_played.side_effect = status_error(500)
        async with db.session_scope() as session:
            user = await _user(session)
            assert await clients.service(session, settings).fetch_spotify_history(user) is None

    async def test_genres_fall_back_to_discogs(
        self, db: Database, settings: Settings, clients: Clients
    ) -> None:
        clients.spotify.get_recently_played.return_value = {
            "items": [spotify_item("sp1", "Sicko Mode", "2026-10-18T10:00:00.000Z")]
        }
        clients.spotify.get_artist.side_effect = httpx.ConnectError("down")
        clients.discogs.search_releases.return_value = [{"genre": ["Hip Hop"], "style": ["Trap"]}]
        async with db.session_scope() as session:
            user = await _user(session)
            await clients.service(session, settings).fetch_spotify_history(user)

        clients.discogs.search_releases.assert_any_await("Sicko Mode", "Travis Scott")
        async with db.session_scope() as session:
            (play,) = await ListeningHistoryRepository(session).list_for_user(user.id)
            assert sorted(g.name for g in play.genres) == ["Hip Hop", "Trap"]

    async def test_malformed_item_is_skipped(
        self, db: Database, settings: Settings, clients: Clients
    ) -> None:
        clients.spotify.get_recently_played.return_value = {
            "items": [
                {"track": {"id": "no-timestamp", "name": "Broken", "artists": []}},
                "not-an-item",
                spotify_item("sp1", "Sicko Mode", "2026-10-18T10:00:00.000Z"),
            ]
        }
        async with db.session_scope() as session:
            user = await _user(session)
            result = await clients.service(session, settings).fetch_spotify_history(user)

        assert result == {"processed": 1, "total": 3}
        async with db.session_scope() as session:
            (play,) = await ListeningHistoryRepository(session).list_for_user(user.id)
            assert play.track_name == "Sicko Mode"
            assert sorted(g.name for g in play.genres) == ["hip hop", "rap"]

    async def test_rate_limited_artist_lookup_goes_straight_to_discogs(
        self, db: Database, settings: Settings, clients: Clients, httpx_mock: HTTPXMock
    ) -> None:
        item = spotify_item("sp1", "Sicko Mode", "2026-10-18T10:00:00.000Z")
        item["track"]["artists"] = [{"id": "travis", "name": "Travis Scott"}]
        httpx_mock.add_response(json={"items": [item]})
        httpx_mock.add_response(status_code=429, headers={"Retry-After": "30"})
        clients.discogs.search_releases.return_value = [{"genre": ["Hip Hop"], "style": []}]
        spotify = SpotifyClient(SpotifySettings(client_id="cid", client_secret="secret"))
        clients.spotify = spotify
        try:
            async with db.session_scope() as session:
                user = await _user(session)
                result = await clients.service(session, settings).fetch_spotify_history(user)
        finally:
            await spotify.close()

        assert result == {"processed": 1, "total": 1}
        requests = httpx_mock.get_requests()
        assert len(requests) == 2
        assert requests[1].url.path == "/v1/artists/travis"
        clients.discogs.search_releases.assert_awaited_once_with("Sicko Mode", "Travis Scott")


class TestFetchAppleMusicHistory:
    async def test_first_fetch_stores_everything(
        self, db: Database, settings: Settings, clients: Clients
    ) -> None:
        clients.apple_music.get_recently_played.return_value = [
            apple_track("am1", "Hello", "Adele"),
            apple_track("am2", "Halo", "Beyoncé"),
            {"id": "broken"},
        ]
        async with db.session_scope() as session:
            user = await create_user(session, apple_music_token="music-user-token")
            result = await clients.service(session, settings).fetch_apple_music_history(user)

        assert result == {"processed": 2, "total": 3}
        clients.apple_music.get_recently_played.assert_awaited_once_with("music-user-token")
        assert clients.producers.attach_producers.await_count == 2

        async with db.session_scope() as session:
            plays = await ListeningHistoryRepository(session).list_for_user(user.id)
        assert {p.track_name for p in plays} == {"Hello", "Halo"}
        assert all(p.source == SOURCE_APPLE_MUSIC for p in plays)
        assert all(p.fetch_session_id for p in plays)
        hello = next(p for p in plays if p.track_name == "Hello")
        assert hello.position_in_fetch == 0
        assert hello.track_data["duration_ms"] == 200000
        assert sorted(g.name for g in hello.genres) == ["Music", "Pop"]

    async def test_refetching_the_same_list_adds_nothing(
        self, db: Database, settings: Settings, clients: Clients
    ) -> None:
        clients.apple_music.get_recently_played.return_value = [
            apple_track("am1", "Hello", "Adele"),
            apple_track("am2", "Halo", "Beyoncé"),
            apple_track("am3", "Formation", "Beyoncé"),
        ]
        async with db.session_scope() as session:
            user = await create_user(session, apple_music_token="music-user-token")
            await clients.service(session, settings).fetch_apple_music_history(user)

        async with db.session_scope() as session:
            result = await clients.service(session, settings).fetch_apple_music_history(user)
            assert await ListeningHistoryRepository(session).count_for_user(user.id) == 3

        assert result == {"processed": 0, "total": 3}

    async def test_enrichment_failures_do_not_fail_the_fetch(
        self, db: Database, settings: Settings, clients: Clients
    ) -> None:
        clients.apple_music.get_recently_played.return_value = [
            apple_track("am1", "Hello", "Adele")
        ]
        clients.producers.attach_producers.side_effect = httpx.ReadTimeout("genius slow")
        async with db.session_scope() as session:
            user = await create_user(session, apple_music_token="music-user-token")
            result = await clients.service(session, settings).fetch_apple_music_history(user)

        assert result == {"processed": 1, "total": 1}

    async def test_malformed_track_is_skipped(
        self, db: Database, settings: Settings, clients: Clients
    ) -> None:
        broken = apple_track("am2", "Halo", "Beyoncé")
        broken["attributes"]["previews"] = ["https://audio.test/not-an-object.m4a"]
        clients.apple_music.get_recently_played.return_value = [
            apple_track("am1", "Hello", "Adele"),
            broken,
            apple_track("am3", "Formation", "Beyoncé"),
        ]
        async with db.session_scope() as session:
            user = await create_user(session, apple_music_token="music-user-token")
            result = await clients.service(session, settings).fetch_apple_music_history(user)

        assert result == {"processed": 2, "total": 3}
        assert clients.producers.attach_producers.await_count == 2
        async with db.session_scope() as session:
            plays = await ListeningHistoryRepository(session).list_for_user(user.id)
        assert {p.track_name for p in plays} == {"Hello", "Formation"}

    async def test_provider_failure_returns_none(
        self, db: Database, settings: Settings, clients: Clients
    ) -> None:
        clients.apple_music.get_recently_played.side_effect = httpx.ConnectError("down")
        async with db.session_scope() as session:
            user = await create_user(session, apple_music_token="music-user-token")
            result = await clients.service(session, settings).fetch_apple_music_history(user)

        assert result is None


class TestFetchHistory:
    async def test_only_connected_providers_are_fetched(
        self, db: Database, settings: Settings, clients: Clients
    ) -> None:
        async with db.session_scope() as session:
            user = await _user(session)
            results = await clients.service(session, settings).fetch_history(user)

        assert results == {SOURCE_SPOTIFY: {"processed": 0, "total": 0}}
        clients.apple_music.get_recently_played.assert_not_awaited()


class TestSyncHistory:
    async def test_stores_and_skips_exact_duplicates(
        self, db: Database, settings: Settings, clients: Clients
    ) -> None:
        played_at = datetime(2026, 10, 1, 8, 30, tzinfo=UTC)
        tracks = [
            {
                "track_id": "client-1",
                "track_name": "Hello",
                "artist_name": "Adele",
                "album_name": "25",
                "played_at": played_at,
                "apple_music_id": "1051394215",
                "duration_ms": 295000,
                "album_artwork_url": "https://img.test/{w}x{h}.jpg",
            }
        ]
        async with db.session_scope() as session:
            user = await create_user(session)
            service = clients.service(session, settings)
            first = await service.sync_history(user, tracks)
            second = await service.sync_history(user, tracks)

        assert first == {"synced": 1, "skipped": 0}
        assert second == {"synced": 0, "skipped": 1}
        async with db.session_scope() as session:
            (play,) = await ListeningHistoryRepository(session).list_for_user(user.id)
        assert play.source == SOURCE_APPLE_MUSIC
        assert play.track_data is not None


class TestReadSide:
    async def test_list_history_paginates_newest_first(
        self, db: Database, settings: Settings, clients: Clients
    ) -> None:
        async with db.session_scope() as session:
            user = await create_user(session)
            for name in ("One", "Two", "Three"):
                await create_play(session, user, track_name=name)

        async with db.session_scope() as session:
            result = await clients.service(session, settings).list_history(
                user.id, page=1, per_page=2
            )

        assert result["total"] == 3
        assert result["last_page"] == 2
        assert len(result["data"]) == 2

    async def test_get_history_is_scoped_to_user(
        self, db: Database, settings: Settings, clients: Clients
    ) -> None:
        async with db.session_scope() as session:
            owner = await create_user(session, name="Owner")
            stranger = await create_user(session, name="Stranger")
            play = await create_play(session, owner, track_name="Mine")

        async with db.session_scope() as session:
            service = clients.service(session, settings)
            assert (await service.get_history(owner.id, play.id))["track_name"] == "Mine"
            with pytest.raises(EntityNotFoundException):
                await service.get_history(stranger.id, play.id)
